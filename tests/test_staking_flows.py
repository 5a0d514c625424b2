from __future__ import annotations

import pytest

from fiscus.ledger.constants import FISC_UNIT as UNIT
from fiscus.ledger.constants import GFISC_UNIT
from fiscus.runtime.apply import gtoken, staking, stoken, tokens
from fiscus.runtime.domain_apply import ApplyError
from fiscus.runtime.events import events_named


def _approve_staking(state, run_tx, signer: str, amount: int) -> None:
    run_tx(state, "TOKEN_APPROVE", signer, token="FISC", spender="STAKING", amount=amount)


def test_stake_with_claim_and_no_warmup_pays_sfisc_immediately(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    out = run_tx(state, "STAKE", "alice", amount=1000, rebasing=True, claim=True)

    assert out["amount"] == 1000
    assert stoken.balance_of(state, "alice") == 1000
    assert tokens.balance_of(state, "FISC", "STAKING") == 1000
    assert staking.supply_in_warmup(state) == 0
    assert stoken.circulating_supply(state) == 1000
    assert state["accounts"]["alice"]["nonce"] == 2


def test_stake_without_claim_lands_in_warmup_then_claims(state, run_tx) -> None:
    run_tx(state, "STAKING_SET_WARMUP_LENGTH", "gov", warmup=1)
    _approve_staking(state, run_tx, "alice", 1000)

    out = run_tx(state, "STAKE", "alice", amount=1000, claim=True)
    assert out["warmup"]["deposit"] == 1000
    assert out["warmup"]["expiry"] == 2
    assert stoken.balance_of(state, "alice") == 0
    assert staking.supply_in_warmup(state) == 1000

    # Epoch 1 < expiry 2: nothing to claim yet.
    assert run_tx(state, "CLAIM", "alice")["amount"] == 0

    state["height"] = 9
    run_tx(state, "REBASE", "bob")
    assert staking.epoch(state)["number"] == 2

    assert run_tx(state, "CLAIM", "alice")["amount"] == 1000
    assert stoken.balance_of(state, "alice") == 1000
    assert staking.supply_in_warmup(state) == 0
    assert staking.warmup_info(state, "alice")["gons"] == 0


def test_claim_rebasing_false_pays_gfisc(state, run_tx) -> None:
    run_tx(state, "STAKING_SET_WARMUP_LENGTH", "gov", warmup=0)
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=False)
    assert staking.supply_in_warmup(state) == 1000

    out = run_tx(state, "CLAIM", "alice", rebasing=False)
    assert out["amount"] == 1000 * GFISC_UNIT // UNIT
    assert gtoken.balance_of(state, "alice") == 10**12
    assert stoken.balance_of(state, "alice") == 0


def test_forfeit_refunds_principal_only(state, run_tx) -> None:
    run_tx(state, "STAKING_SET_WARMUP_LENGTH", "gov", warmup=5)
    _approve_staking(state, run_tx, "alice", 1000)
    before = tokens.balance_of(state, "FISC", "alice")
    run_tx(state, "STAKE", "alice", amount=1000)
    assert tokens.balance_of(state, "FISC", "alice") == before - 1000

    out = run_tx(state, "FORFEIT", "alice")
    assert out["amount"] == 1000
    assert tokens.balance_of(state, "FISC", "alice") == before
    assert staking.supply_in_warmup(state) == 0
    assert staking.warmup_info(state, "alice")["deposit"] == 0


def test_forfeit_with_nothing_in_warmup_is_a_zero_refund(state, run_tx) -> None:
    assert run_tx(state, "FORFEIT", "bob")["amount"] == 0


def test_lock_blocks_third_party_deposits_and_claims(state, run_tx) -> None:
    run_tx(state, "STAKING_SET_WARMUP_LENGTH", "gov", warmup=1)
    _approve_staking(state, run_tx, "alice", 3000)

    assert run_tx(state, "TOGGLE_LOCK", "alice")["lock"] is True
    assert staking.warmup_info(state, "alice")["lock"] is True

    with pytest.raises(ApplyError) as ei:
        run_tx(state, "STAKE", "alice", amount=1000, to="bob")
    assert ei.value.code == "locked"
    assert ei.value.reason == "external_deposits_locked"

    # Self-deposits and self-claims are never locked.
    run_tx(state, "STAKE", "alice", amount=1000)
    assert staking.warmup_info(state, "alice")["deposit"] == 1000
    assert run_tx(state, "CLAIM", "alice")["amount"] == 0

    with pytest.raises(ApplyError) as ei:
        run_tx(state, "CLAIM", "alice", to="bob")
    assert ei.value.reason == "external_claims_locked"

    assert run_tx(state, "TOGGLE_LOCK", "alice")["lock"] is False
    run_tx(state, "STAKE", "alice", amount=1000, to="bob")
    assert staking.warmup_info(state, "bob")["deposit"] == 1000


def test_claim_and_forfeit_keep_the_lock_flag(state, run_tx) -> None:
    run_tx(state, "STAKING_SET_WARMUP_LENGTH", "gov", warmup=1)
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "TOGGLE_LOCK", "alice")
    run_tx(state, "STAKE", "alice", amount=1000)
    run_tx(state, "FORFEIT", "alice")
    assert staking.warmup_info(state, "alice")["lock"] is True


def test_rebase_is_a_noop_before_epoch_end(state, run_tx) -> None:
    out = run_tx(state, "REBASE", "bob")
    assert out["advanced"] is False
    assert out["epoch"]["number"] == 1
    assert staking.blocks_to_next_epoch(state) == 8


def test_rebase_advances_one_epoch_per_call(state, run_tx) -> None:
    state["height"] = 30
    run_tx(state, "REBASE", "bob")
    assert staking.epoch(state)["number"] == 2
    assert staking.epoch(state)["end"] == 19
    run_tx(state, "REBASE", "bob")
    assert staking.epoch(state)["end"] == 29
    run_tx(state, "REBASE", "bob")
    assert staking.epoch(state)["end"] == 39
    out = run_tx(state, "REBASE", "bob")
    assert out["advanced"] is False


def test_rebase_distributes_engine_profit_to_stakers(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=True)

    # Surplus FISC held by the engine becomes next epoch's profit.
    run_tx(state, "TOKEN_TRANSFER", "alice", token="FISC", to="STAKING", amount=500)

    state["height"] = 9
    run_tx(state, "REBASE", "bob")
    ep = staking.epoch(state)
    assert ep["number"] == 2
    assert ep["end"] == 19
    assert ep["distribute"] == 500
    # No profit in the first epoch: supply unchanged, no rebase record.
    assert stoken.rebases(state) == []
    assert events_named(state, "LogSupply")
    zero = events_named(state, "LogRebase")[-1]["args"]
    assert zero["epoch"] == 1
    assert zero["rebase"] == 0
    assert zero["index"] == UNIT

    state["height"] = 19
    run_tx(state, "REBASE", "bob")
    assert 1499 <= stoken.balance_of(state, "alice") <= 1500
    assert stoken.index(state) > UNIT

    recs = stoken.rebases(state)
    assert len(recs) == 1
    assert recs[0]["epoch"] == 2
    assert recs[0]["amount_rebased"] == 500
    assert recs[0]["total_staked_before"] == 1000
    assert recs[0]["block_number_occured"] == 19


def test_unstake_returns_fisc_one_to_one(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=True)
    before = tokens.balance_of(state, "FISC", "alice")

    run_tx(state, "TOKEN_APPROVE", "alice", token="SFISC", spender="STAKING", amount=400)
    out = run_tx(state, "UNSTAKE", "alice", amount=400, trigger=False, rebasing=True)

    assert out["amount"] == 400
    assert stoken.balance_of(state, "alice") == 600
    assert tokens.balance_of(state, "FISC", "alice") == before + 400


def test_unstake_pays_what_is_available_on_shortfall(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=True)

    # Drain the engine below what alice is owed.
    tokens.transfer(state, "FISC", "STAKING", "carol", 700)

    before = tokens.balance_of(state, "FISC", "alice")
    run_tx(state, "TOKEN_APPROVE", "alice", token="SFISC", spender="STAKING", amount=1000)
    out = run_tx(state, "UNSTAKE", "alice", amount=1000)

    assert out["amount"] == 300
    assert tokens.balance_of(state, "FISC", "alice") == before + 300
    assert tokens.balance_of(state, "FISC", "STAKING") == 0
    ev = events_named(state, "Unstaked")[-1]
    assert ev["args"]["requested"] == 1000
    assert ev["args"]["amount"] == 300


def test_unstake_without_allowance_fails(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=True)
    with pytest.raises(ApplyError) as ei:
        run_tx(state, "UNSTAKE", "alice", amount=100)
    assert ei.value.reason == "insufficient_allowance"
    assert stoken.balance_of(state, "alice") == 1000


def test_wrap_and_unwrap_at_index(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=True)
    run_tx(state, "TOKEN_APPROVE", "alice", token="SFISC", spender="STAKING", amount=1000)

    out = run_tx(state, "WRAP", "alice", amount=1000)
    assert out["amount"] == 10**12
    assert gtoken.balance_of(state, "alice") == 10**12
    assert stoken.balance_of(state, "alice") == 0
    # Wrapped supply still counts as circulating.
    assert stoken.circulating_supply(state) == 1000

    out = run_tx(state, "UNWRAP", "alice", amount=10**12, to="bob")
    assert out["amount"] == 1000
    assert gtoken.balance_of(state, "alice") == 0
    assert stoken.balance_of(state, "bob") == 1000


def test_unstake_gfisc_burns_and_pays_converted_amount(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=True, rebasing=False)
    assert gtoken.balance_of(state, "alice") == 10**12

    out = run_tx(state, "UNSTAKE", "alice", amount=5 * 10**11, rebasing=False)
    assert out["amount"] == 500
    assert gtoken.balance_of(state, "alice") == 5 * 10**11


def test_warmup_setter_is_governor_only(state, run_tx) -> None:
    with pytest.raises(ApplyError) as ei:
        run_tx(state, "STAKING_SET_WARMUP_LENGTH", "alice", warmup=3)
    assert ei.value.code == "forbidden"
    assert state["staking"]["warmup_period"] == 0


def test_stake_rejects_bad_amounts(state, run_tx) -> None:
    for bad in (-1, "ten", 1.5):
        with pytest.raises(ApplyError) as ei:
            run_tx(state, "STAKE", "alice", amount=bad)
        assert ei.value.code == "invalid_payload"


def _warmup_total(state) -> int:
    return sum(int(rec.get("deposit", 0)) for rec in state["staking"]["warmup_info"].values())


def test_epoch_scenario_from_genesis(state, run_tx) -> None:
    ep = staking.epoch(state)
    assert (ep["length"], ep["number"], ep["end"]) == (10, 1, 9)
    _approve_staking(state, run_tx, "alice", 2000)

    run_tx(state, "STAKE", "alice", amount=1000, rebasing=True, claim=True)
    assert stoken.balance_of(state, "alice") == 1000
    assert staking.supply_in_warmup(state) == 0

    run_tx(state, "STAKING_SET_WARMUP_LENGTH", "gov", warmup=1)
    out = run_tx(state, "STAKE", "alice", amount=1000, rebasing=True, claim=True)
    assert out["warmup"]["deposit"] == 1000
    assert out["warmup"]["expiry"] == staking.epoch(state)["number"] + 1 == 2
    assert stoken.balance_of(state, "alice") == 1000
    assert staking.supply_in_warmup(state) == 1000

    assert run_tx(state, "CLAIM", "alice")["amount"] == 0
    assert staking.warmup_info(state, "alice")["deposit"] == 1000
    assert staking.warmup_info(state, "alice")["expiry"] == 2
    assert stoken.balance_of(state, "alice") == 1000
    assert staking.supply_in_warmup(state) == 1000


def test_warmup_deposits_sum_to_supply_in_warmup(state, run_tx) -> None:
    run_tx(state, "STAKING_SET_WARMUP_LENGTH", "gov", warmup=1)
    _approve_staking(state, run_tx, "alice", 10_000)

    steps = [
        ("STAKE", "alice", {"amount": 100}),
        ("STAKE", "alice", {"amount": 200, "to": "bob"}),
        ("STAKE", "alice", {"amount": 300, "to": "carol"}),
        ("STAKE", "alice", {"amount": 50}),
        ("FORFEIT", "bob", {}),
        ("CLAIM", "carol", {}),  # not matured: no-op
        ("STAKE", "alice", {"amount": 25, "to": "bob"}),
    ]
    for tx_type, signer, payload in steps:
        run_tx(state, tx_type, signer, **payload)
        assert _warmup_total(state) == staking.supply_in_warmup(state)

    assert staking.warmup_info(state, "alice")["deposit"] == 150
    assert staking.warmup_info(state, "bob")["deposit"] == 25
    assert tokens.balance_of(state, "FISC", "bob") == 200
    assert staking.supply_in_warmup(state) == 475

    state["height"] = 9
    run_tx(state, "REBASE", "bob")
    assert staking.epoch(state)["number"] == 2

    for tx_type, signer in (("CLAIM", "carol"), ("FORFEIT", "alice"), ("CLAIM", "bob")):
        run_tx(state, tx_type, signer)
        assert _warmup_total(state) == staking.supply_in_warmup(state)

    assert stoken.balance_of(state, "carol") == 300
    assert stoken.balance_of(state, "bob") == 25
    assert staking.supply_in_warmup(state) == 0


def test_wrap_round_trip_truncates_down_after_rebase(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=True)
    run_tx(state, "TOKEN_TRANSFER", "alice", token="FISC", to="STAKING", amount=333)
    for height in (9, 19):
        state["height"] = height
        run_tx(state, "REBASE", "bob")
    idx = stoken.index(state)
    assert idx > UNIT

    run_tx(state, "TOKEN_APPROVE", "alice", token="SFISC", spender="STAKING", amount=10**6)
    for amount in (1, 3, 7, 333, 777):
        before = stoken.balance_of(state, "alice")
        wrapped = run_tx(state, "WRAP", "alice", amount=amount)["amount"]
        assert wrapped == amount * GFISC_UNIT // idx
        back = run_tx(state, "UNWRAP", "alice", amount=wrapped)["amount"]
        # Both legs floor, so the round trip never pays out more than went in.
        assert amount - 1 <= back <= amount
        assert stoken.balance_of(state, "alice") == before - amount + back
    assert stoken.index(state) == idx


def test_wrapped_supply_counts_through_wired_gfisc(state, run_tx) -> None:
    _approve_staking(state, run_tx, "alice", 1000)
    run_tx(state, "STAKE", "alice", amount=1000, claim=True)
    run_tx(state, "TOKEN_APPROVE", "alice", token="SFISC", spender="STAKING", amount=400)
    run_tx(state, "WRAP", "alice", amount=400)
    assert stoken.circulating_supply(state) == 1000

    state["stoken"]["gfisc"] = ""
    assert stoken.circulating_supply(state) == 600

    stoken.get_root(state)["gfisc"] = "GFISC"
    state["tokens"]["GFISC"]["sfisc"] = "OTHER"
    with pytest.raises(ApplyError) as ei:
        gtoken.index(state)
    assert ei.value.reason == "sfisc_not_wired"
