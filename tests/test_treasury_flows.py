from __future__ import annotations

import pytest

from fiscus.ledger.constants import (
    FISC_UNIT,
    FISCDEBTOR,
    LIQUIDITYMANAGER,
    RESERVEDEBTOR,
    RESERVEDEPOSITOR,
    RESERVEMANAGER,
    RESERVESPENDER,
    RESERVETOKEN,
)
from fiscus.runtime.apply import stoken, tokens, treasury
from fiscus.runtime.domain_apply import ApplyError

DAI_UNIT = 10**18


def _debtor_doc(genesis_doc):
    genesis_doc["treasury"]["permissions"] = [
        {"status": RESERVETOKEN, "address": "DAI"},
        {"status": RESERVEDEPOSITOR, "address": "alice"},
        {"status": RESERVESPENDER, "address": "alice"},
        {"status": RESERVEDEBTOR, "address": "alice"},
        {"status": FISCDEBTOR, "address": "alice"},
    ]
    genesis_doc["treasury"]["debt_limits"] = {"alice": 300 * FISC_UNIT}
    return genesis_doc


def _stake(state, run_tx, signer: str, amount: int) -> None:
    run_tx(state, "TOKEN_APPROVE", signer, token="FISC", spender="STAKING", amount=amount)
    run_tx(state, "STAKE", signer, amount=amount, claim=True)


def test_deposit_mints_value_less_profit(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    before = tokens.balance_of(st, "FISC", "alice")

    run_tx(st, "TOKEN_APPROVE", "alice", token="DAI", spender="TREASURY", amount=1000 * DAI_UNIT)
    out = run_tx(st, "TREASURY_DEPOSIT", "alice", token="DAI", amount=1000 * DAI_UNIT, profit=100 * FISC_UNIT)

    assert out["minted"] == 900 * FISC_UNIT
    assert tokens.balance_of(st, "FISC", "alice") == before + 900 * FISC_UNIT
    assert tokens.balance_of(st, "DAI", "TREASURY") == 1000 * DAI_UNIT
    assert treasury.summary(st)["total_reserves"] == 1000 * FISC_UNIT


def test_excess_reserves_follow_profit(genesis_doc, deploy, run_tx) -> None:
    doc = _debtor_doc(genesis_doc)
    doc["balances"] = [{"token": "DAI", "account": "alice", "amount": 10_000 * DAI_UNIT}]
    st = deploy(doc)

    assert treasury.excess_reserves(st) == 0
    run_tx(st, "TOKEN_APPROVE", "alice", token="DAI", spender="TREASURY", amount=1000 * DAI_UNIT)
    run_tx(st, "TREASURY_DEPOSIT", "alice", token="DAI", amount=1000 * DAI_UNIT, profit=100 * FISC_UNIT)

    assert tokens.total_supply(st, "FISC") == 900 * FISC_UNIT
    assert treasury.excess_reserves(st) == 100 * FISC_UNIT


def test_deposit_requires_accepted_token_and_depositor(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_DEPOSIT", "alice", token="FISC", amount=1, profit=0)
    assert ei.value.reason == "token_not_accepted"

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_DEPOSIT", "bob", token="DAI", amount=1, profit=0)
    assert ei.value.code == "forbidden"


def test_failed_deposit_is_atomic_but_consumes_nonce(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    run_tx(st, "TOKEN_APPROVE", "alice", token="DAI", spender="TREASURY", amount=DAI_UNIT)
    dai_before = tokens.balance_of(st, "DAI", "alice")
    fisc_before = tokens.total_supply(st, "FISC")
    events_before = len(st["events"])

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_DEPOSIT", "alice", token="DAI", amount=DAI_UNIT, profit=2 * FISC_UNIT)
    assert ei.value.reason == "profit_exceeds_value"

    assert tokens.balance_of(st, "DAI", "alice") == dai_before
    assert tokens.allowance(st, "DAI", "alice", "TREASURY") == DAI_UNIT
    assert tokens.total_supply(st, "FISC") == fisc_before
    assert len(st["events"]) == events_before
    assert st["accounts"]["alice"]["nonce"] == 2


def test_withdraw_burns_fisc_value_and_releases_reserve(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    run_tx(st, "TOKEN_APPROVE", "alice", token="DAI", spender="TREASURY", amount=1000 * DAI_UNIT)
    run_tx(st, "TREASURY_DEPOSIT", "alice", token="DAI", amount=1000 * DAI_UNIT, profit=0)

    run_tx(st, "TOKEN_APPROVE", "alice", token="FISC", spender="TREASURY", amount=400 * FISC_UNIT)
    out = run_tx(st, "TREASURY_WITHDRAW", "alice", token="DAI", amount=400 * DAI_UNIT)

    assert out["value"] == 400 * FISC_UNIT
    assert tokens.balance_of(st, "DAI", "TREASURY") == 600 * DAI_UNIT
    assert treasury.summary(st)["total_reserves"] == 600 * FISC_UNIT


def test_incur_debt_checks_collateral_then_limit(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    _stake(st, run_tx, "alice", 500 * FISC_UNIT)
    assert stoken.balance_of(st, "alice") == 500 * FISC_UNIT

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_INCUR_DEBT", "alice", token="FISC", amount=400 * FISC_UNIT)
    assert ei.value.reason == "exceeds_limit"

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_INCUR_DEBT", "alice", token="FISC", amount=600 * FISC_UNIT)
    assert ei.value.reason == "insufficient_balance"

    supply_before = tokens.total_supply(st, "FISC")
    out = run_tx(st, "TREASURY_INCUR_DEBT", "alice", token="FISC", amount=200 * FISC_UNIT)
    assert out["value"] == 200 * FISC_UNIT
    assert stoken.debt_balance(st, "alice") == 200 * FISC_UNIT
    assert tokens.total_supply(st, "FISC") == supply_before + 200 * FISC_UNIT

    summary = treasury.summary(st)
    assert summary["total_debt"] == 200 * FISC_UNIT
    assert summary["fisc_debt"] == 200 * FISC_UNIT
    assert summary["base_supply"] == supply_before


def test_debt_locks_the_collateral(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    _stake(st, run_tx, "alice", 500 * FISC_UNIT)
    run_tx(st, "TREASURY_INCUR_DEBT", "alice", token="FISC", amount=200 * FISC_UNIT)

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TOKEN_TRANSFER", "alice", token="SFISC", to="bob", amount=301 * FISC_UNIT)
    assert ei.value.reason == "debt_locked"

    run_tx(st, "TOKEN_TRANSFER", "alice", token="SFISC", to="bob", amount=300 * FISC_UNIT)
    assert stoken.balance_of(st, "alice") == 200 * FISC_UNIT


def test_repay_debt_with_fisc(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    _stake(st, run_tx, "alice", 500 * FISC_UNIT)
    run_tx(st, "TREASURY_INCUR_DEBT", "alice", token="FISC", amount=200 * FISC_UNIT)

    run_tx(st, "TOKEN_APPROVE", "alice", token="FISC", spender="TREASURY", amount=150 * FISC_UNIT)
    out = run_tx(st, "TREASURY_REPAY_DEBT_WITH_FISC", "alice", amount=150 * FISC_UNIT)

    assert out["value"] == 150 * FISC_UNIT
    assert stoken.debt_balance(st, "alice") == 50 * FISC_UNIT
    assert treasury.summary(st)["total_debt"] == 50 * FISC_UNIT
    assert treasury.summary(st)["fisc_debt"] == 50 * FISC_UNIT

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_REPAY_DEBT_WITH_FISC", "alice", amount=60 * FISC_UNIT)
    assert ei.value.reason in {"insufficient_allowance", "exceeds_debt"}


def test_reserve_debt_round_trip(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    run_tx(st, "TOKEN_APPROVE", "alice", token="DAI", spender="TREASURY", amount=1000 * DAI_UNIT)
    run_tx(st, "TREASURY_DEPOSIT", "alice", token="DAI", amount=1000 * DAI_UNIT, profit=0)
    _stake(st, run_tx, "alice", 500 * FISC_UNIT)

    run_tx(st, "TREASURY_INCUR_DEBT", "alice", token="DAI", amount=100 * DAI_UNIT)
    assert stoken.debt_balance(st, "alice") == 100 * FISC_UNIT
    assert treasury.summary(st)["total_reserves"] == 900 * FISC_UNIT
    assert treasury.summary(st)["fisc_debt"] == 0

    run_tx(st, "TOKEN_APPROVE", "alice", token="DAI", spender="TREASURY", amount=100 * DAI_UNIT)
    run_tx(st, "TREASURY_REPAY_DEBT_WITH_RESERVE", "alice", token="DAI", amount=100 * DAI_UNIT)
    assert stoken.debt_balance(st, "alice") == 0
    assert treasury.summary(st)["total_reserves"] == 1000 * FISC_UNIT
    assert treasury.summary(st)["total_debt"] == 0


def test_audit_reserves_counts_held_tokens(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    tokens.mint(st, "DAI", "TREASURY", 7 * DAI_UNIT)
    out = run_tx(st, "TREASURY_AUDIT_RESERVES", "gov")
    assert out["total_reserves"] == 7 * FISC_UNIT

    with pytest.raises(ApplyError):
        run_tx(st, "TREASURY_AUDIT_RESERVES", "alice")


def test_manage_is_bounded_by_excess_reserves(genesis_doc, deploy, run_tx) -> None:
    doc = _debtor_doc(genesis_doc)
    doc["balances"] = [{"token": "DAI", "account": "alice", "amount": 10_000 * DAI_UNIT}]
    doc["treasury"]["permissions"].append({"status": RESERVEMANAGER, "address": "bob"})
    st = deploy(doc)
    run_tx(st, "TOKEN_APPROVE", "alice", token="DAI", spender="TREASURY", amount=1000 * DAI_UNIT)
    run_tx(st, "TREASURY_DEPOSIT", "alice", token="DAI", amount=1000 * DAI_UNIT, profit=100 * FISC_UNIT)

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_MANAGE", "bob", token="DAI", amount=101 * DAI_UNIT)
    assert ei.value.reason == "insufficient_reserves"

    run_tx(st, "TREASURY_MANAGE", "bob", token="DAI", amount=100 * DAI_UNIT)
    assert tokens.balance_of(st, "DAI", "bob") == 100 * DAI_UNIT
    assert treasury.excess_reserves(st) == 0


def test_fisc_mint_is_vault_only(state, run_tx) -> None:
    with pytest.raises(ApplyError) as ei:
        run_tx(state, "TOKEN_MINT", "gov", token="FISC", to="gov", amount=1)
    assert ei.value.reason == "only_vault"

    with pytest.raises(ApplyError) as ei:
        run_tx(state, "TOKEN_MINT", "dai_minter", token="SFISC", to="x", amount=1)
    assert ei.value.reason == "rebasing_ledger_not_mintable"

    run_tx(state, "TOKEN_MINT", "dai_minter", token="DAI", to="bob", amount=5)
    assert tokens.balance_of(state, "DAI", "bob") == 5


# ---------------------------------------------------------------------------
# Permission timelock
# ---------------------------------------------------------------------------


def _timelocked(deploy, genesis_doc, blocks: int = 5):
    genesis_doc["treasury"]["blocks_needed_for_queue"] = blocks
    genesis_doc["treasury"]["enable_timelock"] = True
    return deploy(genesis_doc)


def test_enable_is_refused_while_timelocked(genesis_doc, deploy, run_tx) -> None:
    st = _timelocked(deploy, genesis_doc)
    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_ENABLE", "gov", status=RESERVEDEPOSITOR, address="bob")
    assert ei.value.reason == "timelock_enabled"


def test_queue_then_execute_after_delay(genesis_doc, deploy, run_tx) -> None:
    st = _timelocked(deploy, genesis_doc)
    out = run_tx(st, "TREASURY_QUEUE_TIMELOCK", "gov", status=RESERVEDEPOSITOR, address="bob")
    assert out["index"] == 0
    assert st["treasury"]["queue"][0]["timelock_end"] == 6

    st["height"] = 5
    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_EXECUTE", "alice", index=0)
    assert ei.value.reason == "timelock_not_complete"
    assert not treasury.permitted(st, RESERVEDEPOSITOR, "bob")

    st["height"] = 6
    run_tx(st, "TREASURY_EXECUTE", "alice", index=0)
    assert treasury.permitted(st, RESERVEDEPOSITOR, "bob")
    assert "bob" in treasury.registry(st, RESERVEDEPOSITOR)

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_EXECUTE", "alice", index=0)
    assert ei.value.reason == "action_executed"


def test_manager_statuses_wait_twice_as_long(genesis_doc, deploy, run_tx) -> None:
    st = _timelocked(deploy, genesis_doc)
    run_tx(st, "TREASURY_QUEUE_TIMELOCK", "gov", status=LIQUIDITYMANAGER, address="bob")
    assert st["treasury"]["queue"][0]["timelock_end"] == 11


def test_nullified_action_cannot_execute(genesis_doc, deploy, run_tx) -> None:
    st = _timelocked(deploy, genesis_doc)
    run_tx(st, "TREASURY_QUEUE_TIMELOCK", "gov", status=RESERVEDEPOSITOR, address="bob")
    run_tx(st, "TREASURY_NULLIFY", "gov", index=0)
    st["height"] = 50
    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_EXECUTE", "alice", index=0)
    assert ei.value.reason == "action_nullified"

    with pytest.raises(ApplyError) as ei:
        run_tx(st, "TREASURY_EXECUTE", "alice", index=3)
    assert ei.value.code == "not_found"


def test_disable_timelock_is_two_step(genesis_doc, deploy, run_tx) -> None:
    st = _timelocked(deploy, genesis_doc)
    out = run_tx(st, "TREASURY_DISABLE_TIMELOCK", "gov")
    assert out["disabled"] is False
    assert out["disable_timelock_at"] == 1 + 5 * 7

    st["height"] = 35
    assert run_tx(st, "TREASURY_DISABLE_TIMELOCK", "gov")["disabled"] is False
    # Called before the delay elapsed: re-armed from the current height.
    assert st["treasury"]["disable_timelock_at"] == 35 + 5 * 7

    st["height"] = 71
    out = run_tx(st, "TREASURY_DISABLE_TIMELOCK", "gov")
    assert out["disabled"] is True
    assert treasury.summary(st)["timelock_enabled"] is False

    run_tx(st, "TREASURY_ENABLE", "gov", status=RESERVEDEPOSITOR, address="bob")
    assert treasury.permitted(st, RESERVEDEPOSITOR, "bob")


def test_initialize_turns_the_timelock_on_once(state, run_tx) -> None:
    run_tx(state, "TREASURY_INITIALIZE", "gov")
    assert treasury.summary(state)["timelock_enabled"] is True
    with pytest.raises(ApplyError) as ei:
        run_tx(state, "TREASURY_INITIALIZE", "gov")
    assert ei.value.reason == "already_initialized"


def test_disable_revokes_permission(genesis_doc, deploy, run_tx) -> None:
    st = deploy(_debtor_doc(genesis_doc))
    run_tx(st, "TREASURY_DISABLE", "guardian", status=RESERVEDEPOSITOR, address="alice")
    assert not treasury.permitted(st, RESERVEDEPOSITOR, "alice")
    # Registry entries are never removed.
    assert "alice" in treasury.registry(st, RESERVEDEPOSITOR)
