from __future__ import annotations

from pathlib import Path

import pytest

from fiscus.runtime.apply import staking, stoken, tokens
from fiscus.runtime.block_hash import compute_receipts_root
from fiscus.runtime.block_loop import BlockLoopConfig, BlockProducerLoop
from fiscus.runtime.executor import ExecutorError, FiscusExecutor
from fiscus.testing.sigtools import pubkey_for_label, sign_tx_dict, signed_tx


@pytest.fixture(autouse=True)
def _signed_mode(monkeypatch) -> None:
    monkeypatch.delenv("FISCUS_ALLOW_UNSIGNED_TXS", raising=False)
    monkeypatch.setenv("FISCUS_MODE", "prod")


def _executor(tmp_path: Path, genesis_path: str, *, chain_id: str = "fiscus-test") -> FiscusExecutor:
    return FiscusExecutor(
        db_path=str(tmp_path / "fiscus.db"),
        node_id="n1",
        chain_id=chain_id,
        genesis_path=genesis_path,
    )


def test_genesis_deploys_protocol_at_height_zero(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)
    st = ex.read_state()
    assert st["height"] == 0
    assert st["genesis"]["chain_id"] == "fiscus-test"
    assert st["contracts"]["staking"] == "STAKING"
    assert tokens.balance_of(st, "FISC", "alice") == 10_000 * 10**9
    assert st["events"] == []
    assert ex.get_latest_block() is None


def test_genesis_chain_id_must_match(tmp_path: Path, genesis_path: str) -> None:
    with pytest.raises(ExecutorError):
        _executor(tmp_path, genesis_path, chain_id="other-chain")


def test_stake_through_a_block(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)

    approve = signed_tx("TOKEN_APPROVE", "alice", 1, token="FISC", spender="STAKING", amount=1000)
    stake = signed_tx("STAKE", "alice", 2, amount=1000, claim=True)
    r1 = ex.submit_tx(approve)
    r2 = ex.submit_tx(stake)
    assert r1["ok"] is True
    assert r2["ok"] is True
    assert ex.tx_status(r2["tx_id"])["status"] == "pending"

    meta = ex.produce_block(max_txs=10)
    assert meta.ok is True
    assert meta.height == 1
    assert meta.applied_count == 2
    assert meta.rejected_count == 0

    st = ex.read_state()
    assert stoken.balance_of(st, "alice") == 1000
    assert st["accounts"]["alice"]["nonce"] == 2
    assert st["events"] == []

    status = ex.tx_status(r2["tx_id"])
    assert status["status"] == "confirmed"
    names = [e["event"] for e in status["receipt"]["events"]]
    assert "Staked" in names
    assert all(e["height"] == 1 for e in status["receipt"]["events"])

    blk = ex.get_block_by_height(1)
    assert blk is not None
    assert [t["tx_id"] for t in blk["txs"]] == [r1["tx_id"], r2["tx_id"]]
    assert blk["block_hash"]
    assert ex.mempool.size() == 0


def test_failed_tx_gets_a_receipt_and_consumes_nonce(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)

    bad = ex.submit_tx(signed_tx("UNSTAKE", "alice", 1, amount=5))
    assert bad["ok"] is True
    meta = ex.produce_block()
    assert meta.ok is True
    assert meta.rejected_count == 1

    status = ex.tx_status(bad["tx_id"])
    assert status["status"] == "failed"
    assert status["receipt"]["code"] == "limit_exceeded"
    assert status["receipt"]["reason"] == "insufficient_allowance"
    assert ex.read_state()["accounts"]["alice"]["nonce"] == 1

    header = ex.get_block_by_height(1)["header"]
    assert header["receipts_root"] == compute_receipts_root([status["receipt"]])
    assert header["receipts_root"] != compute_receipts_root([dict(status["receipt"], ok=True, code="ok")])

    good = ex.submit_tx(signed_tx("TOGGLE_LOCK", "alice", 2))
    assert good["ok"] is True
    assert ex.produce_block().applied_count == 1
    assert staking.warmup_info(ex.read_state(), "alice")["lock"] is True


def test_admission_rejections(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)

    unsigned = {"tx_type": "TOGGLE_LOCK", "signer": "alice", "nonce": 1, "payload": {}}
    assert ex.submit_tx(unsigned)["error"] == "bad_sig"

    wrong_key = sign_tx_dict(unsigned, label="bob")
    assert ex.submit_tx(wrong_key)["error"] == "bad_sig"

    assert ex.submit_tx(signed_tx("TOGGLE_LOCK", "alice", 3))["error"] == "bad_nonce"
    assert ex.submit_tx(signed_tx("TOGGLE_LOCK", "mallory", 1))["error"] == "unknown_signer"
    assert ex.submit_tx(signed_tx("NOT_A_TX", "alice", 1))["error"] == "unknown_tx"
    assert ex.submit_tx(signed_tx("STAKE", "alice", 1))["reason"] == "missing_amount"

    system = dict(signed_tx("REBASE", "alice", 1), system=True)
    assert ex.submit_tx(system)["error"] == "forbidden"

    assert ex.mempool.size() == 0


def test_staking_engine_address_cannot_be_taken_over(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)
    ex.submit_tx(signed_tx("TOKEN_APPROVE", "alice", 1, token="FISC", spender="STAKING", amount=1000))
    ex.submit_tx(signed_tx("STAKE", "alice", 2, amount=1000, claim=True))
    assert ex.produce_block().applied_count == 2
    assert tokens.balance_of(ex.read_state(), "FISC", "STAKING") == 1000

    hijack = sign_tx_dict(
        {"tx_type": "ACCOUNT_REGISTER", "signer": "STAKING", "nonce": 1, "payload": {"pubkey": pubkey_for_label("mallory")}},
        label="mallory",
    )
    out = ex.submit_tx(hijack)
    assert out["ok"] is False
    assert out["error"] == "forbidden"

    drain = sign_tx_dict(
        {"tx_type": "TOKEN_TRANSFER", "signer": "STAKING", "nonce": 1, "payload": {"token": "FISC", "to": "mallory", "amount": 1000}},
        label="mallory",
    )
    assert ex.submit_tx(drain)["error"] == "forbidden"
    mint = sign_tx_dict(
        {"tx_type": "TOKEN_MINT", "signer": "STAKING", "nonce": 1, "payload": {"token": "GFISC", "to": "mallory", "amount": 10**18}},
        label="mallory",
    )
    assert ex.submit_tx(mint)["error"] == "forbidden"

    assert ex.mempool.size() == 0
    st = ex.read_state()
    assert "STAKING" not in st["accounts"]
    assert tokens.balance_of(st, "FISC", "STAKING") == 1000


def test_resubmitting_a_queued_tx_is_idempotent(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)
    tx = signed_tx("TOGGLE_LOCK", "alice", 1)
    first = ex.submit_tx(tx)
    again = ex.submit_tx(tx)
    assert first["ok"] is True
    assert again["ok"] is True
    assert again["duplicate"] is True
    assert again["tx_id"] == first["tx_id"]
    assert ex.mempool.size() == 1


def test_stale_nonce_is_dropped_without_a_block(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)
    out = ex.mempool.add(signed_tx("TOGGLE_LOCK", "alice", 7))
    assert out["ok"] is True

    meta = ex.produce_block()
    assert meta.ok is True
    assert meta.height == 0
    assert ex.mempool.size() == 0
    assert ex.read_state()["height"] == 0


def test_empty_blocks_chain_hashes(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)
    assert ex.produce_block().height == 0

    assert ex.produce_block(allow_empty=True).height == 1
    assert ex.produce_block(allow_empty=True).height == 2

    b1 = ex.get_block_by_height(1)
    b2 = ex.get_block_by_height(2)
    assert b2["prev_block_hash"] == b1["block_hash"]
    assert b2["prev_block_id"] == b1["block_id"]
    assert ex.read_state()["tip_hash"] == b2["block_hash"]


def test_rebase_inside_a_block_uses_block_height(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)
    for _ in range(8):
        assert ex.produce_block(allow_empty=True).ok is True
    assert staking.blocks_to_next_epoch(ex.read_state()) == 1

    ex.submit_tx(signed_tx("REBASE", "bob", 1))
    meta = ex.produce_block()
    assert meta.height == 9
    assert staking.epoch(ex.read_state())["number"] == 2


def test_restart_restores_state_and_refuses_other_chain(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)
    ex.submit_tx(signed_tx("TOKEN_APPROVE", "alice", 1, token="FISC", spender="STAKING", amount=10))
    ex.submit_tx(signed_tx("STAKE", "alice", 2, amount=10, claim=True))
    assert ex.produce_block().height == 1
    pending = ex.submit_tx(signed_tx("TOGGLE_LOCK", "alice", 3))

    ex2 = _executor(tmp_path, genesis_path)
    st = ex2.read_state()
    assert st["height"] == 1
    assert stoken.balance_of(st, "alice") == 10
    assert ex2.tx_status(pending["tx_id"])["status"] == "pending"
    assert ex2.produce_block().height == 2

    with pytest.raises(ExecutorError):
        FiscusExecutor(db_path=str(tmp_path / "fiscus.db"), node_id="n1", chain_id="other-chain")


def test_block_loop_tick_produces_blocks(tmp_path: Path, genesis_path: str) -> None:
    ex = _executor(tmp_path, genesis_path)
    cfg = BlockLoopConfig(
        interval_ms=250,
        produce_empty_blocks=True,
        enabled=True,
        lock_path=str(tmp_path / "loop.lock"),
        max_block_txs=10,
        fail_fast_after=3,
        error_backoff_min_ms=50,
        error_backoff_max_ms=50,
    )
    loop = BlockProducerLoop(executor=ex, cfg=cfg)
    assert loop.tick() is True
    assert loop.tick() is True
    assert ex.read_state()["height"] == 2
    assert ex.block_loop_unhealthy is False


def test_block_loop_trips_fail_fast(tmp_path: Path, genesis_path: str, monkeypatch) -> None:
    ex = _executor(tmp_path, genesis_path)
    cfg = BlockLoopConfig(
        interval_ms=250,
        produce_empty_blocks=True,
        enabled=True,
        lock_path=str(tmp_path / "loop.lock"),
        max_block_txs=10,
        fail_fast_after=3,
        error_backoff_min_ms=50,
        error_backoff_max_ms=50,
    )
    loop = BlockProducerLoop(executor=ex, cfg=cfg)

    def _boom(**_kw):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(ex, "produce_block", _boom)
    assert loop.tick() is True
    assert loop.tick() is True
    assert loop.tick() is False
    assert ex.block_loop_unhealthy is True
    assert "disk on fire" in ex.block_loop_last_error
