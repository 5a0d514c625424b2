from __future__ import annotations

import copy
import json
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from fiscus.runtime.block_hash import compute_receipts_root, ensure_block_hash, make_block_header
from fiscus.runtime.domain_apply import ApplyError, apply_tx_atomic
from fiscus.runtime.events import drain_events
from fiscus.runtime.genesis_config import apply_genesis_config_to_ledger_state, load_genesis
from fiscus.runtime.mempool import PersistentMempool, compute_tx_id
from fiscus.runtime.metrics import inc_counter, set_gauge
from fiscus.runtime.runtime_logging import log_event
from fiscus.runtime.sqlite_db import SqliteDB, SqliteLedgerStore, _canon_json
from fiscus.runtime.state_invariants import ensure_state
from fiscus.runtime.tx_admission import admit_tx
from fiscus.runtime.tx_admission_types import TxEnvelope
from fiscus.tx.canon import TxIndex, default_tx_index

Json = Dict[str, Any]

log = logging.getLogger("fiscus.executor")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _ensure_parent(path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def _safe_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


@dataclass
class ExecutorMeta:
    ok: bool
    error: str = ""
    height: int = 0
    block_id: str = ""
    applied_count: int = 0
    rejected_count: int = 0


class ExecutorError(RuntimeError):
    pass


class FiscusExecutor:
    """Fiscus executor using SQLite for persistence (ledger, blocks, receipts, mempool).

    Txs are admitted into the mempool and applied when a block is produced.
    Every tx in a block sees `state["height"]` equal to the block height, so a
    rebase triggered inside the block compares the epoch end against it.
    """

    def __init__(
        self,
        *,
        db_path: str,
        node_id: str,
        chain_id: str,
        genesis_path: str = "",
        tx_index: Optional[TxIndex] = None,
    ) -> None:
        self.node_id = str(node_id)
        self.chain_id = str(chain_id)
        self.genesis_path = str(genesis_path or "")

        # Serializes submit and block production between API threads and the block loop.
        self._lock = threading.RLock()

        self.db_path = str(db_path)
        _ensure_parent(self.db_path)

        self._db = SqliteDB(path=self.db_path)
        self._db.init_schema()

        self._ledger_store = SqliteLedgerStore(db=self._db)
        self._mempool = PersistentMempool(db=self._db)

        if self._ledger_store.exists():
            self.state = self._ledger_store.read()
        else:
            self.state = self._initial_state()
            self._ledger_store.write(self.state)

        self._check_db_consistency_fail_closed()

        st_chain_id = str(self.state.get("chain_id") or "").strip()
        if st_chain_id and st_chain_id != self.chain_id:
            raise ExecutorError(
                f"chain_id mismatch: db={st_chain_id!r} executor={self.chain_id!r}. Refuse to start."
            )

        self.tx_index: TxIndex = tx_index or default_tx_index()
        set_gauge("height", _safe_int(self.state.get("height"), 0))

    def _initial_state(self) -> Json:
        st: Json = {
            "chain_id": self.chain_id,
            "height": 0,
            "tip": "",
            "tip_hash": "",
            "tip_ts_ms": 0,
            "created_ms": _now_ms(),
        }
        ensure_state(st)
        if self.genesis_path:
            cfg = load_genesis(self.genesis_path)
            if cfg.chain_id and cfg.chain_id != self.chain_id:
                raise ExecutorError(
                    f"genesis chain_id {cfg.chain_id!r} does not match executor chain_id {self.chain_id!r}"
                )
            apply_genesis_config_to_ledger_state(st, cfg)
            log_event(log, "genesis_applied", chain_id=self.chain_id, path=self.genesis_path)
        return st

    # ----------------------------
    # DB consistency checks
    # ----------------------------

    def _check_db_consistency_fail_closed(self) -> None:
        """Fail-closed if persisted blocks do not match the snapshot height."""
        st_h = _safe_int(self.state.get("height"), 0)

        with self._db.connection() as con:
            row = con.execute("SELECT MAX(height) AS h FROM blocks;").fetchone()
            max_h = int(row["h"]) if (row is not None and row["h"] is not None) else 0

        if st_h != max_h:
            raise ExecutorError(
                f"db_invariant_violation: snapshot height {st_h} but persisted blocks end at {max_h}. "
                "Refuse to start."
            )
        if st_h == 0:
            return

        blk = self.get_block_by_height(st_h)
        st_tip_hash = str(self.state.get("tip_hash") or "").strip()
        if blk is None or (st_tip_hash and st_tip_hash != str(blk.get("block_hash") or "")):
            raise ExecutorError(
                "db_invariant_violation: snapshot tip_hash does not match persisted block hash. Refuse to start."
            )

    # ----------------------------
    # Public accessors
    # ----------------------------

    @property
    def mempool(self) -> PersistentMempool:
        return self._mempool

    def read_state(self) -> Json:
        return self.state

    # ----------------------------
    # Tx submission
    # ----------------------------

    def _ledger_for_admission(self, signer: str) -> Json:
        """Accounts/params view where the signer nonce includes its queued txs.

        Contracts and token records ride along so admission can refuse protocol
        addresses as signers.
        """
        accounts = self.state.get("accounts") if isinstance(self.state.get("accounts"), dict) else {}
        view: Json = {
            "accounts": accounts,
            "params": self.state.get("params") or {},
            "contracts": self.state.get("contracts") or {},
            "tokens": self.state.get("tokens") or {},
        }

        pending = self._mempool.highest_nonce(signer)
        acct = accounts.get(signer)
        if pending is None:
            return view
        if isinstance(acct, dict) and pending > _safe_int(acct.get("nonce"), 0):
            acct2 = dict(acct)
            acct2["nonce"] = pending
            view["accounts"] = dict(accounts)
            view["accounts"][signer] = acct2
        elif not isinstance(acct, dict):
            view["accounts"] = dict(accounts)
            view["accounts"][signer] = {"nonce": pending, "keys": []}
        return view

    def submit_tx(self, env: Json) -> Json:
        with self._lock:
            return self._submit_tx(env)

    def _submit_tx(self, env: Json) -> Json:
        if not isinstance(env, dict):
            return {"ok": False, "error": "bad_env:not_object"}

        signer = str(env.get("signer") or "").strip()
        try:
            tx_id = compute_tx_id(env)
        except (TypeError, ValueError):
            tx_id = ""
        if tx_id and self._mempool.has(tx_id):
            # Resubmission of a queued tx: idempotent (or a tx_id conflict).
            return self._mempool.add(env)

        verdict = admit_tx(tx=env, ledger=self._ledger_for_admission(signer), canon=self.tx_index, context="mempool")
        if not verdict.ok:
            inc_counter("tx_admission_rejected_total", 1)
            log_event(
                log,
                "tx_admission_rejected",
                signer=signer,
                tx_type=str(env.get("tx_type") or ""),
                code=verdict.code,
                reason=verdict.reason,
            )
            return {"ok": False, "error": verdict.code, "reason": verdict.reason, "details": verdict.details}

        out = self._mempool.add(env)
        if out.get("ok"):
            inc_counter("tx_admitted_total", 1)
            set_gauge("mempool_size", self._mempool.size())
        return out

    # ----------------------------
    # Block production
    # ----------------------------

    def produce_block(self, *, max_txs: int = 500, allow_empty: bool = False) -> ExecutorMeta:
        with self._lock:
            return self._produce_block(max_txs=max_txs, allow_empty=allow_empty)

    def _produce_block(self, *, max_txs: int, allow_empty: bool) -> ExecutorMeta:
        h0 = _safe_int(self.state.get("height"), 0)
        tip = str(self.state.get("tip") or "")

        blk, st2, receipts, err = self.build_block_candidate(max_txs=int(max_txs), allow_empty=allow_empty)
        if err == "empty":
            return ExecutorMeta(ok=True, height=h0, block_id=tip)
        if err or blk is None or st2 is None:
            return ExecutorMeta(ok=False, error=err or "produce_failed", height=h0, block_id=tip)

        return self.commit_block_candidate(block=blk, new_state=st2, receipts=receipts)

    def _expected_nonce(self, working: Json, env: TxEnvelope) -> int:
        acct = working.get("accounts", {}).get(env.signer)
        if not isinstance(acct, dict):
            return 1
        return _safe_int(acct.get("nonce"), 0) + 1

    def build_block_candidate(
        self,
        *,
        max_txs: int = 500,
        allow_empty: bool = False,
    ) -> Tuple[Optional[Json], Optional[Json], List[Json], str]:
        height = _safe_int(self.state.get("height"), 0)
        tip_hash = str(self.state.get("tip_hash") or "")
        ts_ms = max(_now_ms(), _safe_int(self.state.get("tip_ts_ms"), 0))

        txs = self._mempool.peek(limit=int(max_txs))
        if not txs and not bool(allow_empty):
            return None, None, [], "empty"

        working: Json = copy.deepcopy(self.state)
        ensure_state(working)
        # Anything left over from genesis or direct state edits belongs to no tx.
        drain_events(working)

        next_height = height + 1
        working["height"] = next_height

        receipts: List[Json] = []
        block_txs: List[Json] = []

        for raw in txs:
            env = TxEnvelope.from_json(raw)
            tx_id = str(raw.get("tx_id") or env.tx_id())
            receipt: Json = {"tx_id": tx_id, "height": next_height, "tx_type": env.tx_type, "signer": env.signer}

            expected = self._expected_nonce(working, env)
            if int(env.nonce) != expected:
                receipt.update(ok=False, code="bad_nonce", reason="nonce_must_be_next", result=None, events=[])
                receipt["details"] = {"expected": expected, "got": int(env.nonce)}
                receipts.append(receipt)
                inc_counter("tx_dropped_total", 1)
                log_event(log, "tx_dropped", tx_id=tx_id, reason="bad_nonce", expected=expected, got=int(env.nonce))
                continue

            try:
                result = apply_tx_atomic(working, env)
            except ApplyError as e:
                receipt.update(ok=False, code=e.code, reason=e.reason, details=e.details, result=None, events=[])
                inc_counter("tx_rejected_total", 1)
                log_event(log, "tx_rejected", tx_id=tx_id, tx_type=env.tx_type, code=e.code, reason=e.reason)
            else:
                receipt.update(ok=True, code="ok", reason="applied", details=None, result=result)
                receipt["events"] = drain_events(working)
                inc_counter("tx_applied_total", 1)
                log_event(log, "tx_applied", tx_id=tx_id, tx_type=env.tx_type, events=len(receipt["events"]))

            j = env.to_json()
            j["tx_id"] = tx_id
            block_txs.append(j)
            receipts.append(receipt)

        included_ids = [t["tx_id"] for t in block_txs]
        if not block_txs and not bool(allow_empty):
            # Only stale-nonce txs: drop them from the mempool without advancing height.
            self._drop_from_mempool([r["tx_id"] for r in receipts])
            return None, None, [], "empty"

        header = make_block_header(
            chain_id=self.chain_id,
            height=next_height,
            prev_block_hash=tip_hash,
            block_ts_ms=ts_ms,
            tx_ids=included_ids,
            state_events=sum(len(r.get("events") or []) for r in receipts),
            receipts_root=compute_receipts_root([r for r in receipts if r["tx_id"] in set(included_ids)]),
        )
        block_id = f"{next_height}:{ts_ms}:{len(block_txs)}"
        block: Json = {
            "block_id": block_id,
            "height": next_height,
            "prev_block_id": str(self.state.get("tip") or ""),
            "prev_block_hash": tip_hash,
            "block_ts_ms": ts_ms,
            "header": header,
            "txs": block_txs,
        }
        block, bh = ensure_block_hash(block)

        working["tip"] = block_id
        working["tip_hash"] = bh
        working["tip_ts_ms"] = ts_ms
        return block, working, receipts, ""

    def _drop_from_mempool(self, tx_ids: List[str]) -> None:
        with self._db.write_tx() as con:
            for tx_id in tx_ids:
                con.execute("DELETE FROM mempool WHERE tx_id=?;", (str(tx_id),))

    def commit_block_candidate(self, *, block: Json, new_state: Json, receipts: List[Json]) -> ExecutorMeta:
        """Atomically persist a block + receipts + mempool cleanup + ledger snapshot."""
        height = int(block.get("height") or 0)
        block_id = str(block.get("block_id") or "")
        if not block_id or height <= 0:
            return ExecutorMeta(ok=False, error="bad_block")

        now = _now_ms()
        block_json = _canon_json(block)

        with self._db.write_tx() as con:
            con.execute(
                "INSERT INTO blocks(height, block_id, block_json, created_ts_ms) VALUES(?,?,?,?);",
                (height, block_id, block_json, now),
            )
            for r in receipts:
                con.execute(
                    "INSERT OR REPLACE INTO receipts(tx_id, height, ok, receipt_json) VALUES(?,?,?,?);",
                    (str(r["tx_id"]), height, 1 if r.get("ok") else 0, _canon_json(r)),
                )
                con.execute("DELETE FROM mempool WHERE tx_id=?;", (str(r["tx_id"]),))
            SqliteLedgerStore.upsert(con, new_state)

        self.state = new_state

        applied = sum(1 for r in receipts if r.get("ok"))
        rejected = len(receipts) - applied
        inc_counter("blocks_produced_total", 1)
        set_gauge("height", height)
        set_gauge("mempool_size", self._mempool.size())
        log_event(log, "block_produced", height=height, block_id=block_id, applied=applied, rejected=rejected)

        return ExecutorMeta(
            ok=True,
            height=height,
            block_id=block_id,
            applied_count=applied,
            rejected_count=rejected,
        )

    # ----------------------------
    # Block + receipt APIs
    # ----------------------------

    def get_block_by_height(self, height: int) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT block_json FROM blocks WHERE height=? LIMIT 1;", (int(height),)).fetchone()
        if row is None:
            return None
        blk = json.loads(str(row["block_json"]))
        return blk if isinstance(blk, dict) else None

    def get_latest_block(self) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT block_json FROM blocks ORDER BY height DESC LIMIT 1;").fetchone()
        if row is None:
            return None
        blk = json.loads(str(row["block_json"]))
        return blk if isinstance(blk, dict) else None

    def get_receipt(self, tx_id: str) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT receipt_json FROM receipts WHERE tx_id=? LIMIT 1;", (str(tx_id),)).fetchone()
        if row is None:
            return None
        rec = json.loads(str(row["receipt_json"]))
        return rec if isinstance(rec, dict) else None

    def tx_status(self, tx_id: str) -> Json:
        rec = self.get_receipt(tx_id)
        if rec is not None:
            return {"tx_id": tx_id, "status": "confirmed" if rec.get("ok") else "failed", "receipt": rec}
        if self._mempool.has(tx_id):
            return {"tx_id": tx_id, "status": "pending", "receipt": None}
        return {"tx_id": tx_id, "status": "unknown", "receipt": None}

    # ----------------------------
    # Maintenance
    # ----------------------------

    def prune_mempool_expired(self) -> int:
        return self._mempool.prune_expired()


__all__ = ["ExecutorError", "ExecutorMeta", "FiscusExecutor"]
