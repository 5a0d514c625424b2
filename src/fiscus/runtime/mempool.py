from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fiscus.runtime.sqlite_db import SqliteDB, _canon_json
from fiscus.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def compute_tx_id(env: Json) -> str:
    """Deterministic tx_id from the signed envelope fields.

    Local stamps (tx_id, received_ms, expires_ms) and the signature are not part
    of the id, so re-stamping or re-signing never changes it.
    """
    return TxEnvelope.from_json(env).tx_id()


@dataclass
class PersistentMempool:
    """SQLite-backed mempool.

    Table schema:
      mempool(tx_id PK, envelope_json, signer, tx_type, nonce, received_ms, expires_ms)

    Guarantees:
      - tx_id is always derived from envelope content, never trusted from the caller
      - idempotent insert: same tx_id + identical envelope is accepted
      - conflicting insert: same tx_id + different envelope is rejected
      - peek order is arrival order; expired items are filtered

    Env overrides:
      - FISCUS_MEMPOOL_TTL_MS
      - FISCUS_MEMPOOL_MAX
      - FISCUS_MEMPOOL_MAX_PER_SIGNER
    """

    db: SqliteDB

    default_ttl_ms: int = 30 * 60 * 1000
    max_items: int = 10_000
    max_per_signer: int = 256

    def __post_init__(self) -> None:
        self.db.init_schema()
        self.default_ttl_ms = _env_int("FISCUS_MEMPOOL_TTL_MS", self.default_ttl_ms)
        self.max_items = max(0, _env_int("FISCUS_MEMPOOL_MAX", self.max_items))
        self.max_per_signer = max(0, _env_int("FISCUS_MEMPOOL_MAX_PER_SIGNER", self.max_per_signer))

    def add(self, env: Json) -> Json:
        if not isinstance(env, dict):
            return {"ok": False, "error": "bad_env:not_object"}

        norm = TxEnvelope.from_json(env)
        if not norm.signer:
            return {"ok": False, "error": "bad_env:missing_signer"}
        if not norm.tx_type:
            return {"ok": False, "error": "bad_env:missing_tx_type"}

        provided = str(env.get("tx_id") or "").strip()
        tx_id = norm.tx_id()
        if provided and provided != tx_id:
            return {"ok": False, "error": "bad_env:tx_id_mismatch"}

        received_ms = _now_ms()
        expires_ms = received_ms + int(self.default_ttl_ms)

        env_persist: Json = norm.to_json()
        env_persist["tx_id"] = tx_id
        env_json = _canon_json(env_persist)

        with self.db.write_tx() as con:
            con.execute("DELETE FROM mempool WHERE expires_ms <= ?;", (int(received_ms),))

            existing = con.execute("SELECT envelope_json FROM mempool WHERE tx_id=? LIMIT 1;", (tx_id,)).fetchone()
            if existing is not None:
                if str(existing["envelope_json"]) != env_json:
                    return {"ok": False, "error": "tx_id_conflict"}
                return {"ok": True, "tx_id": tx_id, "duplicate": True}

            if self.max_items > 0:
                row = con.execute("SELECT COUNT(1) AS n FROM mempool;").fetchone()
                if int(row["n"]) >= self.max_items:
                    return {"ok": False, "error": "mempool_full", "details": {"max": self.max_items}}

            if self.max_per_signer > 0:
                row = con.execute("SELECT COUNT(1) AS n FROM mempool WHERE signer=?;", (norm.signer,)).fetchone()
                if int(row["n"]) >= self.max_per_signer:
                    return {
                        "ok": False,
                        "error": "mempool_signer_quota",
                        "details": {"signer": norm.signer, "max": self.max_per_signer},
                    }

            con.execute(
                """
                INSERT INTO mempool(tx_id, envelope_json, signer, tx_type, nonce, received_ms, expires_ms)
                VALUES(?, ?, ?, ?, ?, ?, ?);
                """,
                (tx_id, env_json, norm.signer, norm.tx_type, int(norm.nonce), int(received_ms), int(expires_ms)),
            )

        return {"ok": True, "tx_id": tx_id, "received_ms": received_ms, "expires_ms": expires_ms}

    def remove(self, tx_id: str) -> Json:
        tid = str(tx_id or "").strip()
        if not tid:
            return {"ok": False, "error": "missing_tx_id"}
        with self.db.write_tx() as con:
            con.execute("DELETE FROM mempool WHERE tx_id=?;", (tid,))
        return {"ok": True, "tx_id": tid}

    def peek(self, *, limit: int = 1000) -> List[Json]:
        lim = int(limit) if int(limit) > 0 else 1000
        with self.db.connection() as con:
            rows = con.execute(
                """
                SELECT envelope_json
                FROM mempool
                WHERE expires_ms > ?
                ORDER BY received_ms ASC, rowid ASC
                LIMIT ?;
                """,
                (_now_ms(), lim),
            ).fetchall()

        out: List[Json] = []
        for r in rows:
            env = json.loads(str(r["envelope_json"]))
            if isinstance(env, dict):
                out.append(env)
        return out

    def has(self, tx_id: str) -> bool:
        with self.db.connection() as con:
            row = con.execute(
                "SELECT 1 FROM mempool WHERE tx_id=? AND expires_ms > ? LIMIT 1;", (str(tx_id), _now_ms())
            ).fetchone()
        return row is not None

    def highest_nonce(self, signer: str) -> Optional[int]:
        """Highest pending nonce for `signer`, or None when nothing is queued."""
        with self.db.connection() as con:
            row = con.execute(
                "SELECT MAX(nonce) AS n FROM mempool WHERE signer=? AND expires_ms > ?;",
                (str(signer), _now_ms()),
            ).fetchone()
        if row is None or row["n"] is None:
            return None
        return int(row["n"])

    def size(self) -> int:
        with self.db.connection() as con:
            row = con.execute("SELECT COUNT(1) AS n FROM mempool;").fetchone()
            return int(row["n"]) if row is not None else 0

    def prune_expired(self) -> int:
        with self.db.write_tx() as con:
            cur = con.execute("DELETE FROM mempool WHERE expires_ms <= ?;", (_now_ms(),))
            return int(cur.rowcount or 0)


__all__ = ["PersistentMempool", "compute_tx_id"]
