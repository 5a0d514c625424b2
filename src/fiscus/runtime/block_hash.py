# src/fiscus/runtime/block_hash.py

from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Tuple

from fiscus.runtime.sqlite_db import _canon_json

Json = Dict[str, Any]


def compute_block_hash(*, header: Json) -> str:
    """sha256 hex digest over the canonical JSON encoding of a block header."""
    return hashlib.sha256(_canon_json(header).encode("utf-8")).hexdigest()


def compute_receipts_root(receipts: List[Json]) -> str:
    """Commit to each included tx outcome (id, ok, error code) in block order.

    A failed tx still consumes its nonce and lands in the block, so the header
    must distinguish it from a successful one.
    """
    leaves = [
        {"tx_id": str(r.get("tx_id") or ""), "ok": bool(r.get("ok")), "code": str(r.get("code") or "")}
        for r in receipts
    ]
    return hashlib.sha256(_canon_json(leaves).encode("utf-8")).hexdigest()


def make_block_header(
    *,
    chain_id: str,
    height: int,
    prev_block_hash: str,
    block_ts_ms: int,
    tx_ids: List[str],
    state_events: int,
    receipts_root: str = "",
) -> Json:
    """Create the canonical header structure used for hashing."""

    return {
        "chain_id": str(chain_id),
        "height": int(height),
        "prev_block_hash": str(prev_block_hash or ""),
        "block_ts_ms": int(block_ts_ms),
        "tx_ids": list(map(str, tx_ids)),
        "state_events": int(state_events),
        "receipts_root": str(receipts_root or ""),
    }


def ensure_block_hash(block: Json) -> Tuple[Json, str]:
    """Return (block_with_hash, block_hash), computing it from `block["header"]` if absent."""

    existing = block.get("block_hash")
    if isinstance(existing, str) and existing:
        return block, existing

    header = block.get("header")
    if not isinstance(header, dict):
        raise ValueError("block has no header")
    bh = compute_block_hash(header=header)
    block["block_hash"] = bh
    return block, bh


__all__ = ["compute_block_hash", "compute_receipts_root", "ensure_block_hash", "make_block_header"]
