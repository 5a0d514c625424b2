# src/fiscus/tx/canon.py
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, TypedDict

import yaml

DEFAULT_CANON_PATH = Path(__file__).resolve().parent / "tx_canon.yaml"


class CanonError(RuntimeError):
    pass


class CanonTxType(TypedDict, total=False):
    """
    Canonical TxType entry.

    total=False so we can carry extra forward-compatible fields
    while validating required fields at load-time.
    """
    id: int
    name: str
    domain: str
    origin: str
    context: str
    required: List[str]
    notes: str


@dataclass(frozen=True)
class TxIndex:
    """
    Normalized TxType index.

    - by_name uses upper-case tx type names
    - by_id uses int keys
    """
    tx_types: List[CanonTxType]
    by_name: Dict[str, CanonTxType]
    by_id: Dict[int, CanonTxType]
    meta: Dict[str, Any]
    source_sha256: str

    def get(self, name: str) -> Optional[CanonTxType]:
        return self.by_name.get(str(name).strip().upper())

    def get_by_id(self, tx_id: int) -> Optional[CanonTxType]:
        return self.by_id.get(int(tx_id))

    def names(self) -> List[str]:
        return [t["name"] for t in self.tx_types]

    def required_fields(self, name: str) -> List[str]:
        tx = self.get(name)
        if tx is None:
            return []
        return list(tx.get("required") or [])

    @classmethod
    def load_from_file(cls, path: str | Path) -> "TxIndex":
        """Load a canon file. `.json` is parsed as JSON, everything else as YAML."""
        return load_tx_index(path)


def _sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _normalize_id(v: Any) -> Optional[int]:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        try:
            return int(v.strip())
        except ValueError:
            return None
    return None


def _validate_entry(tx: Any) -> CanonTxType:
    if not isinstance(tx, dict):
        raise CanonError("tx entry must be an object")

    name = tx.get("name")
    if not isinstance(name, str) or not name.strip():
        raise CanonError("tx entry 'name' must be non-empty string")
    if "id" not in tx:
        raise CanonError(f"tx '{name}' missing required field: id")

    norm_id = _normalize_id(tx.get("id"))
    if norm_id is None:
        raise CanonError(f"tx '{name}' id must be int (or numeric-string)")

    required = tx.get("required") or []
    if not isinstance(required, list) or not all(isinstance(r, str) for r in required):
        raise CanonError(f"tx '{name}' required must be a list of payload keys")

    out: CanonTxType = dict(tx)  # type: ignore[assignment]
    out["id"] = norm_id
    out["name"] = name.strip().upper()
    out["origin"] = str(tx.get("origin") or "USER").strip().upper()
    out["context"] = str(tx.get("context") or "mempool").strip().lower()
    out["required"] = list(required)
    return out


def load_tx_index(path: str | Path) -> TxIndex:
    p = Path(path)
    if not p.exists():
        raise CanonError(f"canon artifact not found: {p}")
    raw = p.read_bytes()

    try:
        if p.suffix.lower() == ".json":
            obj = json.loads(raw.decode("utf-8"))
        else:
            obj = yaml.safe_load(raw.decode("utf-8"))
    except (ValueError, yaml.YAMLError) as e:
        raise CanonError(f"failed to parse canon {p}: {e}") from e

    if not isinstance(obj, dict):
        raise CanonError("canon root must be a mapping")

    txs = obj.get("tx_types") or obj.get("txs")
    if not isinstance(txs, list) or not txs:
        raise CanonError("canon does not contain a tx_types list")

    tx_list: List[CanonTxType] = []
    by_name: Dict[str, CanonTxType] = {}
    by_id: Dict[int, CanonTxType] = {}

    for entry in txs:
        tx = _validate_entry(entry)
        name = tx["name"]
        tx_id = int(tx["id"])
        if name in by_name:
            raise CanonError(f"duplicate tx name in canon: {name}")
        if tx_id in by_id:
            raise CanonError(f"duplicate tx id in canon: {tx_id}")
        by_name[name] = tx
        by_id[tx_id] = tx
        tx_list.append(tx)

    tx_list.sort(key=lambda x: int(x["id"]))
    meta = {k: v for k, v in obj.items() if k not in {"tx_types", "txs"}}
    meta.setdefault("_source", str(p))

    return TxIndex(
        tx_types=tx_list,
        by_name=by_name,
        by_id=by_id,
        meta=meta,
        source_sha256=_sha256_bytes(raw),
    )


@lru_cache(maxsize=1)
def default_tx_index() -> TxIndex:
    """The canon shipped with the package."""
    return load_tx_index(DEFAULT_CANON_PATH)


__all__ = ["CanonError", "CanonTxType", "DEFAULT_CANON_PATH", "TxIndex", "default_tx_index", "load_tx_index"]
