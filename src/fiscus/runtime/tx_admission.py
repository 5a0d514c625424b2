from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional, Tuple

from fiscus.crypto.sig import verify_tx_sig_against_any_key
from fiscus.runtime.apply.accounts import protocol_addresses
from fiscus.runtime.tx_admission_types import TxEnvelope, TxVerdict
from fiscus.tx.canon import TxIndex

Json = Dict[str, Any]


def _get_txdef(idx: Any, tx_type: str) -> Optional[Dict[str, Any]]:
    t = tx_type.strip().upper()
    by_name = getattr(idx, "by_name", None)
    if isinstance(by_name, dict):
        d = by_name.get(t)
        if isinstance(d, dict):
            return d
    return None


def _require(payload: Dict[str, Any], key: str) -> Optional[TxVerdict]:
    v = payload.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        return TxVerdict.reject("invalid_payload", f"missing_{key}", {"missing": key})
    return None


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except ValueError:
        return int(default)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return bool(default)
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def _is_non_prod_mode() -> bool:
    """Unsigned txs are only ever honored outside prod (FISCUS_MODE=dev|testnet)."""
    mode = (os.getenv("FISCUS_MODE") or "prod").strip().lower()
    return mode in {"dev", "testnet"}


def _json_size_bytes(obj: Any) -> int:
    """Compute JSON byte size. If not serializable, return -1 (unknown)."""
    if isinstance(obj, TxEnvelope):
        obj = obj.to_json()
    try:
        return len(json.dumps(obj, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def _validate_payload_limits(payload: Any) -> Optional[TxVerdict]:
    """Generic payload validation (shape + size caps)."""
    if not isinstance(payload, dict):
        return TxVerdict.reject("invalid_payload", "payload_must_be_object", {"type": str(type(payload))})

    max_payload_bytes = _env_int("FISCUS_MAX_TX_PAYLOAD_BYTES", 16 * 1024)
    max_payload_keys = _env_int("FISCUS_MAX_TX_PAYLOAD_KEYS", 64)
    max_string_bytes = _env_int("FISCUS_MAX_TX_STRING_BYTES", 1024)
    max_depth = _env_int("FISCUS_MAX_TX_NESTING", 4)

    if len(payload) > int(max_payload_keys):
        return TxVerdict.reject(
            "invalid_payload",
            "payload_too_many_keys",
            {"keys": len(payload), "max_keys": int(max_payload_keys)},
        )

    payload_bytes = _json_size_bytes(payload)
    if payload_bytes > int(max_payload_bytes):
        return TxVerdict.reject(
            "payload_too_large",
            "payload_exceeds_size_limit",
            {"bytes": int(payload_bytes), "max_bytes": int(max_payload_bytes)},
        )

    def walk(v: Any, depth: int) -> Optional[Tuple[str, Dict[str, Any]]]:
        if depth > int(max_depth):
            return "payload_too_deep", {"max_depth": int(max_depth)}
        if v is None or isinstance(v, (bool, int)):
            return None
        if isinstance(v, float):
            return "float_not_allowed", {"value": v}
        if isinstance(v, str):
            b = len(v.encode("utf-8", errors="ignore"))
            if b > int(max_string_bytes):
                return "string_too_large", {"bytes": int(b), "max_bytes": int(max_string_bytes)}
            return None
        if isinstance(v, list):
            for it in v:
                err = walk(it, depth + 1)
                if err:
                    return err
            return None
        if isinstance(v, dict):
            for kk, vv in v.items():
                if not isinstance(kk, str):
                    return "invalid_key_type", {"key_type": str(type(kk))}
                err = walk(vv, depth + 1)
                if err:
                    return err
            return None
        return "invalid_value_type", {"type": str(type(v))}

    err = walk(payload, 0)
    if err:
        reason, details = err
        return TxVerdict.reject("invalid_payload", reason, details)
    return None


def _ledger_view(ledger: Any) -> Json:
    if isinstance(ledger, dict):
        return ledger
    return {
        "accounts": getattr(ledger, "accounts", {}) if ledger is not None else {},
        "params": getattr(ledger, "params", {}) if ledger is not None else {},
    }


def admit_tx(
    tx: Any = None,
    ledger: Any = None,
    canon: Optional[TxIndex] = None,
    context: str = "mempool",
) -> TxVerdict:
    """Stateless and account-level checks a tx must pass before entering the mempool.

    Domain rules (roles, balances, locks) are not checked here; they run at
    apply time and a failure there still consumes the nonce.
    """
    if canon is None:
        return TxVerdict.reject("invalid_args", "missing_canon", None)

    max_tx_bytes = _env_int("FISCUS_MAX_TX_ENVELOPE_BYTES", 32 * 1024)
    env_size = _json_size_bytes(tx)
    if env_size > int(max_tx_bytes):
        return TxVerdict.reject(
            "tx_too_large",
            "tx_envelope_exceeds_size_limit",
            {"bytes": int(env_size), "max_bytes": int(max_tx_bytes)},
        )

    try:
        env = TxEnvelope.from_json(tx)
    except (TypeError, ValueError) as e:
        return TxVerdict.reject("bad_shape", "malformed_envelope", {"error": str(e)})

    if not env.tx_type:
        return TxVerdict.reject("bad_shape", "missing_tx_type", None)
    if not env.signer:
        return TxVerdict.reject("bad_shape", "missing_signer", None)
    if int(env.nonce) < 0:
        return TxVerdict.reject("bad_shape", "nonce_must_be_nonnegative", {"nonce": int(env.nonce)})
    if env.system:
        return TxVerdict.reject("forbidden", "system_txs_not_admissible", {"tx_type": env.tx_type})

    txdef = _get_txdef(canon, env.tx_type)
    if txdef is None:
        return TxVerdict.reject("unknown_tx", "tx_type_not_in_canon", {"tx_type": env.tx_type})

    ctx = str(context or "").strip().lower()
    if ctx == "mempool" and str(txdef.get("context") or "mempool") != "mempool":
        return TxVerdict.reject("block_only", "tx_not_allowed_in_mempool", {"tx_type": env.tx_type})

    payload_verdict = _validate_payload_limits(env.payload)
    if payload_verdict is not None:
        return payload_verdict

    for key in txdef.get("required") or []:
        missing = _require(env.payload, str(key))
        if missing is not None:
            return missing

    view = _ledger_view(ledger)
    if env.signer in protocol_addresses(view):
        return TxVerdict.reject("forbidden", "signer_is_protocol_address", {"signer": env.signer})

    accounts = view.get("accounts") if isinstance(view.get("accounts"), dict) else {}
    acct = accounts.get(env.signer)

    register_keys: Optional[list] = None
    if not isinstance(acct, dict) or not acct.get("keys"):
        if env.tx_type != "ACCOUNT_REGISTER":
            return TxVerdict.reject("unknown_signer", "signer_not_found", {"signer": env.signer})
        expected = int((acct or {}).get("nonce", 0) or 0) + 1
        register_keys = [str(env.payload.get("pubkey") or "").strip().lower()]
    else:
        expected = int(acct.get("nonce", 0) or 0) + 1

    if ctx == "mempool" and int(env.nonce) != expected:
        return TxVerdict.reject("bad_nonce", "nonce_must_be_next", {"expected": expected, "got": int(env.nonce)})

    allow_unsigned = _env_bool("FISCUS_ALLOW_UNSIGNED_TXS", False) and _is_non_prod_mode()
    require_sigs = bool(_as_dict(view.get("params")).get("require_signatures", True))
    if require_sigs and not allow_unsigned:
        ok, meta = verify_tx_sig_against_any_key(
            ledger=view,
            tx_type=env.tx_type,
            signer=env.signer,
            nonce=env.nonce,
            payload=env.payload,
            sig=env.sig,
            parent=env.parent,
            keys=register_keys,
        )
        if not ok:
            details: Dict[str, Any] = {"signer": env.signer, "tx_type": env.tx_type}
            details.update(meta)
            return TxVerdict.reject("bad_sig", "signature_verification_failed", details)

    return TxVerdict.admit()


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


__all__ = ["TxEnvelope", "TxVerdict", "admit_tx"]
