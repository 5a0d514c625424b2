# src/fiscus/runtime/apply/accounts.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from fiscus.runtime.errors import ApplyError, AuthorizationError
from fiscus.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


@dataclass
class AccountsApplyError(ApplyError):
    code: str
    reason: str
    details: Optional[Json] = None


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _is_hex_pubkey(s: str) -> bool:
    s = s.lower()
    return len(s) == 64 and all(c in "0123456789abcdef" for c in s)


def protocol_addresses(state: Json) -> Set[str]:
    """Addresses owned by protocol components: wired contracts plus every token record.

    These never hold a signing key, so no envelope can act as them.
    """
    out = {_as_str(v) for v in _as_dict(state.get("contracts")).values()}
    out.update(_as_str(k) for k in _as_dict(state.get("tokens")).keys())
    out.discard("")
    return out


def _create_default_account(state: Json, account_id: str, *, nonce: int = 0) -> Json:
    accounts = state.setdefault("accounts", {})
    acct = accounts.get(account_id)
    if not isinstance(acct, dict):
        acct = {"nonce": int(nonce), "keys": []}
        accounts[account_id] = acct
    if not isinstance(acct.get("keys"), list):
        acct["keys"] = []
    acct.setdefault("nonce", 0)
    return acct


def _set_key_active(acct: Json, pubkey: str, active: bool) -> None:
    keys: List[Json] = acct["keys"]
    for rec in keys:
        if isinstance(rec, dict) and _as_str(rec.get("pubkey")) == pubkey:
            rec["active"] = bool(active)
            return
    if active:
        keys.append({"pubkey": pubkey, "active": True})


def _pubkey_from_payload(env: TxEnvelope, *, required: bool) -> str:
    pubkey = _as_str(_as_dict(env.payload).get("pubkey")).lower()
    if not pubkey:
        if required:
            raise AccountsApplyError("invalid_payload", "missing_pubkey", {"tx_type": env.tx_type})
        return ""
    if not _is_hex_pubkey(pubkey):
        raise AccountsApplyError("invalid_payload", "bad_pubkey", {"tx_type": env.tx_type})
    return pubkey


def _apply_account_register(state: Json, env: TxEnvelope) -> Json:
    if env.signer in protocol_addresses(state):
        raise AuthorizationError("protocol_address", {"account": env.signer})
    existing = state.get("accounts", {}).get(env.signer)
    if isinstance(existing, dict) and existing.get("keys"):
        raise AccountsApplyError("conflict", "account_exists", {"account": env.signer})

    acct = _create_default_account(state, env.signer, nonce=env.nonce)
    pubkey = _pubkey_from_payload(env, required=False)
    if pubkey:
        _set_key_active(acct, pubkey, True)
    acct["nonce"] = int(env.nonce)
    return {"applied": "ACCOUNT_REGISTER", "account": env.signer}


def _apply_account_key_add(state: Json, env: TxEnvelope) -> Json:
    if env.signer in protocol_addresses(state):
        raise AuthorizationError("protocol_address", {"account": env.signer})
    acct = _create_default_account(state, env.signer, nonce=env.nonce)
    pubkey = _pubkey_from_payload(env, required=True)
    _set_key_active(acct, pubkey, True)
    return {"applied": "ACCOUNT_KEY_ADD", "account": env.signer, "pubkey": pubkey}


def _apply_account_key_revoke(state: Json, env: TxEnvelope) -> Json:
    acct = _create_default_account(state, env.signer, nonce=env.nonce)
    pubkey = _pubkey_from_payload(env, required=True)
    active = [k for k in acct["keys"] if isinstance(k, dict) and k.get("active", True)]
    if len(active) == 1 and _as_str(active[0].get("pubkey")) == pubkey:
        raise AccountsApplyError("forbidden", "cannot_revoke_last_key", {"account": env.signer})
    _set_key_active(acct, pubkey, False)
    return {"applied": "ACCOUNT_KEY_REVOKE", "account": env.signer, "pubkey": pubkey}


ACCOUNT_TX_TYPES: Set[str] = {
    "ACCOUNT_REGISTER",
    "ACCOUNT_KEY_ADD",
    "ACCOUNT_KEY_REVOKE",
}


def apply_accounts(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in ACCOUNT_TX_TYPES:
        return None

    if t == "ACCOUNT_REGISTER":
        return _apply_account_register(state, env)
    if t == "ACCOUNT_KEY_ADD":
        return _apply_account_key_add(state, env)
    if t == "ACCOUNT_KEY_REVOKE":
        return _apply_account_key_revoke(state, env)

    return None


__all__ = ["AccountsApplyError", "ACCOUNT_TX_TYPES", "apply_accounts", "protocol_addresses"]
