# src/fiscus/crypto/sig.py
from __future__ import annotations

"""Ed25519 envelope signatures.

A signature covers the canonical JSON of (tx_type, signer, nonce, payload[,
parent]). Keys and signatures travel as hex: account keys are bound by
ACCOUNT_REGISTER / ACCOUNT_KEY_ADD (or genesis) and must be 32-byte hex.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

Json = Dict[str, Any]


def canonical_tx_message(
    *,
    tx_type: str,
    signer: str,
    nonce: int,
    payload: Json,
    parent: Optional[str] = None,
) -> bytes:
    obj: Json = {
        "tx_type": str(tx_type).strip().upper(),
        "signer": str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    if parent is not None:
        obj["parent"] = str(parent)
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(pubkey.strip()))
        key.verify(bytes.fromhex(sig.strip()), message)
    except (InvalidSignature, ValueError):
        return False
    return True


def extract_active_account_pubkeys(ledger: Json, account_id: str) -> List[str]:
    """Active keys of ledger["accounts"][account_id]["keys"], deduplicated, in order."""
    accounts = ledger.get("accounts")
    acct = accounts.get(account_id) if isinstance(accounts, dict) else None
    keys = acct.get("keys") if isinstance(acct, dict) else None
    if not isinstance(keys, list):
        return []

    out: List[str] = []
    for rec in keys:
        if not isinstance(rec, dict) or not rec.get("active", True):
            continue
        pk = rec.get("pubkey")
        if isinstance(pk, str) and pk.strip() and pk.strip() not in out:
            out.append(pk.strip())
    return out


def verify_tx_sig_against_any_key(
    *,
    ledger: Json,
    tx_type: str,
    signer: str,
    nonce: int,
    payload: Json,
    sig: str,
    parent: Optional[str] = None,
    keys: Optional[List[str]] = None,
) -> Tuple[bool, Dict[str, Any]]:
    """Verify against the signer's active keys, or against `keys` when given.

    `keys` is used for ACCOUNT_REGISTER, where the key being registered signs
    its own registration.
    """
    candidates = list(keys) if keys is not None else extract_active_account_pubkeys(ledger, signer)
    if not candidates:
        return False, {"reason": "no_active_keys"}
    if not isinstance(sig, str) or not sig.strip():
        return False, {"reason": "missing_signature"}

    msg = canonical_tx_message(tx_type=tx_type, signer=signer, nonce=nonce, payload=payload, parent=parent)
    for pk in candidates:
        if verify_ed25519_signature(message=msg, sig=sig, pubkey=pk):
            return True, {"pubkey": pk}
    return False, {"reason": "invalid_signature"}


__all__ = [
    "canonical_tx_message",
    "extract_active_account_pubkeys",
    "verify_ed25519_signature",
    "verify_tx_sig_against_any_key",
]
