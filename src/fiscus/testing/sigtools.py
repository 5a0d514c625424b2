from __future__ import annotations

"""Deterministic ed25519 keys and signed envelopes for tests and dev genesis files.

Keys are derived from a label (usually the account name), so a genesis document
can bind `pubkey_for_label("alice")` and a test can later sign as alice without
passing key material around. Never use these keys outside a dev chain.
"""

import hashlib
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from fiscus.crypto.sig import canonical_tx_message

Json = Dict[str, Any]

_SEED_DOMAIN = "fiscus-test-ed25519:"


@lru_cache(maxsize=256)
def _seed(label: str) -> bytes:
    return hashlib.sha256((_SEED_DOMAIN + label).encode("utf-8")).digest()


def deterministic_ed25519_keypair(*, label: str) -> Tuple[str, Ed25519PrivateKey]:
    """Return (pubkey_hex, private_key) for `label`. TEST ONLY."""
    sk = Ed25519PrivateKey.from_private_bytes(_seed(label or ""))
    pk_hex = sk.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()
    return pk_hex, sk


def pubkey_for_label(label: str) -> str:
    return deterministic_ed25519_keypair(label=label)[0]


def sign_tx_dict(tx: Json, *, label: Optional[str] = None) -> Json:
    """Return a copy of `tx` carrying a hex ed25519 `sig`.

    The key comes from `label` when given, else from tx['signer']. Signing with
    another account's label is how tests build a wrong-key envelope.
    """
    if not isinstance(tx, dict):
        raise TypeError("tx must be a dict")

    signer = str(tx.get("signer") or "").strip()
    payload = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}
    parent = tx.get("parent")
    parent_s = parent.strip() if isinstance(parent, str) and parent.strip() else None

    _, sk = deterministic_ed25519_keypair(label=(label or signer))
    msg = canonical_tx_message(
        tx_type=str(tx.get("tx_type") or "").strip(),
        signer=signer,
        nonce=int(tx.get("nonce") or 0),
        payload=payload,
        parent=parent_s,
    )
    out = dict(tx)
    out["sig"] = sk.sign(msg).hex()
    return out


def signed_tx(tx_type: str, signer: str, nonce: int, **payload: Any) -> Json:
    """Build and sign a user envelope in one call: signed_tx("STAKE", "alice", 2, amount=500)."""
    return sign_tx_dict({"tx_type": tx_type, "signer": signer, "nonce": int(nonce), "payload": payload})
