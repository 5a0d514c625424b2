# src/fiscus/runtime/apply/authority.py
from __future__ import annotations

"""Role registry.

Every privileged operation in the protocol goes through `has_role` /
`require_role`; components never compare callers against role holders
themselves.

Handover is two-step: the governor pushes a new holder, then the new holder
pulls. A push with effective_immediately=True skips the pull.
"""

from typing import Any, Dict, Optional, Set

from fiscus.ledger.constants import ROLES, ZERO_ADDRESS
from fiscus.runtime.errors import ApplyError, AuthorizationError, ConstructionError
from fiscus.runtime.events import emit
from fiscus.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]

CONTRACT = "authority"


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_bool(v: Any, default: bool = False) -> bool:
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _is_null(addr: str) -> bool:
    return not addr or addr == ZERO_ADDRESS


def _ensure_authority_root(state: Json) -> Json:
    root = state.get("authority")
    if not isinstance(root, dict):
        root = {}
        state["authority"] = root
    for role in ROLES:
        root.setdefault(role, "")
        root.setdefault(f"new_{role}", "")
    return root


def construct_authority(state: Json, *, governor: str, guardian: str, policy: str, vault: str) -> Json:
    holders = {"governor": governor, "guardian": guardian, "policy": policy, "vault": vault}
    for role, addr in holders.items():
        if _is_null(_as_str(addr)):
            raise ConstructionError("null_address", {"role": role})

    root = _ensure_authority_root(state)
    for role, addr in holders.items():
        root[role] = _as_str(addr)
        emit(state, CONTRACT, f"{role.capitalize()}Pushed", **{"from": ZERO_ADDRESS, "to": root[role], "effective_immediately": True})
    return root


def role_holder(state: Json, role: str) -> str:
    root = state.get("authority")
    if not isinstance(root, dict):
        return ""
    return _as_str(root.get(role))


def has_role(state: Json, principal: str, role: str) -> bool:
    if role not in ROLES:
        return False
    holder = role_holder(state, role)
    return bool(holder) and holder == _as_str(principal)


def require_role(state: Json, principal: str, *roles: str, reason: Optional[str] = None) -> None:
    """Raise AuthorizationError unless principal holds at least one of `roles`."""
    for role in roles:
        if has_role(state, principal, role):
            return
    raise AuthorizationError(reason or ("not_" + "_or_".join(roles)), {"caller": principal, "roles": list(roles)})


def _role_from_payload(payload: Json) -> str:
    role = _as_str(payload.get("role")).lower()
    if role not in ROLES:
        raise ApplyError("invalid_payload", "unknown_role", {"role": role, "allowed": list(ROLES)})
    return role


def _apply_authority_push(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    role = _role_from_payload(payload)
    new_holder = _as_str(payload.get("new"))
    if _is_null(new_holder):
        raise ApplyError("invalid_payload", "missing_new", {"tx_type": env.tx_type})
    immediate = _as_bool(payload.get("effective_immediately"), False)

    require_role(state, env.signer, "governor")

    root = _ensure_authority_root(state)
    old = root[role]
    if immediate:
        root[role] = new_holder
    root[f"new_{role}"] = new_holder
    emit(state, CONTRACT, f"{role.capitalize()}Pushed", **{"from": old, "to": new_holder, "effective_immediately": immediate})
    return {"applied": "AUTHORITY_PUSH", "role": role, "new": new_holder, "effective_immediately": immediate}


def _apply_authority_pull(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    role = _role_from_payload(payload)

    root = _ensure_authority_root(state)
    pending = root[f"new_{role}"]
    if not pending or pending != _as_str(env.signer):
        raise AuthorizationError(f"not_new_{role}", {"caller": env.signer})

    old = root[role]
    root[role] = pending
    emit(state, CONTRACT, f"{role.capitalize()}Pulled", **{"from": old, "to": pending})
    return {"applied": "AUTHORITY_PULL", "role": role, "holder": pending}


AUTHORITY_TX_TYPES: Set[str] = {
    "AUTHORITY_PUSH",
    "AUTHORITY_PULL",
}


def apply_authority(state: Json, env: TxEnvelope) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in AUTHORITY_TX_TYPES:
        return None

    if t == "AUTHORITY_PUSH":
        return _apply_authority_push(state, env)
    if t == "AUTHORITY_PULL":
        return _apply_authority_pull(state, env)

    return None


__all__ = [
    "AUTHORITY_TX_TYPES",
    "apply_authority",
    "construct_authority",
    "has_role",
    "require_role",
    "role_holder",
]
