# src/fiscus/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from fiscus.runtime.errors import ApplyError
from fiscus.runtime.state_invariants import ensure_state
from fiscus.runtime.tx_admission_types import TxEnvelope

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from fiscus.runtime.apply.accounts import ACCOUNT_TX_TYPES, apply_accounts
from fiscus.runtime.apply.authority import AUTHORITY_TX_TYPES, apply_authority
from fiscus.runtime.apply.distributor import DISTRIBUTOR_TX_TYPES, apply_distributor
from fiscus.runtime.apply.gtoken import GTOKEN_TX_TYPES, apply_gtoken
from fiscus.runtime.apply.staking import STAKING_TX_TYPES, apply_staking
from fiscus.runtime.apply.stoken import STOKEN_TX_TYPES, apply_stoken
from fiscus.runtime.apply.tokens import TOKEN_TX_TYPES, apply_tokens
from fiscus.runtime.apply.treasury import TREASURY_TX_TYPES, apply_treasury

Json = Dict[str, Any]
ApplyFn = Callable[[Json, Any], Optional[Json]]


def _get(env: Any, key: str, default: Any = None) -> Any:
    """Read a field from either a TxEnvelope-like object or a dict.

    Tests and tools pass raw dict envelopes directly into apply_tx(), while
    the executor passes a TxEnvelope object.
    """

    if isinstance(env, dict):
        return env.get(key, default)
    return getattr(env, key, default)


def _tx_type(env: Any) -> str:
    return str(_get(env, "tx_type", "") or "").strip().upper()


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_accounts,
    apply_authority,
    apply_tokens,
    apply_stoken,
    apply_gtoken,
    apply_staking,
    apply_distributor,
    apply_treasury,
)


def supported_tx_types() -> List[str]:
    """Every tx type some domain applier claims, sorted."""
    out = set()
    for types in (
        ACCOUNT_TX_TYPES,
        AUTHORITY_TX_TYPES,
        TOKEN_TX_TYPES,
        STOKEN_TX_TYPES,
        GTOKEN_TX_TYPES,
        STAKING_TX_TYPES,
        DISTRIBUTOR_TX_TYPES,
        TREASURY_TX_TYPES,
    ):
        out |= set(types)
    return sorted(out)


def apply_tx(state: Json, env: Any) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it."""

    ensure_state(state)

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    t = _tx_type(env_norm)
    if not t:
        raise ApplyError("invalid_tx", "missing_tx_type", {"tx_type": t})
    if not str(_get(env_norm, "signer", "") or "").strip():
        raise ApplyError("invalid_tx", "missing_signer", {"tx_type": t})

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm)
        except ApplyError:
            raise
        except (ArithmeticError, KeyError, TypeError, ValueError) as e:
            raise ApplyError(
                "domain_error",
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            return out

    raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})


__all__ = ["ApplyError", "apply_tx", "supported_tx_types"]
