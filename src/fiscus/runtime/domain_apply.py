# src/fiscus/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from fiscus.runtime.domain_dispatch import ApplyError, apply_tx
from fiscus.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _consume_nonce_if_possible(state: Json, env: TxEnvelope) -> None:
    """Record the tx nonce on the signer account.

    Non-system txs consume their nonce whether or not apply succeeds, so a
    failing tx cannot wedge the account. Only the nonce is touched.
    """

    if env.system or not env.signer:
        return

    acct = state.get("accounts", {}).get(env.signer)
    if not isinstance(acct, dict):
        return

    acct["nonce"] = max(int(acct.get("nonce", 0) or 0), int(env.nonce))


def apply_tx_atomic(
    state: Json,
    env: Any,
    *,
    consume_nonce_on_fail: bool = True,
) -> Optional[Json]:
    """Apply a tx with fail-atomic semantics.

    On success:
      - state is updated as if apply_tx() ran directly, and the nonce is consumed.

    On ApplyError:
      - state remains unchanged, except (optionally) nonce consumption.
        Events emitted by the failed tx are dropped with the snapshot.
    """

    env_norm = TxEnvelope.from_json(env)

    snapshot = copy.deepcopy(state)

    try:
        meta = apply_tx(snapshot, env_norm)
    except ApplyError:
        if consume_nonce_on_fail:
            _consume_nonce_if_possible(state, env_norm)
        raise

    _consume_nonce_if_possible(snapshot, env_norm)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ApplyError", "apply_tx", "apply_tx_atomic", "Json"]
