# src/fiscus/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Fiscus state is a nested JSON-like dict that is mutated deterministically by apply_* modules.
This module only creates the containers every component relies on (accounts, params,
the contract address registry, the token table, the event log and the block height).
Component-specific containers are created by the owning apply_* module.
"""

from collections.abc import MutableMapping
from typing import Any, Dict

Json = Dict[str, Any]

_DICT_ROOTS = ("accounts", "params", "contracts", "tokens")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Raises:
        TypeError: if st is not a MutableMapping or a core key has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in _DICT_ROOTS:
        v = st.get(key)
        if v is None:
            st[key] = {}
        elif not isinstance(v, dict):
            raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")

    ev = st.get("events")
    if ev is None:
        st["events"] = []
    elif not isinstance(ev, list):
        raise TypeError(f"state['events'] must be list, got {type(ev)}")

    h = st.get("height")
    if h is None:
        st["height"] = 0
    elif not isinstance(h, int) or isinstance(h, bool) or h < 0:
        raise TypeError(f"state['height'] must be a non-negative int, got {h!r}")

    return st  # type: ignore[return-value]


__all__ = ["ensure_state"]
