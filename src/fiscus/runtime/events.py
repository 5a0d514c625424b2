# src/fiscus/runtime/events.py
from __future__ import annotations

from typing import Any, Dict, List

Json = Dict[str, Any]


def emit(state: Json, contract: str, event: str, **args: Any) -> Json:
    """Append an event record to the in-state event log.

    Events are part of the state snapshot, so a rejected tx drops its events
    together with every other mutation.
    """
    log = state.get("events")
    if not isinstance(log, list):
        log = []
        state["events"] = log
    rec: Json = {
        "contract": str(contract),
        "event": str(event),
        "args": dict(args),
        "height": int(state.get("height", 0) or 0),
    }
    log.append(rec)
    return rec


def drain_events(state: Json) -> List[Json]:
    """Remove and return all pending events."""
    log = state.get("events")
    if not isinstance(log, list) or not log:
        state["events"] = []
        return []
    out = list(log)
    state["events"] = []
    return out


def events_named(state: Json, event: str) -> List[Json]:
    log = state.get("events")
    if not isinstance(log, list):
        return []
    return [e for e in log if isinstance(e, dict) and e.get("event") == event]


__all__ = ["emit", "drain_events", "events_named"]
