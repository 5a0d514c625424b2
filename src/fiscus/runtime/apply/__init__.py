# src/fiscus/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module owns one protocol component's state section and exposes an
`apply_<domain>(state, env)` router that returns None for tx types it does not
claim. Components call each other through plain module functions with an
explicit caller address.

NOTE: Keep this package import-safe (no imports here; submodules import each
other lazily through the package).
"""

from __future__ import annotations

__all__ = [
    "accounts",
    "authority",
    "distributor",
    "gtoken",
    "staking",
    "stoken",
    "tokens",
    "treasury",
]
