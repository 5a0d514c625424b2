# src/fiscus/ledger/constants.py
from __future__ import annotations

"""Protocol constants.

Precision:
- FISC and sFISC carry 9 decimals
- gFISC carries 18 decimals

The rebasing ledger tracks balances in "gons". The total gon supply is fixed at
initialization and is chosen so that it divides evenly by the initial fragment
supply; balances are always derived as gons // gons_per_fragment.
"""

ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"

# Base asset
FISC_NAME: str = "Fiscus"
FISC_SYMBOL: str = "FISC"
FISC_DECIMALS: int = 9
FISC_UNIT: int = 10**FISC_DECIMALS

# Rebasing ledger
SFISC_NAME: str = "Staked FISC"
SFISC_SYMBOL: str = "sFISC"
SFISC_DECIMALS: int = 9

MAX_UINT256: int = 2**256 - 1
INITIAL_FRAGMENTS_SUPPLY: int = 5_000_000 * FISC_UNIT
TOTAL_GONS: int = MAX_UINT256 - (MAX_UINT256 % INITIAL_FRAGMENTS_SUPPLY)
MAX_SUPPLY: int = 2**128 - 1

# Index-wrapped token
GFISC_NAME: str = "Governance FISC"
GFISC_SYMBOL: str = "gFISC"
GFISC_DECIMALS: int = 18
GFISC_UNIT: int = 10**GFISC_DECIMALS

# Distributor
RATE_DENOMINATOR: int = 1_000_000
MAX_BOUNTY: int = 2 * FISC_UNIT
# Guardian may move a recipient rate by at most 2.5% per adjustment.
GUARDIAN_ADJUSTMENT_DIVISOR: int = 40

# Authority roles
ROLES = ("governor", "guardian", "policy", "vault")

# Treasury permission categories
RESERVEDEPOSITOR: int = 0
RESERVESPENDER: int = 1
RESERVETOKEN: int = 2
RESERVEMANAGER: int = 3
LIQUIDITYDEPOSITOR: int = 4
LIQUIDITYTOKEN: int = 5
LIQUIDITYMANAGER: int = 6
RESERVEDEBTOR: int = 7
REWARDMANAGER: int = 8
SFISC: int = 9
FISCDEBTOR: int = 10

STATUS_NAMES = {
    RESERVEDEPOSITOR: "RESERVEDEPOSITOR",
    RESERVESPENDER: "RESERVESPENDER",
    RESERVETOKEN: "RESERVETOKEN",
    RESERVEMANAGER: "RESERVEMANAGER",
    LIQUIDITYDEPOSITOR: "LIQUIDITYDEPOSITOR",
    LIQUIDITYTOKEN: "LIQUIDITYTOKEN",
    LIQUIDITYMANAGER: "LIQUIDITYMANAGER",
    RESERVEDEBTOR: "RESERVEDEBTOR",
    REWARDMANAGER: "REWARDMANAGER",
    SFISC: "SFISC",
    FISCDEBTOR: "FISCDEBTOR",
}

# Queued permissions for manager statuses wait twice as long.
MANAGER_STATUSES = (RESERVEMANAGER, LIQUIDITYMANAGER)
