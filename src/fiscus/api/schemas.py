"""Pydantic request schemas for the public API.

Tx payloads are validated by the tx canon and the domain appliers; these
schemas only pin the envelope shape for HTTP input validation.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TxEnvelopeIn(BaseModel):
    tx_type: str = Field(..., min_length=1, description="Canonical tx type, e.g. STAKE")
    signer: str = Field(..., min_length=1, description="Signing account id")
    nonce: int = Field(..., ge=1, description="Account nonce; must be the next one")
    payload: Dict[str, Any] = Field(default_factory=dict)
    sig: str = Field(default="", description="Hex ed25519 signature over the canonical message")
    parent: Optional[str] = None
    system: bool = False
    tx_id: Optional[str] = Field(default=None, description="Optional; must match the computed id when given")

    model_config = {"extra": "forbid"}


class ProduceBlockRequest(BaseModel):
    max_txs: int = Field(default=500, ge=1, le=10_000)
    allow_empty: bool = True
