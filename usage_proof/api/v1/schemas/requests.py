"""
Request schemas for v1 API endpoints.
"""
from typing import Optional
from pydantic import BaseModel, Field

from usage_proof.core.enums import WindowType


# ===== Wallet Normalization Schemas =====

class NormalizeWalletsRequest(BaseModel):
    """Request for /v1/wallets:normalize"""
    text: str = Field(..., description="Free-text wallet addresses and ENS names")


# ===== Proof Run Schemas =====

class WindowSpec(BaseModel):
    """Usage window selection. start/end only apply to custom windows."""
    type: WindowType = WindowType.LAST_30_DAYS
    start: Optional[int] = Field(None, ge=0, description="Unix seconds (custom only)")
    end: Optional[int] = Field(None, ge=0, description="Unix seconds (custom only)")


class ProofRunRequest(BaseModel):
    """Request for /v1/proof/runs:evaluate"""
    campaign_id: str = Field(..., min_length=1)
    wallets: str = Field(..., description="Whitespace or comma separated addresses / ENS names")
    window: WindowSpec = Field(default_factory=WindowSpec)
    criteria_set_id: Optional[str] = None
