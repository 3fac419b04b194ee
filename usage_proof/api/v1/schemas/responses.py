"""
Response schemas for v1 API endpoints.
Includes structured error handling shared with the upstream clients.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from usage_proof.core.enums import DataSource
from usage_proof.core.models import (
    InvalidWallet,
    RunSummary,
    WalletInputEntry,
    WalletResultRow,
)


# ===== Error Handling =====

class ErrorCode(str, Enum):
    """Standardized error codes."""
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    CRITERIA_REJECTED = "CRITERIA_REJECTED"
    RATE_LIMITED = "RATE_LIMITED"
    PARSE_ERROR = "PARSE_ERROR"
    CANCELLED = "CANCELLED"
    TIERS_EXHAUSTED = "TIERS_EXHAUSTED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class StructuredError(BaseModel):
    """Structured error for partial failures."""
    code: ErrorCode
    message: str
    source: Optional[str] = Field(None, description="Which endpoint/tier failed")
    status_code: Optional[int] = Field(None, description="Upstream HTTP status, if any")
    retryable: bool = Field(False, description="Whether client should retry")
    timestamp: datetime = Field(default_factory=lambda: datetime.now())


# ===== Wallet Normalization Response =====

class NormalizeWalletsResponse(BaseModel):
    """Response for /v1/wallets:normalize"""
    inputs: List[WalletInputEntry]
    addresses: List[str]
    ens_names: List[str]
    invalid: List[str]


# ===== Proof Run Response =====

class ProofRunResponse(BaseModel):
    """Response for /v1/proof/runs:evaluate"""
    request_id: str
    as_of: str
    campaign_id: str
    source: DataSource
    rows: List[WalletResultRow]
    summary: RunSummary

    # Inputs excluded before evaluation
    invalid_inputs: List[str] = Field(default=[])
    unresolved: List[InvalidWallet] = Field(default=[])

    # Errors
    errors: List[StructuredError] = Field(default=[])
    warnings: List[str] = Field(default=[])


class ErrorResponse(BaseModel):
    """Body returned when a run fails as a whole."""
    request_id: str
    error: StructuredError
    details: Dict[str, Any] = Field(default={})
