"""
Pydantic models for the proof-of-usage domain.
Core outputs are produced upstream; insights may be computed locally.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, model_validator
from .enums import (
    BehaviorTag,
    DataSource,
    InputKind,
    InputSource,
    UnresolvedReason,
    WindowType,
)


# ===== Evaluation inputs =====

class UsageWindow(BaseModel):
    """Time range a wallet is judged over (unix seconds)."""
    model_config = ConfigDict(frozen=True)

    type: WindowType
    start: int
    end: int

    @model_validator(mode="after")
    def _check_range(self) -> "UsageWindow":
        if self.start >= self.end:
            raise ValueError(f"window start ({self.start}) must be before end ({self.end})")
        return self


class UsageSummary(BaseModel):
    """Raw usage facts for a wallet within a window."""
    model_config = ConfigDict(frozen=True)

    tx_count: int = Field(..., ge=0)
    days_active: int = Field(..., ge=0)
    unique_contracts: int = Field(..., ge=0)


class UsageCriteriaParams(BaseModel):
    """Pass/fail thresholds for verified usage."""
    min_tx_count: int
    min_days_active: int
    min_unique_contracts: int


class UsageCriteria(BaseModel):
    """Rule set a wallet was judged against (embedded for auditability)."""
    criteria_set_id: str
    engine_version: str
    params: UsageCriteriaParams


class UsageProof(BaseModel):
    hash_algorithm: str = "keccak256"
    canonical_hash: str


class CoreOutput(BaseModel):
    """Deterministic core verification output for one wallet."""
    protocol: str
    output_version: str
    wallet: str
    campaign_id: str
    window: UsageWindow
    verified_usage: bool
    usage_summary: UsageSummary
    criteria: UsageCriteria
    proof: UsageProof


class InsightResult(BaseModel):
    """Heuristic behavior score derived from a UsageSummary."""
    model_config = ConfigDict(frozen=True)

    overall_score: int = Field(..., ge=0, le=100)
    farming_probability: float = Field(..., ge=0, le=1)
    behavior_tag: BehaviorTag
    insight_version: str = "v1"


class CommentaryResult(BaseModel):
    """Best-effort human-readable commentary."""
    commentary_version: str
    model: str
    text: str
    created_at: int


# ===== Results =====

class WalletResultRow(BaseModel):
    """One row per evaluated wallet. `error` set means the wallet failed in isolation."""
    model_config = ConfigDict(frozen=True)

    wallet: str
    display_name: Optional[str] = None
    input_source: InputSource = InputSource.ADDRESS
    output: Optional[CoreOutput] = None
    insights: Optional[InsightResult] = None
    commentary: Optional[CommentaryResult] = None
    cached_core: Optional[bool] = None
    cached_insights: Optional[bool] = None
    cached_commentary: Optional[bool] = None
    source: DataSource = DataSource.CORE
    error: Optional[str] = None


class RunSummary(BaseModel):
    """Aggregate statistics over all non-error rows."""
    total: int = 0
    verified_true: int = 0
    verified_false: int = 0
    verified_rate: float = 0.0
    avg_tx_count: float = 0.0
    avg_days_active: float = 0.0
    avg_unique_contracts: float = 0.0
    suspected_farm_count: int = 0
    suspected_farm_rate: float = 0.0
    avg_score: float = 0.0


class BatchProgress(BaseModel):
    """Progress snapshot: `rows` holds only the finished slots, in input order."""
    processed: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    rows: List[Any] = Field(default_factory=list)


class EvaluationResult(BaseModel):
    """Rows in requested wallet order plus the tier that produced them."""
    rows: List[WalletResultRow]
    source: DataSource


# ===== Wallet input =====

class WalletInputEntry(BaseModel):
    """A single classified input token."""
    model_config = ConfigDict(frozen=True)

    raw: str
    kind: InputKind
    normalized: Optional[str] = None


class NormalizedInput(BaseModel):
    inputs: List[WalletInputEntry] = Field(default_factory=list)
    addresses: List[str] = Field(default_factory=list)
    ens_names: List[str] = Field(default_factory=list)
    invalid: List[str] = Field(default_factory=list)


# ===== ENS =====

class EnsResolution(BaseModel):
    address: Optional[str] = None
    error: Optional[str] = None
    cached: bool = False


class EnsBatchResult(BaseModel):
    resolved: Dict[str, EnsResolution] = Field(default_factory=dict)
    unresolved: List[str] = Field(default_factory=list)


class InvalidWallet(BaseModel):
    """An input excluded from evaluation, with the reason code."""
    value: str
    reason: UnresolvedReason


class WalletMeta(BaseModel):
    """Display metadata for an evaluated address."""
    display_name: Optional[str] = None
    input_source: InputSource = InputSource.ADDRESS
    ens_cached: bool = False


class WalletSources(BaseModel):
    has_ens: bool = False
    has_address: bool = False
    ens_names: List[str] = Field(default_factory=list)


class EvaluationWalletGate(BaseModel):
    """Deduplicated evaluation list built from addresses and resolved ENS names."""
    wallets: List[str] = Field(default_factory=list)
    invalid: List[InvalidWallet] = Field(default_factory=list)
    meta_by_address: Dict[str, WalletMeta] = Field(default_factory=dict)
    sources_by_address: Dict[str, WalletSources] = Field(default_factory=dict)


class ProofRunResult(BaseModel):
    """End-to-end result of evaluating free-text wallet input."""
    rows: List[WalletResultRow]
    source: DataSource
    summary: RunSummary
    invalid_inputs: List[str] = Field(default_factory=list)
    unresolved: List[InvalidWallet] = Field(default_factory=list)


# ===== Upstream payloads =====

class CampaignCommentaryItem(BaseModel):
    wallet: str
    output: CoreOutput
    insights: InsightResult
    commentary: CommentaryResult
    cached_core: bool = False
    cached_insights: bool = False
    cached_commentary: bool = False


class CampaignCommentaryResponse(BaseModel):
    campaign_id: Optional[str] = None
    window: Optional[UsageWindow] = None
    results: List[CampaignCommentaryItem]
    summary: Optional[Dict[str, Any]] = None


class CampaignInsightsItem(BaseModel):
    wallet: str
    output: CoreOutput
    insights: InsightResult
    cached_core: bool = False
    cached_insights: bool = False


class CampaignInsightsResponse(BaseModel):
    campaign_id: Optional[str] = None
    window: Optional[UsageWindow] = None
    results: List[CampaignInsightsItem]
    summary: Optional[Dict[str, Any]] = None


class CampaignRunItem(BaseModel):
    wallet: str
    output: CoreOutput
    cached: bool = False


class CampaignRunResponse(BaseModel):
    campaign_id: Optional[str] = None
    window: Optional[UsageWindow] = None
    results: List[CampaignRunItem]
    summary: Optional[Dict[str, Any]] = None


class EvaluateResponse(BaseModel):
    output: CoreOutput
    cached: bool = False


class InsightsResponse(BaseModel):
    insights: InsightResult
    cached: bool = False


class CommentaryResponse(BaseModel):
    commentary: CommentaryResult
    cached: bool = False


class EnsResolveResponse(BaseModel):
    name: str
    address: Optional[str] = None
    normalized_address: Optional[str] = None
    cached: bool = False
    error: Optional[str] = None
