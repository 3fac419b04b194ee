"""
Wallet input and scoring endpoints.
Pure, no upstream calls.
"""
from fastapi import APIRouter

from usage_proof.api.v1.schemas.requests import NormalizeWalletsRequest
from usage_proof.api.v1.schemas.responses import NormalizeWalletsResponse
from usage_proof.core.models import InsightResult, UsageSummary
from usage_proof.services.insight_scorer import default_scorer
from usage_proof.services.wallet_input import normalize_wallet_input

router = APIRouter()


@router.post("/wallets:normalize", response_model=NormalizeWalletsResponse)
async def normalize_wallets(request: NormalizeWalletsRequest):
    """Classify free text into addresses, ENS names, and invalid tokens."""
    normalized = normalize_wallet_input(request.text)
    return NormalizeWalletsResponse(**normalized.model_dump())


@router.post("/insights:score", response_model=InsightResult)
async def score_usage(usage: UsageSummary):
    """Local heuristic insight score for a usage summary."""
    return default_scorer.score(usage)
