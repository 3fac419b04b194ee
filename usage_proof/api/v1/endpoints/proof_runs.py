"""
Proof run endpoint - /v1/proof/runs:evaluate
Evaluates free-text wallet input against a campaign.
"""
from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timezone
import functools
import uuid

from usage_proof.api.v1.schemas.requests import ProofRunRequest
from usage_proof.api.v1.schemas.responses import (
    ProofRunResponse,
    ErrorResponse,
    StructuredError,
    ErrorCode
)
from usage_proof.core.exceptions import EvaluationCancelled, TiersExhaustedError
from usage_proof.core.logging_config import get_logger
from usage_proof.services.proof_runner import ProofRunner
from usage_proof.services.proof_client import ProofApiClient
from usage_proof.services.usage_window import build_usage_window

logger = get_logger(__name__)

router = APIRouter()


@functools.lru_cache(maxsize=1)
def get_proof_runner() -> ProofRunner:
    """One runner per process so the ENS cache is shared across requests."""
    return ProofRunner(ProofApiClient())


@router.post("/proof/runs:evaluate", response_model=ProofRunResponse)
async def evaluate_proof_run(
    request: ProofRunRequest,
    runner: ProofRunner = Depends(get_proof_runner)
):
    """
    **Proof-of-Usage Evaluation**

    Normalizes the wallet text, resolves ENS names, and evaluates every
    wallet using the richest tier available (commentary > insights > core >
    per-wallet pipeline).

    Response structure:
    - rows[] in input order, one per distinct wallet
    - source - tier that produced the rows
    - summary - aggregates over non-error rows
    - invalid_inputs[], unresolved[] - inputs excluded before evaluation
    """
    request_id = str(uuid.uuid4())
    as_of = datetime.now(timezone.utc).isoformat()

    try:
        window = build_usage_window(
            request.window.type,
            start=request.window.start,
            end=request.window.end
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        result = await runner.run_from_text(
            request.wallets,
            request.campaign_id,
            window,
            criteria_set_id=request.criteria_set_id
        )
    except TiersExhaustedError as e:
        body = ErrorResponse(
            request_id=request_id,
            error=StructuredError(
                code=ErrorCode.TIERS_EXHAUSTED,
                message=str(e),
                source="orchestrator",
                retryable=True
            ),
            details={
                tier: error.model_dump(mode="json") for tier, error in e.failures.items()
            }
        )
        raise HTTPException(status_code=502, detail=body.model_dump(mode="json"))
    except EvaluationCancelled:
        body = ErrorResponse(
            request_id=request_id,
            error=StructuredError(
                code=ErrorCode.CANCELLED,
                message="Evaluation cancelled",
                source="orchestrator",
                retryable=True
            )
        )
        raise HTTPException(status_code=409, detail=body.model_dump(mode="json"))

    warnings = []
    if result.invalid_inputs:
        warnings.append(f"Skipped {len(result.invalid_inputs)} invalid input(s)")
    if result.unresolved:
        warnings.append(f"Skipped {len(result.unresolved)} unresolved ENS name(s)")

    errors = [
        StructuredError(
            code=ErrorCode.UPSTREAM_ERROR,
            message=f"{row.wallet}: {row.error}",
            source=row.source.value,
            retryable=True
        )
        for row in result.rows
        if row.error
    ]

    logger.info(
        "Proof run completed",
        request_id=request_id,
        campaign_id=request.campaign_id,
        source=result.source.value,
        rows=len(result.rows),
        errors=len(errors)
    )

    return ProofRunResponse(
        request_id=request_id,
        as_of=as_of,
        campaign_id=request.campaign_id,
        source=result.source,
        rows=result.rows,
        summary=result.summary,
        invalid_inputs=result.invalid_inputs,
        unresolved=result.unresolved,
        errors=errors,
        warnings=warnings
    )
