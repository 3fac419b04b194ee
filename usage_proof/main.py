"""
FastAPI application main entry point.
Serves the proof-of-usage evaluation engine under /v1.
"""
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from usage_proof.api.v1.api import api_router as api_v1_router
from usage_proof.api.v1.schemas.responses import ErrorCode, ErrorResponse, StructuredError
from usage_proof.core.config import settings
from usage_proof.core.exceptions import UsageProofError
from usage_proof.core.logging_config import get_logger, setup_logging
from usage_proof.services.orchestrator import DEFAULT_TIERS

setup_logging(settings.log_level, json_output=settings.log_json)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Service starting",
        proof_api=settings.proof_api_base_url,
        batch_concurrency=settings.batch_concurrency,
        ens_concurrency=settings.ens_concurrency,
        determinism_spot_check=settings.determinism_spot_check
    )
    yield
    logger.info("Service stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Deterministic proof-of-usage evaluation with tiered fallback, heuristic insights and commentary.",
    debug=settings.debug,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router, prefix="/v1")


@app.exception_handler(UsageProofError)
async def usage_proof_error_handler(request: Request, exc: UsageProofError):
    """Engine errors that escape an endpoint become a structured 500."""
    logger.exception("Unhandled engine error", path=request.url.path)
    body = ErrorResponse(
        request_id=str(uuid.uuid4()),
        error=StructuredError(
            code=ErrorCode.INTERNAL_ERROR,
            message=str(exc),
            source=type(exc).__name__
        )
    )
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


@app.get("/")
async def root():
    """Service info."""
    return {
        "status": "operational",
        "service": settings.app_name,
        "version": settings.app_version,
        "tiers": list(DEFAULT_TIERS),
        "endpoints": {
            "proof_run": "POST /v1/proof/runs:evaluate",
            "normalize": "POST /v1/wallets:normalize",
            "insights": "POST /v1/insights:score"
        }
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.app_name, "version": settings.app_version}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("usage_proof.main:app", host="0.0.0.0", port=8000, log_config=None)
