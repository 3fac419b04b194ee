"""
V1 API router - aggregates all v1 endpoints.
"""
from fastapi import APIRouter
from usage_proof.api.v1.endpoints import proof_runs, wallets

api_router = APIRouter()

# Include all v1 endpoints
api_router.include_router(proof_runs.router, tags=["Proof of Usage"])
api_router.include_router(wallets.router, tags=["Wallets"])
