"""
Proof Runner - end-to-end evaluation of free-text wallet input.
Normalize -> resolve ENS -> gate -> tiered evaluation -> summary.
"""
from typing import Dict, List, Optional

from usage_proof.core.cancellation import CancellationSignal
from usage_proof.core.logging_config import get_logger
from usage_proof.core.models import (
    ProofRunResult,
    UsageWindow,
    WalletMeta,
    WalletResultRow,
)
from usage_proof.services.batch_runner import ProgressCallback
from usage_proof.services.ens_gateway import EnsGateway, build_evaluation_wallets
from usage_proof.services.orchestrator import TieredEvaluationOrchestrator
from usage_proof.services.proof_client import ProofApiClient
from usage_proof.services.run_summary import summarize_rows
from usage_proof.services.wallet_input import normalize_wallet_input

logger = get_logger(__name__)


def attach_wallet_meta(
    rows: List[WalletResultRow],
    meta_by_address: Dict[str, WalletMeta]
) -> List[WalletResultRow]:
    """Copy display name / input source onto evaluated rows."""
    attached = []
    for row in rows:
        meta = meta_by_address.get(row.wallet)
        if meta is None:
            attached.append(row)
            continue
        attached.append(row.model_copy(update={
            "display_name": meta.display_name,
            "input_source": meta.input_source,
        }))
    return attached


class ProofRunner:
    """Owns the client, ENS gateway and orchestrator for one service instance."""

    def __init__(
        self,
        client: Optional[ProofApiClient] = None,
        orchestrator: Optional[TieredEvaluationOrchestrator] = None,
        ens_gateway: Optional[EnsGateway] = None,
        concurrency: Optional[int] = None
    ):
        self.client = client or ProofApiClient()
        self.orchestrator = orchestrator or TieredEvaluationOrchestrator(
            self.client, concurrency=concurrency
        )
        self.ens_gateway = ens_gateway or EnsGateway(self.client)

    async def run_from_text(
        self,
        raw_text: str,
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        signal: Optional[CancellationSignal] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> ProofRunResult:
        normalized = normalize_wallet_input(raw_text)
        log = logger.bind(campaign_id=campaign_id)
        log.info(
            "Wallet input normalized",
            addresses=len(normalized.addresses),
            ens_names=len(normalized.ens_names),
            invalid=len(normalized.invalid)
        )

        ens = await self.ens_gateway.resolve_batch(normalized.ens_names, signal=signal)
        gate = build_evaluation_wallets(normalized.inputs, ens.resolved)

        evaluation = await self.orchestrator.evaluate(
            gate.wallets,
            campaign_id,
            window,
            criteria_set_id=criteria_set_id,
            signal=signal,
            on_progress=on_progress
        )
        rows = attach_wallet_meta(evaluation.rows, gate.meta_by_address)

        return ProofRunResult(
            rows=rows,
            source=evaluation.source,
            summary=summarize_rows(rows),
            invalid_inputs=normalized.invalid,
            unresolved=gate.invalid
        )
