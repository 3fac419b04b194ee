"""
Per-wallet pipeline - lowest fallback tier.
Runs core evaluate -> insights -> commentary for a single wallet.
"""
from typing import Any, Awaitable, Callable, Optional, Tuple

from usage_proof.api.v1.schemas.responses import StructuredError, ErrorCode
from usage_proof.core.cancellation import CancellationSignal
from usage_proof.core.enums import DataSource
from usage_proof.core.exceptions import EvaluationCancelled
from usage_proof.core.logging_config import get_logger
from usage_proof.core.models import UsageWindow, WalletResultRow
from usage_proof.services.insight_scorer import HeuristicInsightScorer, default_scorer
from usage_proof.services.proof_client import ProofApiClient

logger = get_logger(__name__)

CriteriaCall = Callable[[Optional[str]], Awaitable[Tuple[Optional[Any], Optional[StructuredError]]]]


async def call_with_criteria_fallback(
    call: CriteriaCall,
    criteria_set_id: Optional[str],
    source: str
) -> Tuple[Optional[Any], Optional[StructuredError]]:
    """
    Call once with the criteria set; if the server rejects it (4xx), call
    once more without it. Other failures are returned as-is.
    """
    if not criteria_set_id:
        return await call(None)

    result, error = await call(criteria_set_id)
    if error is None or error.code != ErrorCode.CRITERIA_REJECTED:
        return result, error

    logger.info(
        "Criteria set rejected, retrying without criteria",
        source=source,
        criteria_set_id=criteria_set_id,
        status_code=error.status_code
    )
    return await call(None)


def error_row(wallet: str, message: str) -> WalletResultRow:
    return WalletResultRow(wallet=wallet, source=DataSource.CORE, error=message)


class WalletPipeline:
    """
    Core evaluation is mandatory; insights and commentary are best-effort.
    `source` only ever moves up: core -> insights -> commentary.
    """

    def __init__(
        self,
        client: ProofApiClient,
        scorer: Optional[HeuristicInsightScorer] = None
    ):
        self.client = client
        self.scorer = scorer or default_scorer

    async def run(
        self,
        wallet: str,
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        signal: Optional[CancellationSignal] = None
    ) -> WalletResultRow:
        """Never raises except EvaluationCancelled; failures land in `error`."""
        if signal is not None:
            signal.raise_if_cancelled()

        try:
            return await self._run(wallet, campaign_id, window, criteria_set_id, signal)
        except EvaluationCancelled:
            raise
        except Exception as e:
            logger.exception("Wallet pipeline crashed", wallet=wallet)
            return error_row(wallet, str(e) or "Unexpected error.")

    async def _run(
        self,
        wallet: str,
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str],
        signal: Optional[CancellationSignal]
    ) -> WalletResultRow:
        # Step 1: Core evaluation (mandatory)
        core, error = await call_with_criteria_fallback(
            lambda criteria: self.client.evaluate_wallet(
                wallet, campaign_id, window, criteria, signal
            ),
            criteria_set_id,
            source="evaluate"
        )
        if error is not None:
            logger.warning(
                "Core evaluation failed",
                wallet=wallet,
                code=error.code.value,
                status_code=error.status_code
            )
            return error_row(wallet, error.message)

        source = DataSource.CORE

        # Step 2: Insights (optional, local score kept on failure)
        insights = self.scorer.score_output(core.output)
        cached_insights = False
        insight_result, error = await self.client.fetch_insights(core.output, signal)
        if insight_result is not None:
            insights = insight_result.insights
            cached_insights = insight_result.cached
            source = DataSource.INSIGHTS
        else:
            logger.debug("Insights unavailable, using local score", wallet=wallet, code=error.code.value)

        # Step 3: Commentary (optional)
        commentary = None
        cached_commentary = None
        commentary_result, error = await self.client.fetch_commentary(core.output, insights, signal)
        if commentary_result is not None:
            commentary = commentary_result.commentary
            cached_commentary = commentary_result.cached
            source = DataSource.COMMENTARY
        else:
            logger.debug("Commentary unavailable", wallet=wallet, code=error.code.value)

        return WalletResultRow(
            wallet=wallet,
            output=core.output,
            insights=insights,
            commentary=commentary,
            cached_core=core.cached,
            cached_insights=cached_insights,
            cached_commentary=cached_commentary,
            source=source
        )
