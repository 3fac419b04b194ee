"""
Tiered Evaluation Orchestrator - main control flow.
Tries batch+commentary, batch+insights, batch+core, then the per-wallet
pipeline, returning the first tier that succeeds.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from usage_proof.api.v1.schemas.responses import StructuredError
from usage_proof.core.cancellation import CancellationSignal
from usage_proof.core.config import settings
from usage_proof.core.enums import DataSource
from usage_proof.core.exceptions import DeterminismError, TiersExhaustedError
from usage_proof.core.logging_config import get_logger
from usage_proof.core.models import (
    BatchProgress,
    CampaignCommentaryItem,
    CampaignInsightsItem,
    CampaignRunItem,
    EvaluationResult,
    UsageWindow,
    WalletResultRow,
)
from usage_proof.services.batch_runner import BatchRunner, ProgressCallback
from usage_proof.services.insight_scorer import HeuristicInsightScorer, default_scorer
from usage_proof.services.proof_client import ProofApiClient
from usage_proof.services.run_summary import source_from_rows
from usage_proof.services.wallet_input import canonicalize
from usage_proof.services.wallet_pipeline import (
    WalletPipeline,
    call_with_criteria_fallback,
    error_row,
)

logger = get_logger(__name__)

MISSING_RESULT = "Missing result."

TIER_COMMENTARY = "commentary"
TIER_INSIGHTS = "insights"
TIER_CORE = "core"
TIER_PER_WALLET = "per_wallet"

DEFAULT_TIERS = (TIER_COMMENTARY, TIER_INSIGHTS, TIER_CORE, TIER_PER_WALLET)

TierResult = Tuple[Optional[EvaluationResult], Optional[StructuredError]]


def reconcile_rows(wallets: Sequence[str], rows: Sequence[WalletResultRow]) -> List[WalletResultRow]:
    """
    Re-project server rows onto the requested wallet order.

    Rows are keyed by lowercased wallet (first occurrence wins); requested
    wallets with no row get a synthesized error row.
    """
    by_wallet: Dict[str, WalletResultRow] = {}
    for row in rows:
        by_wallet.setdefault(canonicalize(row.wallet), row)

    reconciled = []
    for wallet in wallets:
        row = by_wallet.get(wallet)
        if row is None:
            reconciled.append(error_row(wallet, MISSING_RESULT))
        elif row.wallet != wallet:
            reconciled.append(row.model_copy(update={"wallet": wallet}))
        else:
            reconciled.append(row)
    return reconciled


class RunHandle:
    """Caller-owned handle for one in-flight evaluation run."""

    def __init__(self, task: "asyncio.Task[EvaluationResult]", signal: CancellationSignal):
        self._task = task
        self.signal = signal

    def cancel(self) -> None:
        """Idempotent; a no-op once the run has finished."""
        self.signal.cancel()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> EvaluationResult:
        return await self._task


def _retrieve_outcome(task: asyncio.Task) -> None:
    # Superseded runs are often never awaited
    if not task.cancelled():
        task.exception()


class TieredEvaluationOrchestrator:
    """
    Evaluates a wallet list against a campaign using the richest tier
    available. Output rows always match the requested wallet order.
    """

    def __init__(
        self,
        client: Optional[ProofApiClient] = None,
        concurrency: Optional[int] = None,
        scorer: Optional[HeuristicInsightScorer] = None,
        tiers: Sequence[str] = DEFAULT_TIERS,
        determinism_spot_check: Optional[bool] = None
    ):
        self.client = client or ProofApiClient()
        self.scorer = scorer or default_scorer
        self.runner = BatchRunner(concurrency)
        self.pipeline = WalletPipeline(self.client, self.scorer)
        self.determinism_spot_check = (
            settings.determinism_spot_check
            if determinism_spot_check is None
            else determinism_spot_check
        )
        self._active: Optional[RunHandle] = None

        strategies: Dict[str, Callable[..., Any]] = {
            TIER_COMMENTARY: self._run_commentary_tier,
            TIER_INSIGHTS: self._run_insights_tier,
            TIER_CORE: self._run_core_tier,
            TIER_PER_WALLET: self._run_per_wallet_tier,
        }
        unknown = [name for name in tiers if name not in strategies]
        if unknown:
            raise ValueError(f"Unknown tiers: {unknown}")
        self.tiers = [(name, strategies[name]) for name in tiers]

    # ===== Run control =====

    def start(
        self,
        wallets: Sequence[str],
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> RunHandle:
        """
        Schedule a run on the current event loop, cancelling any run this
        orchestrator still has in flight.
        """
        if self._active is not None and not self._active.done:
            logger.info("Cancelling superseded run")
            self._active.cancel()

        signal = CancellationSignal()
        task = asyncio.get_running_loop().create_task(
            self.evaluate(
                wallets,
                campaign_id,
                window,
                criteria_set_id=criteria_set_id,
                signal=signal,
                on_progress=on_progress
            )
        )
        task.add_done_callback(_retrieve_outcome)
        self._active = RunHandle(task, signal)
        return self._active

    async def evaluate(
        self,
        wallets: Sequence[str],
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        signal: Optional[CancellationSignal] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> EvaluationResult:
        """
        Attempt each tier in order and return the first success.

        Raises EvaluationCancelled unchanged, and TiersExhaustedError when no
        tier produced rows.
        """
        wallets = list(dict.fromkeys(canonicalize(wallet) for wallet in wallets))
        if not wallets:
            return EvaluationResult(rows=[], source=DataSource.CORE)

        signal = signal or CancellationSignal()
        failures: Dict[str, StructuredError] = {}
        log = logger.bind(campaign_id=campaign_id, wallet_count=len(wallets))

        for name, strategy in self.tiers:
            signal.raise_if_cancelled()

            result, error = await strategy(
                wallets, campaign_id, window, criteria_set_id, signal, on_progress
            )
            if error is None:
                log.info("Evaluation tier succeeded", tier=name, source=result.source.value)
                if self.determinism_spot_check:
                    await self._spot_check(result, campaign_id, window, criteria_set_id, signal)
                return result

            failures[name] = error
            log.warning(
                "Evaluation tier failed, falling back",
                tier=name,
                code=error.code.value,
                status_code=error.status_code,
                message=error.message
            )

        log.error("All evaluation tiers failed", tiers=list(failures))
        raise TiersExhaustedError(failures)

    # ===== Tiers =====

    async def _run_commentary_tier(self, wallets, campaign_id, window, criteria_set_id, signal, on_progress) -> TierResult:
        return await self._run_batch_tier(
            self.client.run_campaign_commentary,
            self._map_commentary_item,
            DataSource.COMMENTARY,
            wallets, campaign_id, window, criteria_set_id, signal, on_progress
        )

    async def _run_insights_tier(self, wallets, campaign_id, window, criteria_set_id, signal, on_progress) -> TierResult:
        return await self._run_batch_tier(
            self.client.run_campaign_insights,
            self._map_insights_item,
            DataSource.INSIGHTS,
            wallets, campaign_id, window, criteria_set_id, signal, on_progress
        )

    async def _run_core_tier(self, wallets, campaign_id, window, criteria_set_id, signal, on_progress) -> TierResult:
        return await self._run_batch_tier(
            self.client.run_campaign_core,
            self._map_core_item,
            DataSource.CORE,
            wallets, campaign_id, window, criteria_set_id, signal, on_progress
        )

    async def _run_batch_tier(
        self,
        call,
        mapper: Callable[[Any], WalletResultRow],
        source: DataSource,
        wallets: List[str],
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str],
        signal: CancellationSignal,
        on_progress: Optional[ProgressCallback]
    ) -> TierResult:
        """One round-trip for the whole list; progress jumps straight to done."""
        response, error = await call_with_criteria_fallback(
            lambda criteria: call(wallets, campaign_id, window, criteria, signal),
            criteria_set_id,
            source=source.value
        )
        if error is not None:
            return None, error

        rows = reconcile_rows(wallets, [mapper(item) for item in response.results])
        if on_progress is not None:
            on_progress(BatchProgress(processed=len(wallets), total=len(wallets), rows=rows))
        return EvaluationResult(rows=rows, source=source), None

    async def _run_per_wallet_tier(self, wallets, campaign_id, window, criteria_set_id, signal, on_progress) -> TierResult:
        rows = await self.runner.run(
            wallets,
            lambda wallet, index: self.pipeline.run(
                wallet, campaign_id, window, criteria_set_id, signal
            ),
            on_progress=on_progress,
            signal=signal,
            on_error=lambda wallet, index, exc: error_row(wallet, str(exc) or "Unexpected error.")
        )
        return EvaluationResult(rows=rows, source=source_from_rows(rows)), None

    # ===== Row mapping =====

    def _map_commentary_item(self, item: CampaignCommentaryItem) -> WalletResultRow:
        return WalletResultRow(
            wallet=item.wallet,
            output=item.output,
            insights=item.insights,
            commentary=item.commentary,
            cached_core=item.cached_core,
            cached_insights=item.cached_insights,
            cached_commentary=item.cached_commentary,
            source=DataSource.COMMENTARY
        )

    def _map_insights_item(self, item: CampaignInsightsItem) -> WalletResultRow:
        return WalletResultRow(
            wallet=item.wallet,
            output=item.output,
            insights=item.insights,
            cached_core=item.cached_core,
            cached_insights=item.cached_insights,
            source=DataSource.INSIGHTS
        )

    def _map_core_item(self, item: CampaignRunItem) -> WalletResultRow:
        return WalletResultRow(
            wallet=item.wallet,
            output=item.output,
            insights=self.scorer.score_output(item.output),
            cached_core=item.cached,
            cached_insights=False,
            source=DataSource.CORE
        )

    # ===== Determinism =====

    async def verify_determinism(
        self,
        wallet: str,
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        signal: Optional[CancellationSignal] = None,
        expected_hash: Optional[str] = None
    ) -> Optional[str]:
        """
        Re-evaluate `wallet` and compare canonical hashes.

        Compares against `expected_hash` when given, otherwise evaluates twice.
        Returns the hash, None if the evaluate endpoint is unavailable, and
        raises DeterminismError on mismatch.
        """
        hashes = [expected_hash] if expected_hash else []
        while len(hashes) < 2:
            response, error = await call_with_criteria_fallback(
                lambda criteria: self.client.evaluate_wallet(
                    wallet, campaign_id, window, criteria, signal
                ),
                criteria_set_id,
                source="determinism_check"
            )
            if error is not None:
                logger.warning("Determinism check skipped", wallet=wallet, code=error.code.value)
                return None
            hashes.append(response.output.proof.canonical_hash)

        if hashes[0] != hashes[1]:
            raise DeterminismError(wallet, hashes[0], hashes[1])
        return hashes[0]

    async def _spot_check(
        self,
        result: EvaluationResult,
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str],
        signal: CancellationSignal
    ) -> None:
        row = next((row for row in result.rows if row.output is not None and not row.error), None)
        if row is None:
            return
        try:
            await self.verify_determinism(
                row.wallet,
                campaign_id,
                window,
                row.output.criteria.criteria_set_id or criteria_set_id,
                signal,
                expected_hash=row.output.proof.canonical_hash
            )
        except DeterminismError as e:
            logger.error(
                "Canonical hash mismatch",
                wallet=e.wallet,
                first_hash=e.first_hash,
                second_hash=e.second_hash
            )
