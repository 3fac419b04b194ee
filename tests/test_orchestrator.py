"""Tests for tiered evaluation, reconciliation and run control."""

import asyncio

import pytest

from fakes import BATCH_PATHS, WALLET_A, WALLET_B, WALLET_C
from usage_proof.api.v1.schemas.responses import ErrorCode
from usage_proof.core.cancellation import CancellationSignal
from usage_proof.core.enums import DataSource
from usage_proof.core.exceptions import DeterminismError, EvaluationCancelled, TiersExhaustedError
from usage_proof.core.models import WalletResultRow
from usage_proof.services.insight_scorer import default_scorer
from usage_proof.services.orchestrator import (
    MISSING_RESULT,
    TieredEvaluationOrchestrator,
    reconcile_rows,
)

BATCH_TIERS = ("commentary", "insights", "core")


@pytest.fixture
def orchestrator(client):
    return TieredEvaluationOrchestrator(client, concurrency=2, determinism_spot_check=False)


# ===== Tier selection =====

@pytest.mark.asyncio
async def test_commentary_tier_used_when_available(fake_api, orchestrator, window):
    result = await orchestrator.evaluate([WALLET_A, WALLET_B], "camp-1", window)

    assert result.source == DataSource.COMMENTARY
    assert [row.wallet for row in result.rows] == [WALLET_A, WALLET_B]
    assert all(row.commentary is not None for row in result.rows)
    assert fake_api.paths() == ["/v1/campaign/commentary"]


@pytest.mark.asyncio
async def test_falls_back_to_core_batch_with_local_insights(fake_api, orchestrator, window):
    fake_api.fail["/v1/campaign/commentary"] = 503
    fake_api.timeouts.add("/v1/campaign/insights")

    result = await orchestrator.evaluate([WALLET_A, WALLET_B], "camp-1", window)

    assert result.source == DataSource.CORE
    for row in result.rows:
        assert row.insights == default_scorer.score_output(row.output)
        assert row.cached_insights is False
    assert fake_api.count("/v1/evaluate") == 0
    assert fake_api.paths() == list(BATCH_PATHS)


@pytest.mark.asyncio
async def test_per_wallet_tier_when_all_batches_fail(fake_api, orchestrator, window):
    for path in BATCH_PATHS:
        fake_api.fail[path] = 500
    fake_api.fail_wallets.add(WALLET_B)
    progress = []

    result = await orchestrator.evaluate(
        [WALLET_A, WALLET_B, WALLET_C], "camp-1", window, on_progress=progress.append
    )

    assert [row.wallet for row in result.rows] == [WALLET_A, WALLET_B, WALLET_C]
    assert result.rows[1].error == "Request failed (500) for /v1/evaluate"
    assert result.rows[0].error is None
    assert result.source == DataSource.COMMENTARY
    assert [snapshot.processed for snapshot in progress] == [1, 2, 3]
    assert [row.wallet for row in progress[-1].rows] == [WALLET_A, WALLET_B, WALLET_C]
    assert fake_api.count("/v1/evaluate") == 3


@pytest.mark.asyncio
async def test_batch_tier_reports_progress_once(orchestrator, window):
    progress = []
    await orchestrator.evaluate([WALLET_A, WALLET_B], "camp-1", window, on_progress=progress.append)
    assert [(snapshot.processed, snapshot.total) for snapshot in progress] == [(2, 2)]
    assert [row.wallet for row in progress[0].rows] == [WALLET_A, WALLET_B]


@pytest.mark.asyncio
async def test_rejected_criteria_retried_within_tier(fake_api, orchestrator, window):
    fake_api.reject_criteria = True

    result = await orchestrator.evaluate([WALLET_A], "camp-1", window, criteria_set_id="strict")

    assert result.source == DataSource.COMMENTARY
    bodies = [body for _, path, body in fake_api.calls]
    assert len(bodies) == 2
    assert bodies[0]["criteria_set_id"] == "strict"
    assert "criteria_set_id" not in bodies[1]


@pytest.mark.asyncio
async def test_rate_limited_criteria_retried_within_tier(fake_api, orchestrator, window):
    fake_api.reject_criteria = True
    fake_api.reject_status = 429

    result = await orchestrator.evaluate([WALLET_A], "camp-1", window, criteria_set_id="strict")

    assert result.source == DataSource.COMMENTARY
    assert fake_api.paths() == ["/v1/campaign/commentary", "/v1/campaign/commentary"]
    assert "criteria_set_id" not in fake_api.calls[1][2]


@pytest.mark.asyncio
async def test_all_tiers_failing_raises_with_per_tier_errors(fake_api, client, window):
    for path in BATCH_PATHS:
        fake_api.fail[path] = 500
    orchestrator = TieredEvaluationOrchestrator(client, tiers=BATCH_TIERS, determinism_spot_check=False)

    with pytest.raises(TiersExhaustedError) as exc_info:
        await orchestrator.evaluate([WALLET_A], "camp-1", window)

    failures = exc_info.value.failures
    assert list(failures) == list(BATCH_TIERS)
    assert all(error.code == ErrorCode.UPSTREAM_ERROR for error in failures.values())


@pytest.mark.asyncio
async def test_empty_wallet_list_makes_no_calls(fake_api, orchestrator, window):
    result = await orchestrator.evaluate([], "camp-1", window)

    assert result.rows == []
    assert fake_api.calls == []


@pytest.mark.asyncio
async def test_duplicate_wallets_evaluated_once(fake_api, orchestrator, window):
    upper = "0x" + "A" * 40
    result = await orchestrator.evaluate([WALLET_A, upper, WALLET_A], "camp-1", window)

    assert [row.wallet for row in result.rows] == [WALLET_A]
    assert fake_api.calls[0][2]["wallets"] == [WALLET_A]


def test_unknown_tier_rejected(client):
    with pytest.raises(ValueError):
        TieredEvaluationOrchestrator(client, tiers=("commentary", "magic"))


# ===== Reconciliation =====

@pytest.mark.asyncio
async def test_batch_rows_reprojected_onto_request_order(fake_api, orchestrator, window):
    fake_api.reverse_batch = True
    fake_api.shout_wallets = True
    fake_api.omit_wallets.add(WALLET_B)

    result = await orchestrator.evaluate([WALLET_A, WALLET_B, WALLET_C], "camp-1", window)

    assert [row.wallet for row in result.rows] == [WALLET_A, WALLET_B, WALLET_C]
    assert result.rows[1].error == MISSING_RESULT
    assert result.rows[1].output is None
    assert result.rows[0].output is not None
    assert result.rows[2].output is not None


def test_reconcile_first_duplicate_wins():
    first = WalletResultRow(wallet=WALLET_A.upper(), error="first")
    second = WalletResultRow(wallet=WALLET_A, error="second")

    rows = reconcile_rows([WALLET_A], [first, second])

    assert len(rows) == 1
    assert rows[0].error == "first"


# ===== Cancellation and run control =====

@pytest.mark.asyncio
async def test_cancel_aborts_run_and_stops_calls(fake_api, orchestrator, window):
    fake_api.delay = 0.2
    signal = CancellationSignal()

    async def cancel_soon():
        await asyncio.sleep(0.02)
        signal.cancel()

    canceller = asyncio.ensure_future(cancel_soon())
    with pytest.raises(EvaluationCancelled):
        await orchestrator.evaluate([WALLET_A, WALLET_B], "camp-1", window, signal=signal)
    await canceller

    calls_at_cancel = len(fake_api.calls)
    await asyncio.sleep(0.05)
    assert calls_at_cancel == 1
    assert len(fake_api.calls) == calls_at_cancel


@pytest.mark.asyncio
async def test_cancel_during_per_wallet_tier(fake_api, client, window):
    fake_api.delay = 0.05
    orchestrator = TieredEvaluationOrchestrator(
        client, concurrency=1, tiers=("per_wallet",), determinism_spot_check=False
    )
    signal = CancellationSignal()

    async def cancel_soon():
        await asyncio.sleep(0.07)
        signal.cancel()

    canceller = asyncio.ensure_future(cancel_soon())
    with pytest.raises(EvaluationCancelled):
        await orchestrator.evaluate([WALLET_A, WALLET_B, WALLET_C], "camp-1", window, signal=signal)
    await canceller

    seen = len(fake_api.calls)
    await asyncio.sleep(0.1)
    assert len(fake_api.calls) == seen
    assert fake_api.count("/v1/evaluate") < 3


@pytest.mark.asyncio
async def test_progress_snapshot_keeps_rows_finished_before_cancel(fake_api, client, window):
    orchestrator = TieredEvaluationOrchestrator(
        client, concurrency=1, tiers=("per_wallet",), determinism_spot_check=False
    )
    signal = CancellationSignal()
    progress = []

    def on_progress(snapshot):
        progress.append(snapshot)
        signal.cancel()

    with pytest.raises(EvaluationCancelled):
        await orchestrator.evaluate(
            [WALLET_A, WALLET_B, WALLET_C], "camp-1", window,
            signal=signal, on_progress=on_progress
        )

    assert len(progress) == 1
    assert (progress[0].processed, progress[0].total) == (1, 3)
    assert [row.wallet for row in progress[0].rows] == [WALLET_A]
    assert progress[0].rows[0].output is not None


@pytest.mark.asyncio
async def test_new_run_supersedes_previous(fake_api, orchestrator, window):
    fake_api.delay = 0.01

    first = orchestrator.start([WALLET_A], "camp-1", window)
    second = orchestrator.start([WALLET_B], "camp-1", window)

    with pytest.raises(EvaluationCancelled):
        await first.result()
    result = await second.result()

    assert first.signal.cancelled
    assert [row.wallet for row in result.rows] == [WALLET_B]


@pytest.mark.asyncio
async def test_cancel_after_completion_is_noop(orchestrator, window):
    handle = orchestrator.start([WALLET_A], "camp-1", window)
    result = await handle.result()

    handle.cancel()
    handle.cancel()

    assert handle.done
    assert result.rows[0].wallet == WALLET_A


# ===== Determinism =====

@pytest.mark.asyncio
async def test_verify_determinism_returns_stable_hash(fake_api, orchestrator, window):
    digest = await orchestrator.verify_determinism(WALLET_A, "camp-1", window)

    assert digest.startswith("0x")
    assert fake_api.count("/v1/evaluate") == 2


@pytest.mark.asyncio
async def test_verify_determinism_detects_drift(fake_api, orchestrator, window):
    fake_api.nondeterministic = True

    with pytest.raises(DeterminismError) as exc_info:
        await orchestrator.verify_determinism(WALLET_A, "camp-1", window)

    assert exc_info.value.first_hash != exc_info.value.second_hash


@pytest.mark.asyncio
async def test_verify_determinism_skipped_when_endpoint_down(fake_api, orchestrator, window):
    fake_api.fail["/v1/evaluate"] = 503
    assert await orchestrator.verify_determinism(WALLET_A, "camp-1", window) is None


@pytest.mark.asyncio
async def test_spot_check_reevaluates_one_wallet(fake_api, client, window):
    orchestrator = TieredEvaluationOrchestrator(client, determinism_spot_check=True)

    result = await orchestrator.evaluate([WALLET_A, WALLET_B], "camp-1", window)

    assert result.source == DataSource.COMMENTARY
    assert fake_api.count("/v1/evaluate") == 1
