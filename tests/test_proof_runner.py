"""Tests for end-to-end runs, run summaries and usage windows."""

import pytest

from fakes import WALLET_A, WALLET_B, WALLET_C, make_output
from usage_proof.core.enums import DataSource, InputSource, UnresolvedReason, WindowType
from usage_proof.core.models import CoreOutput, WalletResultRow
from usage_proof.services.insight_scorer import default_scorer
from usage_proof.services.orchestrator import TieredEvaluationOrchestrator
from usage_proof.services.proof_runner import ProofRunner
from usage_proof.services.run_summary import source_from_rows, summarize_rows
from usage_proof.services.usage_window import build_usage_window


@pytest.fixture
def runner(client):
    orchestrator = TieredEvaluationOrchestrator(client, determinism_spot_check=False)
    return ProofRunner(client, orchestrator=orchestrator)


def row_for(window, wallet, usage, **kwargs):
    output = CoreOutput.model_validate(
        make_output(wallet, window.model_dump(mode="json"), usage=usage)
    )
    return WalletResultRow(
        wallet=wallet,
        output=output,
        insights=default_scorer.score_output(output),
        **kwargs
    )


# ===== ProofRunner =====

@pytest.mark.asyncio
async def test_run_from_text_end_to_end(fake_api, runner, window):
    fake_api.ens["vitalik.eth"] = (WALLET_B, None)

    result = await runner.run_from_text(
        f"{WALLET_A}, vitalik.eth nope ghost.eth {WALLET_A}", "camp-1", window
    )

    assert [row.wallet for row in result.rows] == [WALLET_A, WALLET_B]
    assert result.source == DataSource.COMMENTARY
    assert result.rows[1].display_name == "vitalik.eth"
    assert result.rows[1].input_source == InputSource.ENS
    assert result.rows[0].input_source == InputSource.ADDRESS
    assert result.invalid_inputs == ["nope"]
    assert [(item.value, item.reason) for item in result.unresolved] == [
        ("ghost.eth", UnresolvedReason.NOT_FOUND)
    ]
    assert result.summary.total == 2
    assert result.summary.verified_true == 2


@pytest.mark.asyncio
async def test_run_with_only_invalid_input_makes_no_evaluation_calls(fake_api, runner, window):
    result = await runner.run_from_text("nope 0x123", "camp-1", window)

    assert result.rows == []
    assert result.summary.total == 0
    assert fake_api.calls == []


# ===== Summary =====

def test_summary_skips_error_rows(window):
    rows = [
        row_for(window, WALLET_A, (10, 5, 4)),
        row_for(window, WALLET_B, (120, 1, 1)),
        WalletResultRow(wallet=WALLET_C, error="Missing result."),
    ]
    expected_score = (rows[0].insights.overall_score + rows[1].insights.overall_score) / 2

    summary = summarize_rows(rows)

    assert summary.total == 2
    assert summary.verified_true == 1
    assert summary.verified_false == 1
    assert summary.verified_rate == 0.5
    assert summary.avg_tx_count == 65.0
    assert summary.avg_days_active == 3.0
    assert summary.avg_unique_contracts == 2.5
    assert summary.suspected_farm_count == 1
    assert summary.suspected_farm_rate == 0.5
    assert summary.avg_score == expected_score


def test_summary_of_no_rows_is_zeroed():
    summary = summarize_rows([WalletResultRow(wallet=WALLET_A, error="boom")])
    assert summary.total == 0
    assert summary.verified_rate == 0.0


def test_source_from_rows_picks_richest():
    assert source_from_rows([]) == DataSource.CORE
    assert source_from_rows([
        WalletResultRow(wallet=WALLET_A, source=DataSource.CORE),
        WalletResultRow(wallet=WALLET_B, source=DataSource.INSIGHTS),
    ]) == DataSource.INSIGHTS


# ===== Usage window =====

def test_preset_window_ends_now():
    window = build_usage_window(WindowType.LAST_7_DAYS, now=1_700_000_000)

    assert window.end == 1_700_000_000
    assert window.start == 1_700_000_000 - 7 * 24 * 60 * 60


def test_custom_window_requires_bounds():
    with pytest.raises(ValueError):
        build_usage_window(WindowType.CUSTOM, start=10)


def test_custom_window_rejects_inverted_range():
    with pytest.raises(ValueError):
        build_usage_window(WindowType.CUSTOM, start=20, end=10)


def test_custom_window_uses_given_bounds():
    window = build_usage_window("custom", start=10, end=20)
    assert (window.type, window.start, window.end) == (WindowType.CUSTOM, 10, 20)
