"""
Run-level aggregates, recomputed from rows on demand.
"""
from typing import Iterable, List

from usage_proof.core.enums import BehaviorTag, DataSource
from usage_proof.core.models import RunSummary, WalletResultRow


def summarize_rows(rows: Iterable[WalletResultRow]) -> RunSummary:
    """Reduce over rows that have an output and no error."""
    valid = [row for row in rows if row.output is not None and not row.error]
    total = len(valid)
    if not total:
        return RunSummary()

    verified_true = sum(1 for row in valid if row.output.verified_usage)
    tx = sum(row.output.usage_summary.tx_count for row in valid)
    days = sum(row.output.usage_summary.days_active for row in valid)
    uniq = sum(row.output.usage_summary.unique_contracts for row in valid)

    scored = [row.insights for row in valid if row.insights is not None]
    score_total = sum(insight.overall_score for insight in scored)
    suspected = sum(
        1 for insight in scored if insight.behavior_tag == BehaviorTag.SUSPECTED_FARM
    )

    return RunSummary(
        total=total,
        verified_true=verified_true,
        verified_false=total - verified_true,
        verified_rate=verified_true / total,
        avg_tx_count=tx / total,
        avg_days_active=days / total,
        avg_unique_contracts=uniq / total,
        suspected_farm_count=suspected,
        suspected_farm_rate=suspected / total,
        avg_score=score_total / total
    )


def source_from_rows(rows: List[WalletResultRow]) -> DataSource:
    """Richest source present across per-wallet rows."""
    sources = {row.source for row in rows}
    if DataSource.COMMENTARY in sources:
        return DataSource.COMMENTARY
    if DataSource.INSIGHTS in sources:
        return DataSource.INSIGHTS
    return DataSource.CORE
