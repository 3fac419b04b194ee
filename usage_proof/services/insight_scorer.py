"""
Heuristic Insight Scorer - local fallback for the remote insights tier.
Derives a behavior score and farming probability from raw usage counts.
"""
import math

from usage_proof.core.enums import BehaviorTag
from usage_proof.core.models import CoreOutput, InsightResult, UsageSummary


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves upward (matches the remote scorer)."""
    return int(math.floor(value + 0.5))


def round_to_2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


class HeuristicInsightScorer:
    """
    Pure, deterministic scorer. Must stay numerically identical to the remote
    insights tier since rows from both are filtered and sorted together.
    """

    INSIGHT_VERSION = "v1"

    # Normalization caps
    TX_CAP = 120
    DAYS_CAP = 30
    UNIQUE_CAP = 20

    # Tag thresholds
    INACTIVE_MAX_TX = 3
    INACTIVE_MAX_DAYS = 2
    FARM_MIN_RAW = 0.65
    FARM_MAX_UNIQUE = 2
    ORGANIC_MIN_ACTIVITY = 0.70
    ORGANIC_MAX_FARM = 0.55

    FARM_PENALTY = 35

    def score(self, usage: UsageSummary) -> InsightResult:
        tx = usage.tx_count
        days = usage.days_active
        uniq = usage.unique_contracts

        tx_n = clamp(tx / self.TX_CAP, 0, 1)
        days_n = clamp(days / self.DAYS_CAP, 0, 1)
        uniq_n = clamp(uniq / self.UNIQUE_CAP, 0, 1)

        activity = clamp(0.45 * days_n + 0.35 * tx_n + 0.2 * uniq_n, 0, 1)
        farm_raw = clamp(
            0.55 * tx_n + 0.25 * (1 - uniq_n) + 0.2 * (1 - days_n),
            0,
            1
        )

        if tx < self.INACTIVE_MAX_TX and days < self.INACTIVE_MAX_DAYS:
            behavior_tag = BehaviorTag.INACTIVE
        elif farm_raw >= self.FARM_MIN_RAW and uniq <= self.FARM_MAX_UNIQUE:
            behavior_tag = BehaviorTag.SUSPECTED_FARM
        elif activity >= self.ORGANIC_MIN_ACTIVITY and farm_raw < self.ORGANIC_MAX_FARM:
            behavior_tag = BehaviorTag.ORGANIC
        else:
            behavior_tag = BehaviorTag.MIXED

        overall_score = round_half_up(
            clamp(activity * 100 - farm_raw * self.FARM_PENALTY, 0, 100)
        )

        return InsightResult(
            overall_score=overall_score,
            farming_probability=round_to_2(farm_raw),
            behavior_tag=behavior_tag,
            insight_version=self.INSIGHT_VERSION
        )

    def score_output(self, output: CoreOutput) -> InsightResult:
        return self.score(output.usage_summary)


default_scorer = HeuristicInsightScorer()
