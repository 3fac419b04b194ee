"""
Exception hierarchy for run-level failures.
Per-wallet and per-tier failures are recorded as data, not raised.
"""
from typing import Dict, Optional


class UsageProofError(Exception):
    """Base class for engine errors."""


class EvaluationCancelled(UsageProofError):
    """Raised when a run is cancelled. Never treated as a tier failure."""

    def __init__(self, message: str = "Aborted"):
        super().__init__(message)


class TiersExhaustedError(UsageProofError):
    """Every evaluation tier failed for a run."""

    def __init__(self, failures: Optional[Dict[str, object]] = None):
        self.failures = failures or {}
        tiers = ", ".join(self.failures) or "none"
        super().__init__(f"All evaluation tiers failed ({tiers})")


class DeterminismError(UsageProofError):
    """Re-evaluating the same inputs produced a different canonical hash."""

    def __init__(self, wallet: str, first_hash: str, second_hash: str):
        self.wallet = wallet
        self.first_hash = first_hash
        self.second_hash = second_hash
        super().__init__(
            f"Canonical hash mismatch for {wallet}: {first_hash} != {second_hash}"
        )
