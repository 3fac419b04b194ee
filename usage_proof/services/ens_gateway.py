"""
ENS gateway.
Resolves ENS names through the proof API with bounded concurrency and
merges them with direct addresses into the evaluation wallet list.
"""
import time
from typing import Dict, Iterable, List, Optional, Tuple

from usage_proof.core.cancellation import CancellationSignal
from usage_proof.core.config import settings
from usage_proof.core.enums import InputKind, InputSource, UnresolvedReason
from usage_proof.core.logging_config import get_logger
from usage_proof.core.models import (
    EnsBatchResult,
    EnsResolution,
    EvaluationWalletGate,
    InvalidWallet,
    WalletInputEntry,
    WalletMeta,
    WalletSources,
)
from usage_proof.services.batch_runner import BatchRunner
from usage_proof.services.proof_client import ProofApiClient
from usage_proof.services.wallet_input import canonicalize, is_valid_address

logger = get_logger(__name__)

KNOWN_REASONS = {reason.value for reason in UnresolvedReason}


class _TTLCache:
    """Name -> (resolution, expiry_ts). Only successful resolutions are stored."""

    def __init__(self, ttl_sec: float):
        self._ttl = ttl_sec
        self._data: Dict[str, Tuple[EnsResolution, float]] = {}

    def get(self, key: str) -> Optional[EnsResolution]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expiry = entry
        if time.monotonic() >= expiry:
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: EnsResolution) -> None:
        if self._ttl <= 0:
            return
        now = time.monotonic()
        self._sweep(now)
        self._data[key] = (value, now + self._ttl)

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expiry) in self._data.items() if now >= expiry]
        for key in expired:
            del self._data[key]

    def __len__(self) -> int:
        return len(self._data)

    def clear(self) -> None:
        self._data.clear()


class EnsGateway:
    """Batch ENS resolution; unresolved names are always re-queried."""

    def __init__(
        self,
        client: ProofApiClient,
        concurrency: Optional[int] = None,
        cache_ttl_seconds: Optional[float] = None
    ):
        self.client = client
        self.runner = BatchRunner(
            settings.ens_concurrency if concurrency is None else concurrency
        )
        ttl = settings.ens_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        self._cache = _TTLCache(ttl)

    async def resolve_batch(
        self,
        names: Iterable[str],
        signal: Optional[CancellationSignal] = None
    ) -> EnsBatchResult:
        names = list(dict.fromkeys(canonicalize(name) for name in names))
        if not names:
            return EnsBatchResult()

        resolved: Dict[str, EnsResolution] = {}
        pending: List[str] = []
        for name in names:
            hit = self._cache.get(name)
            if hit is not None:
                resolved[name] = hit.model_copy(update={"cached": True})
            else:
                pending.append(name)

        fresh = await self.runner.run(
            pending,
            lambda name, index: self._resolve_one(name, signal),
            signal=signal,
            on_error=lambda name, index, exc: EnsResolution(
                error=UnresolvedReason.RESOLVER_ERROR.value
            )
        )
        for name, resolution in zip(pending, fresh):
            resolved[name] = resolution
            if resolution.address:
                self._cache.set(name, resolution)

        unresolved = [name for name in names if not resolved[name].address]
        if unresolved:
            logger.info("ENS names unresolved", count=len(unresolved), total=len(names))
        return EnsBatchResult(
            resolved={name: resolved[name] for name in names},
            unresolved=unresolved
        )

    async def retry_unresolved(
        self,
        previous: EnsBatchResult,
        signal: Optional[CancellationSignal] = None
    ) -> EnsBatchResult:
        """Re-resolve only the names that failed last time, keeping the rest."""
        if not previous.unresolved:
            return previous

        retried = await self.resolve_batch(previous.unresolved, signal=signal)
        merged = dict(previous.resolved)
        merged.update(retried.resolved)
        return EnsBatchResult(
            resolved=merged,
            unresolved=[name for name in merged if not merged[name].address]
        )

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _resolve_one(
        self,
        name: str,
        signal: Optional[CancellationSignal]
    ) -> EnsResolution:
        payload, error = await self.client.resolve_ens(name, signal=signal)
        if error is not None:
            return EnsResolution(error=UnresolvedReason.RESOLVER_ERROR.value)

        address = payload.normalized_address or (
            payload.address.lower() if payload.address else None
        )
        return EnsResolution(
            address=address,
            error=payload.error,
            cached=payload.cached
        )


def unresolved_reason(resolution: Optional[EnsResolution]) -> UnresolvedReason:
    """Map a failed resolution to its reason code."""
    if resolution is None:
        return UnresolvedReason.NOT_FOUND
    if resolution.error in KNOWN_REASONS:
        return UnresolvedReason(resolution.error)
    if resolution.error:
        return UnresolvedReason.RESOLVER_ERROR
    return UnresolvedReason.NOT_FOUND


def build_evaluation_wallets(
    inputs: Iterable[WalletInputEntry],
    resolved: Dict[str, EnsResolution]
) -> EvaluationWalletGate:
    """
    Merge direct addresses and resolved ENS names into one deduplicated
    wallet list in input order. Unresolved names go to `invalid` with a reason.
    """
    gate = EvaluationWalletGate()
    seen_wallets = set()
    seen_invalid = set()

    def mark_invalid(value: str, reason: UnresolvedReason) -> None:
        key = (value, reason)
        if key in seen_invalid:
            return
        seen_invalid.add(key)
        gate.invalid.append(InvalidWallet(value=value, reason=reason))

    def add_address(address: str, meta: WalletMeta, ens_name: Optional[str] = None) -> None:
        normalized = canonicalize(address)
        if not is_valid_address(normalized):
            mark_invalid(meta.display_name or normalized, UnresolvedReason.INVALID_ADDRESS)
            return

        sources = gate.sources_by_address.setdefault(normalized, WalletSources())
        if meta.input_source == InputSource.ENS:
            sources.has_ens = True
            if ens_name and ens_name not in sources.ens_names:
                sources.ens_names.append(ens_name)
        else:
            sources.has_address = True

        existing = gate.meta_by_address.get(normalized)
        if existing is None:
            gate.meta_by_address[normalized] = meta
        else:
            if meta.display_name and not existing.display_name:
                existing.display_name = meta.display_name
            if meta.input_source == InputSource.ENS:
                existing.input_source = InputSource.ENS
            existing.ens_cached = existing.ens_cached or meta.ens_cached

        if normalized not in seen_wallets:
            seen_wallets.add(normalized)
            gate.wallets.append(normalized)

    for entry in inputs:
        if entry.kind == InputKind.ADDRESS and entry.normalized:
            add_address(entry.normalized, WalletMeta(input_source=InputSource.ADDRESS))
        elif entry.kind == InputKind.ENS and entry.normalized:
            resolution = resolved.get(entry.normalized)
            if resolution is None or not resolution.address:
                mark_invalid(entry.normalized, unresolved_reason(resolution))
                continue
            add_address(
                resolution.address,
                WalletMeta(
                    display_name=entry.normalized,
                    input_source=InputSource.ENS,
                    ens_cached=resolution.cached
                ),
                ens_name=entry.normalized
            )

    return gate
