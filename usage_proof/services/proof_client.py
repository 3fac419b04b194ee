"""
Proof API client.
Calls the upstream core-evaluation, insights, commentary and ENS endpoints.
"""
import httpx
from typing import Optional, Dict, Any, List, Tuple, Type, TypeVar
from pydantic import BaseModel, TypeAdapter, ValidationError

from usage_proof.api.v1.schemas.responses import StructuredError, ErrorCode
from usage_proof.core.cancellation import CancellationSignal
from usage_proof.core.config import settings
from usage_proof.core.logging_config import get_logger
from usage_proof.core.models import (
    CampaignCommentaryResponse,
    CampaignInsightsResponse,
    CampaignRunResponse,
    CommentaryResponse,
    CoreOutput,
    EnsResolveResponse,
    EvaluateResponse,
    InsightResult,
    InsightsResponse,
    UsageWindow,
)

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

_WALLET_LIST = TypeAdapter(List[str])


class ProofApiClient:
    """
    Client for the proof-of-usage API.

    Transport, HTTP and payload failures come back as StructuredError so the
    caller can decide on fallback; only cancellation is raised.
    """

    BATCH_MODE = "sync"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.proof_api_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds
        self.transport = transport

    # ===== Batch tiers =====

    async def run_campaign_commentary(
        self,
        wallets: List[str],
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        signal: Optional[CancellationSignal] = None
    ) -> Tuple[Optional[CampaignCommentaryResponse], Optional[StructuredError]]:
        """Batch evaluate with insights and commentary."""
        return await self._post(
            "/v1/campaign/commentary",
            self._batch_payload(wallets, campaign_id, window, criteria_set_id),
            CampaignCommentaryResponse,
            source="campaign_commentary",
            with_criteria=bool(criteria_set_id),
            signal=signal
        )

    async def run_campaign_insights(
        self,
        wallets: List[str],
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        signal: Optional[CancellationSignal] = None
    ) -> Tuple[Optional[CampaignInsightsResponse], Optional[StructuredError]]:
        """Batch evaluate with insights, no commentary."""
        return await self._post(
            "/v1/campaign/insights",
            self._batch_payload(wallets, campaign_id, window, criteria_set_id),
            CampaignInsightsResponse,
            source="campaign_insights",
            with_criteria=bool(criteria_set_id),
            signal=signal
        )

    async def run_campaign_core(
        self,
        wallets: List[str],
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        signal: Optional[CancellationSignal] = None
    ) -> Tuple[Optional[CampaignRunResponse], Optional[StructuredError]]:
        """Batch core verification only."""
        return await self._post(
            "/v1/campaign/run",
            self._batch_payload(wallets, campaign_id, window, criteria_set_id),
            CampaignRunResponse,
            source="campaign_run",
            with_criteria=bool(criteria_set_id),
            signal=signal
        )

    # ===== Single-wallet pipeline =====

    async def evaluate_wallet(
        self,
        wallet: str,
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str] = None,
        signal: Optional[CancellationSignal] = None
    ) -> Tuple[Optional[EvaluateResponse], Optional[StructuredError]]:
        payload: Dict[str, Any] = {
            "wallet": wallet,
            "campaign_id": campaign_id,
            "window": window.model_dump(mode="json"),
        }
        if criteria_set_id:
            payload["criteria_set_id"] = criteria_set_id

        return await self._post(
            "/v1/evaluate",
            payload,
            EvaluateResponse,
            source="evaluate",
            with_criteria=bool(criteria_set_id),
            signal=signal
        )

    async def fetch_insights(
        self,
        output: CoreOutput,
        signal: Optional[CancellationSignal] = None
    ) -> Tuple[Optional[InsightsResponse], Optional[StructuredError]]:
        return await self._post(
            "/v1/insights",
            {"output": output.model_dump(mode="json")},
            InsightsResponse,
            source="insights",
            signal=signal
        )

    async def fetch_commentary(
        self,
        output: CoreOutput,
        insights: InsightResult,
        signal: Optional[CancellationSignal] = None
    ) -> Tuple[Optional[CommentaryResponse], Optional[StructuredError]]:
        return await self._post(
            "/v1/commentary",
            {
                "output": output.model_dump(mode="json"),
                "insights": insights.model_dump(mode="json"),
            },
            CommentaryResponse,
            source="commentary",
            signal=signal
        )

    # ===== ENS / demo data =====

    async def resolve_ens(
        self,
        name: str,
        signal: Optional[CancellationSignal] = None
    ) -> Tuple[Optional[EnsResolveResponse], Optional[StructuredError]]:
        return await self._get(
            "/v1/ens/resolve",
            {"name": name},
            EnsResolveResponse,
            source="ens_resolve",
            signal=signal
        )

    async def fetch_mock_wallets(
        self,
        campaign_id: str,
        count: Optional[int] = None,
        signal: Optional[CancellationSignal] = None
    ) -> Tuple[Optional[List[str]], Optional[StructuredError]]:
        """Sample wallet list for demo campaigns."""
        return await self._get(
            f"/v1/campaign/{campaign_id}/mock-wallets",
            {"count": count or settings.mock_wallet_count},
            _WALLET_LIST,
            source="mock_wallets",
            signal=signal
        )

    # ===== Transport =====

    def _batch_payload(
        self,
        wallets: List[str],
        campaign_id: str,
        window: UsageWindow,
        criteria_set_id: Optional[str]
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "campaign_id": campaign_id,
            "window": window.model_dump(mode="json"),
            "wallets": list(wallets),
            "mode": self.BATCH_MODE,
        }
        if criteria_set_id:
            payload["criteria_set_id"] = criteria_set_id
        return payload

    async def _post(
        self,
        path: str,
        payload: Dict[str, Any],
        model: Type[M],
        source: str,
        with_criteria: bool = False,
        signal: Optional[CancellationSignal] = None
    ):
        call = self._send("POST", path, model, source, json=payload, with_criteria=with_criteria)
        if signal is not None:
            return await signal.guard(call)
        return await call

    async def _get(
        self,
        path: str,
        params: Dict[str, Any],
        model,
        source: str,
        signal: Optional[CancellationSignal] = None
    ):
        call = self._send("GET", path, model, source, params=params)
        if signal is not None:
            return await signal.guard(call)
        return await call

    async def _send(
        self,
        method: str,
        path: str,
        model,
        source: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        with_criteria: bool = False
    ) -> Tuple[Optional[Any], Optional[StructuredError]]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport
            ) as client:
                response = await client.request(method, path, json=json, params=params)
                response.raise_for_status()
                data = response.json()

            if isinstance(model, TypeAdapter):
                return model.validate_python(data), None
            return model.model_validate(data), None

        except httpx.TimeoutException:
            error = StructuredError(
                code=ErrorCode.UPSTREAM_TIMEOUT,
                message=f"Request to {path} timed out",
                source=source,
                retryable=True
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if with_criteria and 400 <= status < 500:
                code = ErrorCode.CRITERIA_REJECTED
            elif status == 429:
                code = ErrorCode.RATE_LIMITED
            else:
                code = ErrorCode.UPSTREAM_ERROR
            error = StructuredError(
                code=code,
                message=f"Request failed ({status}) for {path}",
                source=source,
                status_code=status,
                retryable=status >= 500 or status == 429
            )
        except httpx.HTTPError as e:
            error = StructuredError(
                code=ErrorCode.UPSTREAM_ERROR,
                message=f"HTTP error: {str(e)}",
                source=source,
                retryable=True
            )
        except (ValidationError, ValueError) as e:
            error = StructuredError(
                code=ErrorCode.PARSE_ERROR,
                message=f"Malformed response from {path}: {str(e)}",
                source=source,
                retryable=False
            )

        logger.debug(
            "Upstream request failed",
            source=source,
            code=error.code.value,
            status_code=error.status_code
        )
        return None, error
