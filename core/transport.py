"""
HTTP transport for analysis requests.

Builds the outbound payload for either analysis flow and issues exactly one
POST per ``initiate()`` call. Failures are not interpreted here: transport
exceptions and cancellation surface unchanged to whoever awaits the handle.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Generator, Optional

import httpx

from config import Settings, settings as default_settings
from models import AnalysisFlow, AnalysisRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawResponse:
    status_code: int
    text: str


class RequestHandle:
    """
    One in-flight analysis request.

    Awaiting the handle yields the ``RawResponse``; ``cancel()`` aborts the
    underlying request so the awaiter sees ``asyncio.CancelledError``.
    """

    def __init__(self, future: "asyncio.Future[RawResponse]", request_id: Optional[str] = None):
        self.request_id = request_id or uuid.uuid4().hex
        self._future = future

    def cancel(self) -> bool:
        return self._future.cancel()

    def cancelled(self) -> bool:
        return self._future.cancelled()

    def done(self) -> bool:
        return self._future.done()

    def __await__(self) -> Generator[Any, None, RawResponse]:
        return self._future.__await__()


def endpoint_for(flow: AnalysisFlow, settings: Settings = default_settings) -> str:
    if flow == AnalysisFlow.PAGE:
        return settings.PAGE_ANALYSIS_ENDPOINT
    return settings.INSIGHTS_ANALYSIS_ENDPOINT


def build_payload(request: AnalysisRequest, settings: Settings = default_settings) -> Dict[str, Any]:
    """
    Request body in the backend's camelCase shape.

    Optional sections are only included when set. The model selector is sent
    both as ``llm`` (page flow) and ``options.llmProvider`` (insights flow).
    """
    llm = request.llm.value if request.llm else settings.DEFAULT_LLM
    payload: Dict[str, Any] = {"url": request.url, "llm": llm}

    if request.context is not None:
        payload["context"] = {
            "trafficSource": request.context.traffic_source,
            "productType": request.context.product_type,
            "pricePoint": request.context.price_point,
        }
    if request.metrics:
        payload["metrics"] = dict(request.metrics)
    if request.workspace_id:
        payload["workspaceId"] = request.workspace_id

    payload["options"] = {
        "llmProvider": llm,
        "generateThemes": request.options.generate_themes,
        "generateHypotheses": request.options.generate_hypotheses,
    }
    return payload


class AnalysisTransport:
    """Issues analysis requests to the dashboard backend with httpx."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        settings: Settings = default_settings,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.base_url = (base_url or settings.BACKEND_BASE_URL).rstrip("/")
        self._http_transport = http_transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        if self.settings.API_TOKEN:
            headers["Authorization"] = f"Bearer {self.settings.API_TOKEN}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(None, connect=self.settings.CONNECT_TIMEOUT),
            transport=self._http_transport,
        )

    async def _post(self, path: str, payload: Dict[str, Any], request_id: str) -> RawResponse:
        async with self._client() as client:
            response = await client.post(path, json=payload)
        logger.debug(f"📡 [{request_id[:8]}] {path} answered HTTP {response.status_code}")
        return RawResponse(status_code=response.status_code, text=response.text)

    def initiate(self, request: AnalysisRequest) -> RequestHandle:
        """Send one analysis request; must be called from a running event loop."""
        path = endpoint_for(request.flow, self.settings)
        payload = build_payload(request, self.settings)
        request_id = uuid.uuid4().hex
        logger.info(f"📤 [{request_id[:8]}] POST {self.base_url}{path} for {request.url}")
        task = asyncio.ensure_future(self._post(path, payload, request_id))
        return RequestHandle(task, request_id=request_id)
