"""
Status polling for saved analyses.

When a run times out on the client the backend may still finish it. The
status endpoint reports server-side progress for a saved analysis id:

    {"status": "processing", "progress": 40, "stage": "...", "message": "..."}
    {"status": "completed", "progress": 100, "analysis": {...}}
    {"status": "failed", "error": "..."}
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import Settings, settings as default_settings
from models import AnalysisStatus
from utils.parsing.json import body_field, parse_response_body

logger = logging.getLogger(__name__)


class StatusCheckError(Exception):
    """Raised when the status endpoint answers with something unusable"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationRequiredError(StatusCheckError):
    """Raised on HTTP 401 from the status endpoint"""


class AnalysisNotFoundError(StatusCheckError):
    """Raised on HTTP 404 from the status endpoint"""


def _progress_value(value) -> int:
    try:
        return max(0, min(100, int(float(value))))
    except (TypeError, ValueError):
        return 0


class StatusPoller:
    """Reads server-side progress of saved analyses with httpx."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        settings: Settings = default_settings,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.base_url = (base_url or settings.BACKEND_BASE_URL).rstrip("/")
        self._http_transport = http_transport
        self._sleep = sleep

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.settings.API_TOKEN:
            headers["Authorization"] = f"Bearer {self.settings.API_TOKEN}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(30.0, connect=self.settings.CONNECT_TIMEOUT),
            transport=self._http_transport,
        )

    async def _fetch(self, analysis_id: str) -> httpx.Response:
        async with self._client() as client:
            return await client.get(self.settings.STATUS_ENDPOINT, params={"id": analysis_id})

    async def check(self, analysis_id: str) -> AnalysisStatus:
        """
        Fetch the current status of one analysis.

        Connection-level failures are retried with exponential backoff;
        HTTP errors are not.

        Raises:
            AuthenticationRequiredError: HTTP 401
            AnalysisNotFoundError: HTTP 404
            StatusCheckError: any other non-2xx answer or an unreadable body
            httpx.TransportError: connection failures that outlived the retries
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.STATUS_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=1,
                min=self.settings.STATUS_RETRY_MIN_WAIT,
                max=self.settings.STATUS_RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._fetch(analysis_id)

        body = parse_response_body(response.text)
        error = body_field(body, "error")
        if error is not None and not isinstance(error, str):
            error = str(error)

        if response.status_code == 401:
            raise AuthenticationRequiredError(
                "You must be logged in to check analysis status.", status_code=401
            )
        if response.status_code == 404:
            raise AnalysisNotFoundError(error or "Analysis not found", status_code=404)
        if not response.is_success:
            raise StatusCheckError(
                error or f"Status check failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(body, dict) or "status" not in body:
            raise StatusCheckError("Status endpoint returned an unreadable response")

        return AnalysisStatus(
            analysis_id=analysis_id,
            status=str(body["status"]),
            progress=_progress_value(body.get("progress")),
            stage=body.get("stage"),
            message=body.get("message"),
            error=error,
            analysis=body.get("analysis"),
        )

    async def wait_for_completion(
        self,
        analysis_id: str,
        on_update: Optional[Callable[[AnalysisStatus], None]] = None,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> AnalysisStatus:
        """
        Poll until the analysis completes or fails.

        Returns the last status seen; it is non-terminal only when
        ``max_attempts`` polls ran out first.

        Raises:
            ValueError: max_attempts below 1
        """
        interval = self.settings.STATUS_POLL_INTERVAL if interval is None else interval
        if max_attempts is None:
            max_attempts = self.settings.STATUS_POLL_MAX_ATTEMPTS
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        status = None
        for poll in range(1, max_attempts + 1):
            status = await self.check(analysis_id)
            if on_update is not None:
                on_update(status)

            if status.is_terminal:
                icon = "✅" if status.status == "completed" else "❌"
                logger.info(f"{icon} Analysis {analysis_id} {status.status} after {poll} poll(s)")
                return status

            logger.debug(f"⏳ Analysis {analysis_id}: {status.stage or status.status} {status.progress}%")
            if poll < max_attempts:
                await self._sleep(interval)

        logger.warning(f"⏱️ Gave up polling {analysis_id} after {max_attempts} attempts")
        return status


# Lazy initialization of the status poller
_status_poller: Optional[StatusPoller] = None


def get_status_poller() -> StatusPoller:
    """Get or create the status poller instance."""
    global _status_poller
    if _status_poller is None:
        _status_poller = StatusPoller()
    return _status_poller
