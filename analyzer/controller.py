"""
Analysis run controller.

Owns the single active ``AnalysisRunState`` of a dashboard session and is the
only place it changes. A run goes: start -> simulated progress while the
request is in flight -> classified outcome, or -> idle on cancel/timeout.

Every asynchronous completion (progress timers, the response, the timeout,
the login redirect) carries the epoch it was created under. Starting or
cancelling a run bumps the epoch, so completions from an abandoned run are
dropped instead of overwriting the current one.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from config import Settings, settings as default_settings
from core.scheduler import Cancellable, LoopScheduler, Scheduler
from core.transport import AnalysisTransport, RequestHandle
from models import (
    AnalysisFlow,
    AnalysisRequest,
    AnalysisRunState,
    AnalysisStage,
    ClassifiedOutcome,
    ErrorKind,
    OutcomeKind,
)
from analyzer.classifier import ClassifierContext, classify_exception, classify_response
from analyzer.progress import ProgressSimulator

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Analysis cancelled"

StateListener = Callable[[AnalysisRunState], None]
Navigator = Callable[[str], None]


def timeout_for(flow: AnalysisFlow, settings: Settings = default_settings) -> int:
    if flow == AnalysisFlow.PAGE:
        return settings.PAGE_ANALYSIS_TIMEOUT
    return settings.INSIGHTS_ANALYSIS_TIMEOUT


def describe_duration(seconds: int) -> str:
    """180 -> '3 minutes', 90 -> '90 seconds'."""
    if seconds >= 60 and seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"


def timeout_message(seconds: int) -> str:
    return (
        f"Analysis timed out after {describe_duration(seconds)}. "
        "The analysis may have completed - please check your dashboard."
    )


class AnalysisController:
    """
    Drives one analysis run at a time.

    Args:
        transport: Request initiator; defaults to ``AnalysisTransport``
        scheduler: Timer source; defaults to the running event loop
        settings: Configuration; defaults to the global settings
        navigator: Called with the login path when an unauthenticated run
            asks for a redirect
    """

    def __init__(
        self,
        transport: Optional[AnalysisTransport] = None,
        scheduler: Optional[Scheduler] = None,
        settings: Settings = default_settings,
        navigator: Optional[Navigator] = None,
    ):
        self.settings = settings
        self._transport = transport or AnalysisTransport(settings=settings)
        self._scheduler = scheduler or LoopScheduler()
        self._navigator = navigator
        self._state = AnalysisRunState()
        self._epoch = 0
        self._run_counter = 0
        self._handle: Optional[RequestHandle] = None
        self._simulator: Optional[ProgressSimulator] = None
        self._timeout_handle: Optional[Cancellable] = None
        self._redirect_handle: Optional[Cancellable] = None
        self._task: Optional["asyncio.Task[None]"] = None
        self._listeners: List[StateListener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> AnalysisRunState:
        """Snapshot of the current run; mutating it has no effect."""
        return self._state.model_copy(deep=True)

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def is_running(self) -> bool:
        return self._state.active

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Receive a state snapshot after every transition. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("⚠️ State listener failed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, request: AnalysisRequest) -> "asyncio.Task[None]":
        """
        Start a new run, abandoning any run still in flight.

        Must be called from a running event loop. Returns the task that
        supervises the request; awaiting it waits for the run to settle.
        """
        # The current run keeps its request and timers if initiate() raises
        handle = self._transport.initiate(request)
        if self._state.active:
            logger.info(f"🔄 Run {self._state.run_id} superseded by a new analysis")
        self._release()

        self._epoch += 1
        self._run_counter += 1
        epoch = self._epoch
        timeout_seconds = timeout_for(request.flow, self.settings)

        self._state = AnalysisRunState(run_id=self._run_counter, active=True, url=request.url)
        logger.info(
            f"🚀 Run {self._run_counter} started for {request.url} "
            f"[flow={request.flow.value}, timeout={timeout_seconds}s]"
        )

        self._simulator = ProgressSimulator(
            self._scheduler,
            on_update=lambda stage, progress, message: self._apply_progress(epoch, stage, progress, message),
            settings=self.settings,
        )
        self._simulator.start()
        self._timeout_handle = self._scheduler.call_later(
            timeout_seconds, self._on_timeout, epoch, timeout_seconds
        )

        context = ClassifierContext(
            flow=request.flow,
            options=request.options,
            login_path=self.settings.LOGIN_PATH,
        )
        self._handle = handle
        self._task = asyncio.ensure_future(self._supervise(epoch, self._handle, context))
        return self._task

    async def run(self, request: AnalysisRequest) -> AnalysisRunState:
        """Start a run and wait for it to settle."""
        await self.start(request)
        return self.state

    def cancel(self) -> bool:
        """User cancel. Returns False when there is no active run."""
        if not self._state.active:
            return False
        logger.info(f"🛑 Run {self._state.run_id} cancelled by user")
        self._abort(CANCELLED_MESSAGE, ErrorKind.USER_CANCELLED)
        return True

    def _on_timeout(self, epoch: int, timeout_seconds: int) -> None:
        if epoch != self._epoch or not self._state.active:
            return
        logger.warning(f"⏱️ Run {self._state.run_id} timed out after {timeout_seconds}s")
        self._abort(timeout_message(timeout_seconds), ErrorKind.TIMEOUT)

    def _abort(self, message: str, kind: ErrorKind) -> None:
        self._release()
        self._epoch += 1
        self._state.stage = AnalysisStage.IDLE
        self._state.progress = 0
        self._state.message = ""
        self._state.result = None
        self._state.error = message
        self._state.error_kind = kind
        self._state.active = False
        self._notify()

    def _release(self) -> None:
        """Cancel the in-flight request and every timer owned by the current run."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._simulator is not None:
            self._simulator.stop()
            self._simulator = None
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        if self._redirect_handle is not None:
            self._redirect_handle.cancel()
            self._redirect_handle = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _apply_progress(self, epoch: int, stage: AnalysisStage, progress: int, message: str) -> None:
        if epoch != self._epoch or not self._state.active:
            return
        self._state.stage = stage
        self._state.progress = max(self._state.progress, progress)
        self._state.message = message
        self._notify()

    async def _supervise(self, epoch: int, handle: RequestHandle, context: ClassifierContext) -> None:
        try:
            raw = await handle
        except asyncio.CancelledError:
            # cancel()/timeout already settled the state
            return
        except Exception as e:
            logger.error(f"❌ Analysis request failed: {type(e).__name__}: {e}", exc_info=True)
            outcome = classify_exception(e)
        else:
            outcome = classify_response(
                raw.status_code, raw.text, now=self._scheduler.time(), context=context
            )

        if epoch != self._epoch:
            logger.info(f"Discarding stale response for superseded run (epoch {epoch})")
            return
        self._finish(epoch, outcome)

    def _finish(self, epoch: int, outcome: ClassifiedOutcome) -> None:
        self._handle = None
        if self._simulator is not None:
            self._simulator.stop()
            self._simulator = None
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

        state = self._state
        state.active = False
        state.warnings.extend(outcome.warnings)

        if outcome.kind == OutcomeKind.SUCCESS:
            state.stage = AnalysisStage.COMPLETE
            state.progress = 100
            state.message = "Analysis complete!"
            state.result = outcome.result
            logger.info(f"✅ Run {state.run_id} complete ({len(state.warnings)} warnings)")
        elif outcome.kind == OutcomeKind.PARTIAL_SUCCESS:
            state.stage = AnalysisStage.COMPLETE
            state.progress = 100
            state.message = "Analysis complete with warnings"
            state.result = outcome.result
            state.error_kind = outcome.error_kind
            logger.warning(f"⚠️ Run {state.run_id} returned partial data: {state.warnings}")
        else:
            state.error = outcome.message
            state.error_kind = outcome.error_kind
            logger.warning(f"❌ Run {state.run_id} failed [{outcome.kind.value}]: {outcome.message}")
            if outcome.kind == OutcomeKind.AUTH_REQUIRED and outcome.redirect_to:
                self._redirect_handle = self._scheduler.call_later(
                    self.settings.LOGIN_REDIRECT_DELAY, self._redirect, epoch, outcome.redirect_to
                )

        self._notify()

    def _redirect(self, epoch: int, path: str) -> None:
        self._redirect_handle = None
        if epoch != self._epoch:
            return
        logger.info(f"🔐 Redirecting to {path}")
        self._state.redirect_to = path
        self._notify()
        if self._navigator is not None:
            self._navigator(path)


# Lazy per-process controller, one dashboard session per process
_controller: Optional[AnalysisController] = None


def get_analysis_controller() -> AnalysisController:
    """Get or create the process-wide analysis controller."""
    global _controller
    if _controller is None:
        _controller = AnalysisController()
    return _controller
