"""
Simulated progress for an in-flight analysis.

The backend sends no progress events while it scrapes, screenshots and runs
the vision model, so the dashboard walks a fixed stage schedule instead and
then creeps forward while recommendations are generated. None of this says
anything about the real request: completion is only ever signalled by the
response.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from config import Settings, settings as default_settings
from core.scheduler import Cancellable, Scheduler
from models import AnalysisStage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressStep:
    delay: float  # seconds after run start
    stage: AnalysisStage
    progress: int
    message: str


DEFAULT_SCHEDULE: Sequence[ProgressStep] = (
    ProgressStep(0, AnalysisStage.SCRAPING, 10, "Analyzing page content..."),
    ProgressStep(2, AnalysisStage.SCREENSHOTS, 25, "Capturing screenshots..."),
    ProgressStep(5, AnalysisStage.HERO_ANALYSIS, 40, "Analyzing hero section..."),
    ProgressStep(10, AnalysisStage.SOCIAL_PROOF_ANALYSIS, 55, "Analyzing social proof..."),
    ProgressStep(15, AnalysisStage.CTA_ANALYSIS, 70, "Analyzing CTAs..."),
    ProgressStep(20, AnalysisStage.GENERATING_RECOMMENDATIONS, 85, "Generating recommendations..."),
)

ProgressCallback = Callable[[AnalysisStage, int, str], None]


class ProgressSimulator:
    """
    Emits (stage, progress, message) updates for one run.

    Progress never decreases and never reaches 100. Once the last step of the
    schedule is reached, progress grows by ``tick_step`` every
    ``tick_interval`` seconds up to ``cap``. ``stop()`` cancels every pending
    timer; no update is emitted after it.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_update: ProgressCallback,
        schedule: Sequence[ProgressStep] = DEFAULT_SCHEDULE,
        settings: Settings = default_settings,
    ):
        if not schedule:
            raise ValueError("Progress schedule must contain at least one step")
        self._scheduler = scheduler
        self._on_update = on_update
        self._schedule = sorted(schedule, key=lambda step: step.delay)
        self._tick_interval = settings.PROGRESS_TICK_INTERVAL
        self._tick_step = settings.PROGRESS_TICK_STEP
        self._cap = settings.PROGRESS_CAP
        self._handles: List[Cancellable] = []
        self._tick_handle: Optional[Cancellable] = None
        self._stopped = False
        self.stage: AnalysisStage = AnalysisStage.IDLE
        self.progress = 0
        self.message = ""

    def start(self) -> None:
        first, rest = self._schedule[0], self._schedule[1:]
        for step in rest:
            self._handles.append(self._scheduler.call_later(step.delay, self._enter, step))
        self._enter(first)

    def stop(self) -> None:
        self._stopped = True
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def _emit(self) -> None:
        self._on_update(self.stage, self.progress, self.message)

    def _enter(self, step: ProgressStep) -> None:
        if self._stopped:
            return
        self.stage = step.stage
        self.progress = min(self._cap, max(self.progress, step.progress))
        self.message = step.message
        logger.debug(f"Stage -> {step.stage.value} ({self.progress}%)")
        self._emit()
        if step is self._schedule[-1]:
            self._schedule_tick()

    def _schedule_tick(self) -> None:
        self._tick_handle = self._scheduler.call_later(self._tick_interval, self._tick)

    def _tick(self) -> None:
        self._tick_handle = None
        if self._stopped or self.progress >= self._cap:
            return
        self.progress = min(self._cap, self.progress + self._tick_step)
        self._emit()
        self._schedule_tick()
