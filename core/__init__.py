# Core package - Infrastructure components
from .scheduler import LoopScheduler, ManualScheduler, Scheduler
from .transport import AnalysisTransport, RawResponse, RequestHandle, build_payload

__all__ = [
    # Scheduling
    "LoopScheduler",
    "ManualScheduler",
    "Scheduler",
    # Transport
    "AnalysisTransport",
    "RawResponse",
    "RequestHandle",
    "build_payload",
]
