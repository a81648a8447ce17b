# Analyzer package - analysis run workflow
from .classifier import classify_response, classify_exception, ClassifierContext
from .progress import ProgressSimulator, DEFAULT_SCHEDULE
from .controller import AnalysisController, get_analysis_controller
from .presenter import present
from .poller import StatusPoller, get_status_poller

__all__ = [
    "classify_response",
    "classify_exception",
    "ClassifierContext",
    "ProgressSimulator",
    "DEFAULT_SCHEDULE",
    "AnalysisController",
    "get_analysis_controller",
    "present",
    "StatusPoller",
    "get_status_poller",
]
