"""
View model for the analysis panel.

Renders a run state into exactly one of four views: ``idle`` (nothing run
yet), ``loading``, ``error`` or ``success`` (with or without warnings).
Display only; nothing here is persisted.
"""

from typing import Any, Dict, Optional

from models import AnalysisRunState

VIEW_IDLE = "idle"
VIEW_LOADING = "loading"
VIEW_ERROR = "error"
VIEW_SUCCESS = "success"


def view_for(state: AnalysisRunState) -> str:
    if state.active:
        return VIEW_LOADING
    if state.error:
        return VIEW_ERROR
    if state.result is not None:
        return VIEW_SUCCESS
    return VIEW_IDLE


def present(state: AnalysisRunState, expected_run_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Build the view payload for ``state``.

    When ``expected_run_id`` names a run other than the current one, the
    caller is holding a superseded run and gets the idle view with
    ``stale=True`` instead of that run's data.
    """
    if expected_run_id is not None and expected_run_id != state.run_id:
        return {
            "view": VIEW_IDLE,
            "run_id": state.run_id,
            "stale": True,
        }

    view = view_for(state)
    payload: Dict[str, Any] = {
        "view": view,
        "run_id": state.run_id,
        "url": state.url,
        "stage": state.stage.value,
        "progress": state.progress,
        "message": state.message,
        "warnings": list(state.warnings),
        "error": None,
        "error_kind": None,
        "result": None,
        "redirect_to": state.redirect_to,
    }

    if view == VIEW_ERROR:
        payload["error"] = state.error
        payload["error_kind"] = state.error_kind.value if state.error_kind else None
    elif view == VIEW_SUCCESS:
        payload["result"] = state.result
        payload["has_warnings"] = bool(state.warnings)

    return payload
