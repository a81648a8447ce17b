from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
import httpx
import logging

from models import AnalysisRequest
from analyzer.controller import AnalysisController, get_analysis_controller
from analyzer.poller import (
    AnalysisNotFoundError,
    AuthenticationRequiredError,
    StatusCheckError,
    StatusPoller,
    get_status_poller,
)
from analyzer.presenter import present

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()


@router.get("/")
async def root():
    return {
        "service": "CRO Analysis Client",
        "status": "running",
        "endpoints": {
            "analyze": "/analyze (POST)",
            "cancel": "/analyze/cancel (POST)",
            "state": "/analyze/state (GET)",
            "status": "/analyze/status/{analysis_id} (GET)",
        },
    }


@router.post("/analyze", status_code=202)
async def start_analysis(
    request: AnalysisRequest,
    controller: AnalysisController = Depends(get_analysis_controller),
):
    """
    Start analyzing a landing page.

    Returns immediately with the run id and the loading view. Any analysis
    still running is abandoned; its response will never reach the view.
    Poll /analyze/state for progress and the final result.
    """
    try:
        controller.start(request)
    except Exception as e:
        logger.error(f"ERROR: Failed to start analysis for {request.url}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to start analysis: {str(e)}")

    state = controller.state
    return {"run_id": state.run_id, "view": present(state)}


@router.post("/analyze/cancel")
async def cancel_analysis(controller: AnalysisController = Depends(get_analysis_controller)):
    """
    Cancel the running analysis.

    The backend may keep working on it; the dashboard simply stops waiting.
    """
    cancelled = controller.cancel()
    return {"cancelled": cancelled, "view": present(controller.state)}


@router.get("/analyze/state")
async def get_analysis_state(
    run_id: Optional[int] = None,
    controller: AnalysisController = Depends(get_analysis_controller),
):
    """
    Current view of the analysis panel.

    - loading: stage, progress and message of the running analysis
    - error: plain-language error (timeouts, cancellation, login, rate limits)
    - success: result payload, plus warnings when the analysis was degraded
    - idle: nothing has been run yet

    Pass run_id to make sure the view belongs to the run you started.
    """
    return present(controller.state, expected_run_id=run_id)


@router.get("/analyze/status/{analysis_id}")
async def get_saved_analysis_status(
    analysis_id: str,
    poller: StatusPoller = Depends(get_status_poller),
):
    """
    Server-side status of a saved analysis.

    Useful after a client-side timeout: the backend may have finished the
    analysis anyway.
    """
    try:
        status = await poller.check(analysis_id)
    except AuthenticationRequiredError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except AnalysisNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StatusCheckError as e:
        raise HTTPException(status_code=502, detail=f"Status check failed: {str(e)}")
    except httpx.TransportError as e:
        logger.error(f"ERROR: Backend unreachable while checking {analysis_id}: {str(e)}")
        raise HTTPException(
            status_code=503,
            detail="Network error. Please check your connection and try again.",
        )

    return status.model_dump()


@router.get("/health")
async def health_check():
    return {"status": "healthy"}
