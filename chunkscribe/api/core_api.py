import time

from fastapi import APIRouter, Request

from ..logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
@router.get("/api/health")
async def health_check(request: Request):
    """Health check including whether a session is active."""
    controller = getattr(request.app.state, "controller", None)
    return {
        "status": "ok",
        "controller_ready": controller is not None,
        "session_state": controller.state.value if controller is not None else None,
        "timestamp": time.time(),
    }
