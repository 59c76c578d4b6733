import time

from fastapi import APIRouter, Request

from ..logging_config import get_logger
from ..server.utils import success_response

logger = get_logger(__name__)

router = APIRouter()


@router.get("/api/stats")
async def get_pipeline_stats(request: Request):
    """Capture, recognition and cleanup counters, including absorbed failures."""
    monitor = request.app.state.controller.monitor
    return success_response("Pipeline statistics retrieved", {"stats": monitor.get_stats(), "timestamp": time.time()})
