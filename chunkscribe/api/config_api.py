from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ..config import get_runtime_settings
from ..logging_config import get_logger
from ..server.utils import handle_api_exception, success_response

logger = get_logger(__name__)

router = APIRouter()


class CleanupToggle(BaseModel):
    enabled: bool = Field(description="Run remote cleanup when sessions stop")


@router.get("/api/config")
async def get_configuration(request: Request):
    """Current settings, with the API key masked."""
    try:
        controller = request.app.state.controller
        return success_response("Configuration retrieved", {"config": get_runtime_settings(controller.config)})
    except Exception as e:
        return handle_api_exception("getting configuration", e)


@router.post("/api/config/cleanup")
async def set_cleanup(request: Request, body: CleanupToggle):
    """Enable or disable remote cleanup; the tag pair is recomputed immediately."""
    controller = request.app.state.controller
    tags = controller.set_cleanup_enabled(body.enabled)
    return success_response(
        f"Remote cleanup {'enabled' if body.enabled else 'disabled'}",
        {"cleanup_enabled": body.enabled, "start_tag": tags.start, "end_tag": tags.end, "session_active": controller.session is not None},
    )
