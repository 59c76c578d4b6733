from typing import Optional

from fastapi import APIRouter, Request

from ..logging_config import get_logger
from ..processors.recorder_processor import MissingExecutableError
from ..server.utils import error_response, handle_api_exception, success_response
from ..session import Session, SessionController, SessionResult, SessionStateError

logger = get_logger(__name__)

router = APIRouter()


def _controller(request: Request) -> SessionController:
    return request.app.state.controller


def _started_response(controller: SessionController, session: Session):
    return success_response("Session started", {"state": controller.state.value, "session": session.to_dict()})


def _stopped_response(result: Optional[SessionResult]):
    if result is None:
        return success_response("No session was recording", {"state": "idle", "result": None})
    return success_response("Session stopped", {"state": "idle", "result": result.to_dict()})


@router.get("/api/session")
async def get_session(request: Request):
    """Get the current session state."""
    return success_response("Session status retrieved", _controller(request).status())


@router.post("/api/session/start")
async def start_session(request: Request, document: Optional[str] = None):
    """Start recording into ``document`` (defaults to the configured output buffer)."""
    controller = _controller(request)
    try:
        session = await controller.start(document)
        return _started_response(controller, session)
    except (MissingExecutableError, SessionStateError) as e:
        return error_response(str(e), error=e, state=controller.state.value)
    except Exception as e:
        return handle_api_exception("starting session", e)


@router.post("/api/session/stop")
async def stop_session(request: Request):
    """Stop the current session and finalize its text. Safe to call when idle."""
    try:
        result = await _controller(request).stop()
        return _stopped_response(result)
    except Exception as e:
        return handle_api_exception("stopping session", e)


@router.post("/api/session/run")
async def toggle_session(request: Request, document: Optional[str] = None):
    """Start when idle, stop when recording."""
    controller = _controller(request)
    try:
        outcome = await controller.run(document)
    except (MissingExecutableError, SessionStateError) as e:
        return error_response(str(e), error=e, state=controller.state.value)
    except Exception as e:
        return handle_api_exception("toggling session", e)

    if isinstance(outcome, Session):
        return _started_response(controller, outcome)
    return _stopped_response(outcome)


@router.post("/api/session/cleanup")
async def cleanup_session(request: Request):
    """Force an emergency reset of all session resources."""
    controller = _controller(request)
    controller.cleanup()
    return success_response("Session reset", {"state": controller.state.value})


@router.get("/api/session/history")
async def get_session_history(request: Request):
    """Finished sessions, most recent last."""
    history = [result.to_dict() for result in _controller(request).history]
    return success_response("Session history retrieved", {"history": history, "count": len(history)})
