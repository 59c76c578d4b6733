from typing import Any, Dict, Optional

from ..logging_config import get_logger

logger = get_logger(__name__)


def success_response(message: str, data: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
    """Build the ``{"status": "success", "message": ...}`` envelope, merging ``data`` into it."""
    response = {"status": "success", "message": message}
    if data:
        response.update(data)
    response.update(kwargs)
    return response


def error_response(message: str, error: Optional[Exception] = None, log_error: bool = True, **kwargs) -> Dict[str, Any]:
    """Build the error envelope. ``error_type`` names the exception class when one is given."""
    if log_error:
        logger.error(f"{message}: {error}" if error else message)

    response = {"status": "error", "message": message}
    if error is not None:
        response["error_type"] = error.__class__.__name__
    response.update(kwargs)
    return response


def not_found_response(kind: str, name: str) -> Dict[str, Any]:
    return error_response(f"{kind} {name!r} not found", log_error=False, error_type="NotFound")


def handle_api_exception(operation: str, error: Exception) -> Dict[str, Any]:
    """Log an unexpected failure and turn it into an error envelope."""
    return error_response(f"Error {operation}: {error}", error=error)
