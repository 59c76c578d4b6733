from .analytics_api import router as analytics_router
from .config_api import router as config_router
from .core_api import router as core_router
from .document_api import router as document_router
from .session_api import router as session_router

__all__ = [
    "analytics_router",
    "config_router",
    "core_router",
    "document_router",
    "session_router",
]
