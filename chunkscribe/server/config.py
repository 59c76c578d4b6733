"""Server settings derived from the main configuration."""

from typing import Any, Dict, Optional

from ..config import UnifiedConfig, get_config


def get_cors_settings(config: Optional[UnifiedConfig] = None) -> Dict[str, Any]:
    """CORS settings in the keyword form expected by FastAPI's middleware."""
    config = config or get_config()
    return {
        "allow_origins": config.server.cors_origins,
        "allow_credentials": config.server.cors_credentials,
        "allow_methods": config.server.cors_methods,
        "allow_headers": config.server.cors_headers,
    }


def get_uvicorn_settings(config: Optional[UnifiedConfig] = None) -> Dict[str, Any]:
    config = config or get_config()
    return {
        "host": config.server.host,
        "port": config.server.port,
        "reload": False,
        "log_level": config.logging.level.lower(),
        "lifespan": "on",
    }
