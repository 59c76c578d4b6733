from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import analytics_router, config_router, core_router, document_router, session_router
from .cleaner import RemoteCleaner
from .config import UnifiedConfig, get_config, setup_environment
from .document import DocumentStore
from .logging_config import get_logger, setup_logging
from .main import config_from_args, parse_args
from .monitor import get_pipeline_monitor
from .server.config import get_cors_settings, get_uvicorn_settings
from .session import SessionController

logger = get_logger(__name__)


def create_app(config: Optional[UnifiedConfig] = None) -> FastAPI:
    """Build the FastAPI app exposing the session commands."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_config = config or get_config()
        logger.info("🚀 Starting chunkscribe backend...")

        monitor = get_pipeline_monitor()
        documents = DocumentStore()
        cleaner = RemoteCleaner(app_config.cleanup, monitor=monitor)
        controller = SessionController(app_config, documents=documents, cleaner=cleaner, monitor=monitor)

        app.state.config = app_config
        app.state.documents = documents
        app.state.controller = controller
        logger.info("✅ Session controller ready")

        yield

        # Shutdown (including SIGINT/SIGTERM) resets any session in progress
        controller.cleanup()
        await cleaner.aclose()
        logger.info("👋 chunkscribe backend stopped")

    app = FastAPI(title="chunkscribe", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, **get_cors_settings(config))

    app.include_router(core_router)
    app.include_router(session_router)
    app.include_router(document_router)
    app.include_router(config_router)
    app.include_router(analytics_router)
    return app


app = create_app()


def main(argv=None):
    """Entry point for the CLI command."""
    args = parse_args(argv)
    setup_environment()
    config = config_from_args(args)
    setup_logging(level=config.logging.level, log_dir=config.logging.log_dir)

    app = create_app(config)
    uvicorn.run(app, **get_uvicorn_settings(config))


if __name__ == "__main__":
    main()
