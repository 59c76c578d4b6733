import logging
import os
from pathlib import Path

# Global variables to store the logging configuration
_logging_initialized = False
_log_filename = None


def setup_logging(level=None, log_dir=None):
    """Set up logging to both console and file with fixed filename."""
    global _logging_initialized, _log_filename

    if _logging_initialized:
        if level:
            logging.getLogger("chunkscribe").setLevel(str(level).upper())
        return _log_filename

    level = level or os.getenv("CHUNKSCRIBE_LOG_LEVEL", "INFO")
    logs_dir = Path(log_dir or os.getenv("CHUNKSCRIBE_LOG_DIR", Path(os.getcwd()) / "logs"))
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Use fixed filename that overwrites previous logs
    _log_filename = logs_dir / "last_run.log"
    if _log_filename.exists():
        _log_filename.unlink()
    _log_filename.touch()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[
            logging.FileHandler(_log_filename, mode="a"),
            logging.StreamHandler(),
        ],
        force=True,
    )

    logging.getLogger("chunkscribe").setLevel(str(level).upper())
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _logging_initialized = True

    logger = logging.getLogger(__name__)
    logger.info(f"📝 Centralized logging initialized - writing to {_log_filename}")

    return _log_filename


def get_logger(name=None):
    """Get a logger with the centralized configuration."""
    if not _logging_initialized:
        setup_logging()

    if name is None:
        name = __name__

    return logging.getLogger(name)
