import asyncio
import contextlib
from pathlib import Path
from typing import List, Optional

from ..logging_config import get_logger
from ..monitor import PipelineMonitor, get_pipeline_monitor

# Initialize logging using centralized configuration
logger = get_logger(__name__)


def format_command(command: List[str]) -> str:
    """Render a command line for log messages."""
    return " ".join(str(part) for part in command)


def remove_file(path: Optional[Path]) -> bool:
    """Delete ``path`` if it exists; never raises."""
    if path is None:
        return False
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")
        return False


def kill_process(process: Optional[asyncio.subprocess.Process]) -> bool:
    """Kill a subprocess that may already have exited."""
    if process is None or process.returncode is not None:
        return False
    with contextlib.suppress(ProcessLookupError):
        process.kill()
        return True
    return False


class BaseProcessor:
    """Base class for the pipeline processors: config plus the shared pipeline monitor."""

    def __init__(self, config, monitor: Optional[PipelineMonitor] = None):
        self.config = config
        self.monitor = monitor or get_pipeline_monitor()
