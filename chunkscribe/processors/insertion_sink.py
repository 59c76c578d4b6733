from typing import Optional

from ..document import Marker
from ..monitor import PipelineMonitor, get_pipeline_monitor
from .base_processor import logger


class InsertionSink:
    """Appends transcript text at a single advancing marker."""

    def __init__(self, marker: Marker, monitor: Optional[PipelineMonitor] = None):
        self.marker = marker
        self.monitor = monitor or get_pipeline_monitor()

    @property
    def valid(self) -> bool:
        return self.marker.valid

    @property
    def position(self) -> Optional[int]:
        return self.marker.position if self.marker.valid else None

    def append(self, text: str) -> bool:
        """Insert ``text`` at the marker; a no-op once the target document is gone."""
        if not self.marker.valid:
            logger.debug(f"Dropping {len(text)} chars - target document no longer exists")
            self.monitor.record_insert(False)
            return False
        if not text:
            return False

        # The marker advances past its own inserts, so fragments concatenate in call order
        self.marker.document.insert(self.marker.position, text)
        self.monitor.record_insert(True)
        return True

    def invalidate(self):
        self.marker.invalidate()
