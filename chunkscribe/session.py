"""Recording session state machine.

``SessionController`` owns at most one ``Session`` and drives it through
``idle -> recording -> stopping -> idle``. All session fields live on the
``Session`` value rather than in module globals.
"""

import asyncio
import shutil
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from time import time
from typing import Any, Deque, Dict, List, Optional, Set

from .cleaner import CleanupResult, RemoteCleaner
from .config import UnifiedConfig
from .document import Document, DocumentStore, Marker
from .logging_config import get_logger
from .monitor import PipelineMonitor, get_pipeline_monitor, log_performance_if_needed
from .processors.base_processor import kill_process
from .processors.insertion_sink import InsertionSink
from .processors.recorder_processor import ChunkRecorder, ensure_executables
from .processors.transcription_processor import Transcriber
from .tags import TagPair, TagRegion

logger = get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"


class SessionStateError(Exception):
    """An operation is not allowed in the current session state."""

    pass


class SessionAlreadyRunningError(SessionStateError):
    pass


@dataclass
class Session:
    """Everything one recording session owns."""

    document: Document
    marker: Marker
    sink: InsertionSink
    tags: TagPair
    cleanup_enabled: bool
    chunk_dir: Path
    state: SessionState = SessionState.RECORDING
    process: Optional[asyncio.subprocess.Process] = None
    recorder_task: Optional[asyncio.Task] = None
    pending: Set[asyncio.Task] = field(default_factory=set)
    last_transcription: Optional[asyncio.Task] = None
    sequence: int = 0
    started_at: float = field(default_factory=time)

    @property
    def is_recording(self) -> bool:
        return self.state is SessionState.RECORDING

    def next_sequence(self) -> int:
        self.sequence += 1
        return self.sequence

    def track(self, task: asyncio.Task) -> None:
        """Register an in-flight transcription; the newest one gates the next insert."""
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)
        self.last_transcription = task

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "document": self.document.name,
            "marker_position": self.sink.position,
            "start_tag": self.tags.start,
            "end_tag": self.tags.end,
            "cleanup_enabled": self.cleanup_enabled,
            "chunks": self.sequence,
            "pending_transcriptions": len(self.pending),
            "chunk_dir": str(self.chunk_dir),
            "started_at": self.started_at,
            "elapsed": time() - self.started_at,
        }


@dataclass
class SessionResult:
    """What a finished session produced."""

    document: str
    text: str
    raw_text: str
    chunks: int
    started_at: float
    finished_at: float
    cleanup: Optional[CleanupResult] = None
    region_found: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": self.document,
            "text": self.text,
            "raw_text": self.raw_text,
            "chunks": self.chunks,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration": self.finished_at - self.started_at,
            "cleaned": bool(self.cleanup and self.cleanup.cleaned),
            "cleanup_fallback_reason": self.cleanup.fallback_reason if self.cleanup else None,
            "region_found": self.region_found,
        }


class SessionController:
    """Starts, stops and resets transcription sessions."""

    def __init__(
        self,
        config: UnifiedConfig,
        documents: Optional[DocumentStore] = None,
        transcriber: Optional[Transcriber] = None,
        recorder: Optional[ChunkRecorder] = None,
        cleaner: Optional[RemoteCleaner] = None,
        monitor: Optional[PipelineMonitor] = None,
    ):
        self.config = config
        self.documents = documents or DocumentStore()
        self.monitor = monitor or get_pipeline_monitor()
        self.transcriber = transcriber or Transcriber(config.transcriber, monitor=self.monitor)
        self.recorder = recorder or ChunkRecorder(config.recorder, self.transcriber, monitor=self.monitor)
        self.cleaner = cleaner or RemoteCleaner(config.cleanup, monitor=self.monitor)
        self.history: Deque[SessionResult] = deque(maxlen=config.output.max_history)
        self.session: Optional[Session] = None
        self.tags = TagPair.from_config(config.tags, config.cleanup.enabled)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def cleanup_enabled(self) -> bool:
        return self.config.cleanup.enabled

    def set_cleanup_enabled(self, enabled: bool) -> TagPair:
        """Toggle remote cleanup and recompute the tag pair.

        A session that is already running keeps the tags and cleanup flag it
        started with, so it can still find its own region on stop.
        """
        self.config.cleanup.enabled = bool(enabled)
        self.tags = TagPair.from_config(self.config.tags, self.config.cleanup.enabled)
        if self.session is not None:
            logger.warning(f"Cleanup set to {enabled} mid-session; the active session keeps cleanup={self.session.cleanup_enabled}")
        logger.info(f"🔧 Remote cleanup {'enabled' if enabled else 'disabled'} - tags now {self.tags.start!r} / {self.tags.end!r}")
        return self.tags

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self.session.state if self.session is not None else SessionState.IDLE

    @property
    def is_recording(self) -> bool:
        return self.state is SessionState.RECORDING

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "session": self.session.to_dict() if self.session is not None else None,
            "cleanup_enabled": self.cleanup_enabled,
            "start_tag": self.tags.start,
            "end_tag": self.tags.end,
        }

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def run(self, document_name: Optional[str] = None):
        """Toggle: start when idle, stop when recording."""
        if self.session is None:
            return await self.start(document_name)
        return await self.stop()

    async def start(self, document_name: Optional[str] = None) -> Session:
        """Open a tag at the document's cursor and start the chunk loop.

        Raises:
            SessionAlreadyRunningError: If a session is recording or stopping.
            MissingExecutableError: If the capture or recognizer command is unavailable.
        """
        if self.session is not None:
            raise SessionAlreadyRunningError(f"A session is already {self.session.state.value}")

        ensure_executables(self.config.recorder.command, self.config.transcriber.command)

        document = self.documents.get_or_create(document_name or self.config.output.buffer_name)
        tags = self.tags
        document.insert_at_point(tags.start)
        marker = document.create_marker(document.point, advances=True)

        chunk_dir = Path(self.config.recorder.chunk_dir)
        chunk_dir.mkdir(parents=True, exist_ok=True)

        session = Session(
            document=document,
            marker=marker,
            sink=InsertionSink(marker, self.monitor),
            tags=tags,
            cleanup_enabled=self.cleanup_enabled,
            chunk_dir=chunk_dir,
        )
        self.session = session
        session.recorder_task = asyncio.create_task(self.recorder.run(session), name="chunk-recorder")

        logger.info(f"🔴 Session started in {document.name!r} at {marker.position} (cleanup={'on' if session.cleanup_enabled else 'off'})")
        return session

    async def stop(self) -> Optional[SessionResult]:
        """Finish the session and replace its tagged region with the final text.

        Returns None, without touching anything, when no session is recording.
        Also returns None if ``cleanup()`` reset the session while stop was
        waiting; whatever session is current by then is left as it is.
        """
        session = self.session
        if session is None or session.state is not SessionState.RECORDING:
            logger.debug("Stop requested while not recording - nothing to do")
            return None

        session.state = SessionState.STOPPING
        logger.info("⏹️ Stopping session...")

        try:
            kill_process(session.process)
            if session.recorder_task is not None:
                await session.recorder_task

            await self._drain(session)
            result = await self._finalize(session) if self._owns(session) else None
        except asyncio.CancelledError:
            if not self._owns(session):
                logger.warning("Session was reset while stopping - nothing left to finalize")
                return None
            logger.error("❌ Stop cancelled - falling back to cleanup")
            self.cleanup()
            raise
        except Exception:
            if self._owns(session):
                logger.error("❌ Stop failed - falling back to cleanup")
                self.cleanup()
            raise

        # cleanup() (and possibly a new start) may have run while stop was waiting
        if result is None or not self._owns(session):
            logger.warning("Session was reset while stopping - leaving the current session alone")
            return None

        session.sink.invalidate()
        self._purge_chunk_dir(session.chunk_dir)
        self.session = None
        self.history.append(result)
        log_performance_if_needed(self.monitor)

        logger.info(f"✅ Session finished: {result.chunks} chunks, {len(result.text)} chars")
        return result

    def _owns(self, session: Session) -> bool:
        """True while ``session`` is still the one this controller is stopping."""
        return self.session is session and session.state is SessionState.STOPPING

    async def _drain(self, session: Session):
        """Wait for transcriptions still in flight so their text lands inside the tags."""
        if not session.pending:
            return

        pending = set(session.pending)
        logger.info(f"⏳ Waiting for {len(pending)} in-flight transcriptions")
        timeout = self.config.transcriber.drain_timeout
        _, not_done = await asyncio.wait(pending, timeout=timeout or None)
        if not_done:
            logger.warning(f"⚠️ {len(not_done)} transcriptions still running after {timeout:g}s - cancelling them")
            for task in not_done:
                task.cancel()
            await asyncio.wait(not_done)

    async def _finalize(self, session: Session) -> Optional[SessionResult]:
        document = session.document
        region = TagRegion(document, session.tags)

        if not session.marker.valid:
            logger.warning(f"Document {document.name!r} is gone - nothing to finalize")
            return SessionResult(document.name, "", "", session.sequence, session.started_at, time(), region_found=False)

        document.insert(session.marker.position, session.tags.end)

        extracted = region.extract()
        if extracted is None:
            logger.warning(f"Could not locate the session region in {document.name!r}")
            return SessionResult(document.name, "", "", session.sequence, session.started_at, time(), region_found=False)

        raw_text = region.remove_tags(extracted).strip()

        cleanup = None
        final_text = raw_text
        if session.cleanup_enabled:
            cleanup = await self.cleaner.clean(raw_text)
            if not self._owns(session):
                return None
            final_text = cleanup.text
            if cleanup.used_fallback and raw_text:
                logger.warning(f"Remote cleanup not applied ({cleanup.fallback_reason}) - keeping raw transcript")

        region.overwrite(final_text)
        return SessionResult(document.name, final_text, raw_text, session.sequence, session.started_at, time(), cleanup=cleanup)

    def cleanup(self):
        """Emergency reset: kill, cancel, invalidate and purge, from any state.

        Every step is attempted even if earlier ones fail.
        """
        session = self.session
        self.session = None

        if session is not None:
            session.state = SessionState.IDLE
            try:
                kill_process(session.process)
            except Exception as e:
                logger.warning(f"Cleanup: failed to kill capture process: {e}")

            tasks: List[asyncio.Task] = []
            if session.recorder_task is not None:
                tasks.append(session.recorder_task)
            tasks.extend(session.pending)
            for task in tasks:
                try:
                    task.cancel()
                except Exception as e:
                    logger.warning(f"Cleanup: failed to cancel {task!r}: {e}")

            try:
                session.sink.invalidate()
            except Exception as e:
                logger.warning(f"Cleanup: failed to invalidate marker: {e}")

        try:
            self._purge_chunk_dir(Path(self.config.recorder.chunk_dir))
            if session is not None and session.chunk_dir != Path(self.config.recorder.chunk_dir):
                self._purge_chunk_dir(session.chunk_dir)
        except Exception as e:
            logger.warning(f"Cleanup: failed to purge chunk directory: {e}")

        logger.info("🧹 Session cleanup completed")

    @staticmethod
    def _purge_chunk_dir(chunk_dir: Path):
        if chunk_dir.exists():
            shutil.rmtree(chunk_dir, ignore_errors=True)
            logger.debug(f"Removed chunk directory {chunk_dir}")
