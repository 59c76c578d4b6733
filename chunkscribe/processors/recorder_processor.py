import asyncio
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from time import time
from typing import TYPE_CHECKING, List, Optional, Sequence

import ffmpeg

from ..config import RecorderConfig
from ..monitor import PipelineMonitor
from .base_processor import BaseProcessor, format_command, kill_process, logger, remove_file

if TYPE_CHECKING:
    from ..session import Session
    from .transcription_processor import Transcriber


class MissingExecutableError(Exception):
    """A capture or recognizer command cannot be found."""

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"Executable not found: {', '.join(self.missing)}")


def ensure_executables(*commands: Sequence[str]) -> None:
    """Check that the first word of every command resolves to an executable.

    Raises:
        MissingExecutableError: Naming every command that cannot be resolved.
    """
    missing = []
    for command in commands:
        if not command:
            missing.append("<empty command>")
        elif shutil.which(command[0]) is None:
            missing.append(command[0])
    if missing:
        raise MissingExecutableError(missing)


@dataclass
class Chunk:
    """One fixed-duration audio file and its position in the session."""

    path: Path
    sequence: int
    created_at: float = field(default_factory=time)


class ChunkRecorder(BaseProcessor):
    """Records back-to-back chunks and hands each finished one to the Transcriber.

    Recording intervals never overlap: chunk N+1 is spawned only after chunk
    N's capture process exits. Transcription of chunk N runs as its own task
    while chunk N+1 records.
    """

    def __init__(self, config: RecorderConfig, transcriber: "Transcriber", monitor: Optional[PipelineMonitor] = None):
        super().__init__(config, monitor)
        self.transcriber = transcriber

    def build_command(self, output_path: Path) -> List[str]:
        """Build the capture command for one chunk."""
        stream = ffmpeg.input(self.config.input_device, f=self.config.input_format, t=self.config.chunk_duration)
        stream = ffmpeg.output(stream, str(output_path), ar=self.config.sample_rate)
        stream = stream.global_args("-hide_banner", "-loglevel", "error")
        return ffmpeg.compile(stream, cmd=list(self.config.command), overwrite_output=True)

    def next_chunk(self, session: "Session") -> Chunk:
        sequence = session.next_sequence()
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        return Chunk(path=Path(session.chunk_dir) / f"chunk-{stamp}-{sequence:05d}.wav", sequence=sequence)

    async def record_chunk(self, session: "Session", chunk: Chunk) -> bool:
        """Capture one chunk. Returns True only on normal completion with a file on disk."""
        command = self.build_command(chunk.path)
        start_time = time()
        try:
            process = await asyncio.create_subprocess_exec(*command, stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.PIPE)
        except OSError as e:
            self.monitor.record_error("capture")
            logger.error(f"❌ Failed to spawn capture ({format_command(command)}): {e}")
            return False

        session.process = process
        if not session.is_recording:
            # Stop arrived while the process was spawning
            kill_process(process)
        try:
            _, stderr = await process.communicate()
        finally:
            if session.process is process:
                session.process = None

        self.monitor.record_request("capture", time() - start_time)

        if process.returncode != 0:
            if session.is_recording:
                self.monitor.record_error("capture")
                tail = stderr.decode("utf-8", errors="replace").strip()[-500:] if stderr else ""
                logger.warning(f"⚠️ Capture of chunk {chunk.sequence} exited with code {process.returncode}: {tail}")
            else:
                logger.debug(f"Capture of chunk {chunk.sequence} terminated by stop")
            return False

        if not chunk.path.exists():
            self.monitor.record_error("capture")
            logger.warning(f"⚠️ Capture of chunk {chunk.sequence} finished without writing {chunk.path}")
            return False

        return True

    def dispatch(self, session: "Session", chunk: Chunk) -> asyncio.Task:
        """Start transcribing ``chunk`` behind the previous chunk's transcription."""
        task = asyncio.create_task(self.transcriber.transcribe(chunk, session.sink, session.last_transcription), name=f"transcribe-{chunk.sequence}")
        session.track(task)
        return task

    async def run(self, session: "Session"):
        """Chain chunks until the session stops recording."""
        logger.info(f"🎙️ Chunk loop started ({self.config.chunk_duration:g}s chunks in {session.chunk_dir})")
        failures = 0

        while session.is_recording:
            chunk = self.next_chunk(session)
            completed = await self.record_chunk(session, chunk)

            if completed:
                failures = 0
                logger.debug(f"Chunk {chunk.sequence} recorded")
                self.dispatch(session, chunk)
                continue

            remove_file(chunk.path)
            if not session.is_recording:
                break

            failures += 1
            if failures >= self.config.max_consecutive_failures:
                logger.error(f"❌ Chunk loop giving up after {failures} consecutive capture failures")
                break
            await asyncio.sleep(self.config.retry_delay)

        logger.info(f"🎙️ Chunk loop finished after {session.sequence} chunks")
