import asyncio
import re
from time import time
from typing import Callable, Optional

from ..cleaner import strip_annotations
from ..config import TranscriberConfig
from ..monitor import PipelineMonitor
from .base_processor import BaseProcessor, format_command, kill_process, logger, remove_file
from .insertion_sink import InsertionSink
from .recorder_processor import Chunk


class TranscriptFormatError(Exception):
    """Recognizer output does not follow the expected payload convention."""

    pass


class RecognizerError(Exception):
    """The recognizer could not be run, failed, or timed out."""

    pass


# A payload line isolated by a blank line above and below it
_payload_regex = re.compile(r"^[ \t]*\n(?P<text>[^\n]*\S[^\n]*)\n[ \t]*\n", re.MULTILINE)


def parse_blank_line_delimited(output: str) -> str:
    """Extract the transcript payload from recognizer output.

    The recognizer is expected to print the text on a line of its own with a
    blank line before and after it, e.g. ``"\\nHello there\\n\\n"``. The first
    such line wins.

    Raises:
        TranscriptFormatError: If no line matches the convention.
    """
    match = _payload_regex.search(output.replace("\r\n", "\n"))
    if not match:
        raise TranscriptFormatError(f"No blank-line delimited payload in {len(output)} chars of recognizer output")
    return match.group("text").strip()


OutputParser = Callable[[str], str]


class Transcriber(BaseProcessor):
    """Runs the speech-to-text subprocess on one chunk and inserts the result."""

    def __init__(self, config: TranscriberConfig, parser: OutputParser = parse_blank_line_delimited, monitor: Optional[PipelineMonitor] = None):
        super().__init__(config, monitor)
        self.parser = parser

    def build_command(self, chunk: Chunk) -> list:
        return [*self.config.command, str(chunk.path)]

    async def recognize(self, chunk: Chunk) -> str:
        """Run the recognizer on ``chunk`` and return its captured output.

        Raises:
            RecognizerError: If the process cannot be spawned, exits non-zero, or times out.
        """
        command = self.build_command(chunk)
        start_time = time()
        try:
            process = await asyncio.create_subprocess_exec(*command, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE)
        except OSError as e:
            self.monitor.record_error("recognition")
            raise RecognizerError(f"Failed to spawn recognizer ({format_command(command)}): {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            kill_process(process)
            await process.wait()
            self.monitor.record_request("recognition", time() - start_time)
            self.monitor.record_error("recognition", "timeout")
            raise RecognizerError(f"Recognizer timed out after {self.config.timeout:.0f}s on chunk {chunk.sequence}")
        except asyncio.CancelledError:
            kill_process(process)
            raise

        self.monitor.record_request("recognition", time() - start_time)
        if process.returncode != 0:
            self.monitor.record_error("recognition")
            tail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise RecognizerError(f"Recognizer exited with code {process.returncode} on chunk {chunk.sequence}: {tail}")

        return stdout.decode("utf-8", errors="replace")

    async def transcribe(self, chunk: Chunk, sink: InsertionSink, predecessor: Optional[asyncio.Future] = None) -> Optional[str]:
        """Transcribe ``chunk`` and append its cleaned text to ``sink``.

        Recognition runs as soon as the chunk is ready, but the insert waits for
        ``predecessor`` (the previous chunk's transcription) so fragments land in
        chunk order. The chunk file is deleted whatever happens.

        Returns:
            The inserted text, or None if nothing was inserted.
        """
        fragment = None
        try:
            output = await self.recognize(chunk)
            fragment = self.parser(output)
            logger.debug(f"🎤 Chunk {chunk.sequence} recognized: '{fragment[:50]}'")
        except TranscriptFormatError as e:
            self.monitor.record_error("recognition", "unparsed")
            logger.info(f"Chunk {chunk.sequence} produced no transcript: {e}")
        except RecognizerError as e:
            logger.warning(f"❌ Chunk {chunk.sequence} skipped: {e}")
        except Exception as e:
            # Injected parsers may fail in their own ways
            self.monitor.record_error("recognition")
            logger.warning(f"❌ Chunk {chunk.sequence} skipped: parser failed with {e.__class__.__name__}: {e}")
        finally:
            remove_file(chunk.path)

        if predecessor is not None and not predecessor.done():
            await asyncio.wait({predecessor})

        if not fragment:
            return None

        text = strip_annotations(fragment)
        if not text:
            logger.debug(f"Chunk {chunk.sequence} held only annotations")
            return None

        text = f"{text}{self.config.separator}"
        if not sink.append(text):
            return None
        return text
