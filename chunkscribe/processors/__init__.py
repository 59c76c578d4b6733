"""
chunkscribe processors

- ChunkRecorder: records back-to-back audio chunks with the capture subprocess
- Transcriber: runs the recognizer on a chunk and inserts the text
- InsertionSink: appends text at the session's marker
- BaseProcessor: base class with common utilities
"""

from .base_processor import BaseProcessor, kill_process, remove_file
from .insertion_sink import InsertionSink
from .recorder_processor import Chunk, ChunkRecorder, MissingExecutableError, ensure_executables
from .transcription_processor import (
    RecognizerError,
    Transcriber,
    TranscriptFormatError,
    parse_blank_line_delimited,
)

__all__ = [
    "BaseProcessor",
    "Chunk",
    "ChunkRecorder",
    "InsertionSink",
    "MissingExecutableError",
    "RecognizerError",
    "Transcriber",
    "TranscriptFormatError",
    "ensure_executables",
    "kill_process",
    "parse_blank_line_delimited",
    "remove_file",
]
