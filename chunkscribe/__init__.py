from .chunkscribe_server import create_app
from .cleaner import CleanupResult, RemoteCleaner, strip_annotations
from .config import UnifiedConfig, get_config
from .document import Document, DocumentStore, Marker
from .main import parse_args
from .processors import ChunkRecorder, MissingExecutableError, Transcriber
from .session import SessionController, SessionResult, SessionState
from .tags import TagPair, TagRegion

__version__ = "0.1.0"

__all__ = [
    "create_app",
    "ChunkRecorder",
    "CleanupResult",
    "Document",
    "DocumentStore",
    "Marker",
    "MissingExecutableError",
    "RemoteCleaner",
    "SessionController",
    "SessionResult",
    "SessionState",
    "TagPair",
    "TagRegion",
    "Transcriber",
    "UnifiedConfig",
    "get_config",
    "parse_args",
    "strip_annotations",
]
