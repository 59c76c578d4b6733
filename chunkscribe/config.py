import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =============================================================================
# Core Configuration Classes
# =============================================================================

DEFAULT_CLEANUP_PROMPT = (
    "The following text is a raw speech-to-text transcript of dictation. "
    "Fix punctuation, capitalization and obvious recognition errors, "
    "remove filler words, and keep the wording otherwise unchanged. "
    "Reply with the cleaned text only.\n\n"
)


class ServerConfig(BaseModel):
    """Server configuration settings."""

    host: str = Field(default="localhost", description="Server bind address")
    port: int = Field(default=8080, ge=1, le=65535, description="Server port")

    # CORS settings
    cors_origins: List[str] = Field(default=["*"], description="Allowed CORS origins")
    cors_credentials: bool = Field(default=True, description="Allow CORS credentials")
    cors_methods: List[str] = Field(default=["*"], description="Allowed CORS methods")
    cors_headers: List[str] = Field(default=["*"], description="Allowed CORS headers")


class RecorderConfig(BaseModel):
    """Audio capture settings for the chunk loop."""

    command: List[str] = Field(default=["ffmpeg"], description="Capture executable (plus any launcher prefix)")
    input_format: str = Field(default="pulse", description="Capture input format, e.g. pulse, alsa, avfoundation, dshow")
    input_device: str = Field(default="default", description="Capture input device")
    chunk_duration: float = Field(default=5.0, gt=0, description="Chunk duration in seconds")
    sample_rate: int = Field(default=16000, gt=0, description="Output sample rate in Hz")
    chunk_dir: str = Field(default_factory=lambda: str(Path(tempfile.gettempdir()) / "chunkscribe-chunks"), description="Working directory for chunk audio files")
    retry_delay: float = Field(default=1.0, ge=0, description="Pause before retrying after a failed capture")
    max_consecutive_failures: int = Field(default=3, gt=0, description="Failed captures in a row before the chunk loop gives up")


class TranscriberConfig(BaseModel):
    """Speech recognition subprocess settings."""

    command: List[str] = Field(default=["whisper-cli", "--no-timestamps", "--file"], description="Recognizer command; the chunk path is appended")
    separator: str = Field(default=" ", description="Separator appended after each inserted fragment")
    timeout: float = Field(default=120.0, gt=0, description="Recognition timeout per chunk in seconds")
    drain_timeout: float = Field(default=30.0, ge=0, description="How long stop waits for in-flight transcriptions")


class CleanupConfig(BaseModel):
    """Remote LLM cleanup settings."""

    enabled: bool = Field(default=False, description="Run the session transcript through the remote cleanup on stop")
    api_key: Optional[str] = Field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"), description="API key for the cleanup endpoint")
    model: str = Field(default="claude-3-5-haiku-latest", description="Model identifier")
    endpoint: str = Field(default="https://api.anthropic.com/v1/messages", description="Messages endpoint URL")
    version_header: str = Field(default="anthropic-version", description="Protocol version header name")
    api_version: str = Field(default="2023-06-01", description="Protocol version header value")
    max_tokens: int = Field(default=2048, gt=0, description="Maximum output tokens")
    timeout: float = Field(default=60.0, gt=0, le=600, description="Request timeout in seconds")
    prompt: str = Field(default=DEFAULT_CLEANUP_PROMPT, description="Instruction prepended to the raw transcript")


class TagConfig(BaseModel):
    """Labels used to delimit the text produced by one session."""

    start_label: str = Field(default="TRANSCRIBING", description="Base label of the start tag")
    end_label: str = Field(default="TRANSCRIBING", description="Base label of the end tag")
    cleaned_suffix: str = Field(default=" + LLM", description="Suffix added to both labels when cleanup is enabled")


class OutputConfig(BaseModel):
    """Target document settings."""

    buffer_name: str = Field(default="*transcription*", description="Name of the default target document")
    max_history: int = Field(default=20, gt=0, description="Finished sessions kept in memory")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level")
    log_dir: Optional[str] = Field(default=None, description="Log directory")


# =============================================================================
# Unified Configuration Class
# =============================================================================


class UnifiedConfig(BaseSettings):
    """Unified configuration for chunkscribe."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    recorder: RecorderConfig = Field(default_factory=RecorderConfig)
    transcriber: TranscriberConfig = Field(default_factory=TranscriberConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    tags: TagConfig = Field(default_factory=TagConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CHUNKSCRIBE_", env_nested_delimiter="__", extra="ignore")


# =============================================================================
# Global Configuration Instance
# =============================================================================


_config: Optional[UnifiedConfig] = None


def load_env_file() -> bool:
    """Load `.env` from the working directory into os.environ without overriding set variables."""
    return load_dotenv(find_dotenv(usecwd=True))


def get_config() -> UnifiedConfig:
    """Get the global configuration instance.

    `.env` is loaded first so env-sourced defaults such as ANTHROPIC_API_KEY see it.
    """
    global _config
    if _config is None:
        load_env_file()
        _config = UnifiedConfig()
    return _config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None


def update_config(**kwargs) -> UnifiedConfig:
    """Update configuration sections with new values.

    Each keyword names a section (``recorder``, ``cleanup``, ...) and maps to
    either a section model or a dict of field updates for that section.
    """
    global _config
    if _config is None:
        load_env_file()
        _config = UnifiedConfig(**kwargs)
        return _config

    for key, value in kwargs.items():
        if not hasattr(_config, key):
            continue
        if isinstance(value, dict):
            section = getattr(_config, key)
            setattr(_config, key, section.model_copy(update=value))
        else:
            setattr(_config, key, value)
    return _config


def get_runtime_settings(config: Optional[UnifiedConfig] = None) -> Dict[str, Any]:
    """Get the settings shown by the config API, with secrets masked."""
    config = config or get_config()
    settings = config.model_dump()
    if settings["cleanup"].get("api_key"):
        settings["cleanup"]["api_key"] = "***"
    return settings


# =============================================================================
# Environment Setup
# =============================================================================


def setup_environment(config: Optional[UnifiedConfig] = None) -> None:
    """Load the .env file and prepare directories named by the configuration."""
    load_env_file()

    config = config or get_config()
    if config.logging.log_dir:
        Path(config.logging.log_dir).mkdir(parents=True, exist_ok=True)
