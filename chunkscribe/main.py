from argparse import ArgumentParser, Namespace
from typing import Optional

from .config import UnifiedConfig, get_config

# Global cached parser to avoid recreation
_CACHED_PARSER: Optional[ArgumentParser] = None


def _get_argument_parser() -> ArgumentParser:
    """Get cached argument parser or create new one."""
    global _CACHED_PARSER

    if _CACHED_PARSER is not None:
        return _CACHED_PARSER

    parser = ArgumentParser(description="chunkscribe - chunked live dictation server")

    server_group = parser.add_argument_group("Server")
    server_group.add_argument("--host", type=str, default=None, help="The host address to bind the server to.")
    server_group.add_argument("--port", type=int, default=None, help="The port number to bind the server to.")

    recording_group = parser.add_argument_group("Recording")
    recording_group.add_argument("--chunk-duration", type=float, default=None, help="Length of each audio chunk in seconds (default: 5).")
    recording_group.add_argument("--input-format", type=str, default=None, help="Capture input format, e.g. pulse, alsa, avfoundation, dshow.")
    recording_group.add_argument("--input-device", type=str, default=None, help="Capture input device.")
    recording_group.add_argument("--chunk-dir", type=str, default=None, help="Working directory for chunk files. Removed when a session ends.")
    recording_group.add_argument("--capture-command", type=str, nargs="+", default=None, help="Capture executable (and launcher prefix).")

    recognition_group = parser.add_argument_group("Recognition")
    recognition_group.add_argument("--recognizer-command", type=str, nargs="+", default=None, help="Recognizer command; the chunk path is appended.")

    cleanup_group = parser.add_argument_group("Remote cleanup")
    cleanup_group.add_argument("--cleanup", dest="cleanup_enabled", action="store_true", default=None, help="Clean the session transcript with the remote LLM on stop.")
    cleanup_group.add_argument("--no-cleanup", dest="cleanup_enabled", action="store_false", help="Keep the raw transcript.")
    cleanup_group.add_argument("--cleanup-model", type=str, default=None, help="Model identifier for remote cleanup.")

    output_group = parser.add_argument_group("Output")
    output_group.add_argument("--buffer-name", type=str, default=None, help="Name of the default target document.")
    output_group.add_argument("--start-label", type=str, default=None, help="Base label of the start tag.")
    output_group.add_argument("--end-label", type=str, default=None, help="Base label of the end tag.")
    output_group.add_argument("--max-history", type=int, default=None, help="Finished sessions kept in memory.")

    debug_group = parser.add_argument_group("Development & Debugging")
    debug_group.add_argument("--log-level", type=str, default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level.")

    _CACHED_PARSER = parser
    return parser


def _validate_args(args: Namespace) -> None:
    """Validate argument values."""
    if args.port is not None and not (1 <= args.port <= 65535):
        raise ValueError(f"Port must be between 1 and 65535, got {args.port}")

    if args.chunk_duration is not None and args.chunk_duration <= 0:
        raise ValueError(f"chunk_duration must be positive, got {args.chunk_duration}")

    if args.max_history is not None and args.max_history <= 0:
        raise ValueError(f"max_history must be positive, got {args.max_history}")


def parse_args(argv=None) -> Namespace:
    """Parse and validate command line arguments."""
    args = _get_argument_parser().parse_args(argv)
    _validate_args(args)
    return args


# CLI option -> (config section, field)
_ARG_FIELDS = {
    "host": ("server", "host"),
    "port": ("server", "port"),
    "chunk_duration": ("recorder", "chunk_duration"),
    "input_format": ("recorder", "input_format"),
    "input_device": ("recorder", "input_device"),
    "chunk_dir": ("recorder", "chunk_dir"),
    "capture_command": ("recorder", "command"),
    "recognizer_command": ("transcriber", "command"),
    "cleanup_enabled": ("cleanup", "enabled"),
    "cleanup_model": ("cleanup", "model"),
    "buffer_name": ("output", "buffer_name"),
    "max_history": ("output", "max_history"),
    "start_label": ("tags", "start_label"),
    "end_label": ("tags", "end_label"),
    "log_level": ("logging", "level"),
}


def config_from_args(args: Namespace, config: Optional[UnifiedConfig] = None) -> UnifiedConfig:
    """Apply CLI overrides on top of the environment/.env configuration."""
    config = config or get_config()
    for arg_name, (section, field_name) in _ARG_FIELDS.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            setattr(getattr(config, section), field_name, value)
    return config
