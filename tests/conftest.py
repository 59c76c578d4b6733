import asyncio
import os
import sys
import time
from pathlib import Path

import pytest

os.environ.setdefault("CHUNKSCRIBE_LOG_DIR", str(Path(__file__).parent / ".logs"))

from chunkscribe.config import UnifiedConfig  # noqa: E402
from chunkscribe.document import DocumentStore  # noqa: E402
from chunkscribe.monitor import PipelineMonitor  # noqa: E402

FAKES_DIR = Path(__file__).parent / "fakes"
FAKE_CAPTURE = [sys.executable, str(FAKES_DIR / "fake_capture.py")]
FAKE_RECOGNIZER = [sys.executable, str(FAKES_DIR / "fake_recognizer.py")]


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    config = UnifiedConfig()
    config.recorder.command = list(FAKE_CAPTURE)
    config.recorder.chunk_duration = 0.2
    config.recorder.chunk_dir = str(tmp_path / "chunks")
    config.recorder.retry_delay = 0.05
    config.transcriber.command = list(FAKE_RECOGNIZER)
    config.transcriber.timeout = 10.0
    config.transcriber.drain_timeout = 10.0
    config.cleanup.enabled = False
    config.cleanup.api_key = None
    return config


@pytest.fixture
def monitor():
    return PipelineMonitor()


@pytest.fixture
def documents():
    return DocumentStore()


@pytest.fixture
def capture_script(tmp_path, monkeypatch):
    """Script the lines the fake capture will "hear", one per chunk."""

    def _script(*lines):
        script = tmp_path / "capture-script.txt"
        script.write_text("\n".join(lines), encoding="utf-8")
        monkeypatch.setenv("FAKE_CAPTURE_SCRIPT", str(script))
        monkeypatch.setenv("FAKE_CAPTURE_COUNTER", str(tmp_path / "capture-counter.txt"))
        return script

    return _script


async def wait_until(predicate, timeout=10.0, interval=0.05):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)
