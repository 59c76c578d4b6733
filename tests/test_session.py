import asyncio
import json
from pathlib import Path

import httpx
import pytest

from chunkscribe.cleaner import RemoteCleaner
from chunkscribe.processors import MissingExecutableError
from chunkscribe.session import SessionAlreadyRunningError, SessionController, SessionState

from .conftest import wait_until


def _remote(config, handler, calls, monitor):
    def recording_handler(request):
        calls.append(json.loads(request.content))
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
    return RemoteCleaner(config.cleanup, client=client, monitor=monitor)


@pytest.fixture
def controller(config, documents, monitor):
    return SessionController(config, documents=documents, monitor=monitor)


@pytest.mark.asyncio
async def test_session_inserts_fragments_and_finalizes(config, documents, controller, capture_script):
    capture_script("Hello", "(cough) world")
    document = documents.get_or_create(config.output.buffer_name)
    document.insert_at_point("Dear Bob, ")

    await controller.start()
    assert controller.state is SessionState.RECORDING
    assert document.text == "Dear Bob, TRANSCRIBING => "

    await wait_until(lambda: "world" in document.text)
    assert document.text == "Dear Bob, TRANSCRIBING => Hello world "

    result = await controller.stop()

    assert result.text == "Hello world"
    assert result.region_found
    assert result.chunks >= 2
    assert result.cleanup is None
    assert document.text == "Dear Bob, Hello world"
    assert controller.state is SessionState.IDLE
    assert not Path(config.recorder.chunk_dir).exists()
    assert list(controller.history) == [result]


@pytest.mark.asyncio
async def test_fragments_keep_chunk_order_when_first_is_slow(config, documents, controller, capture_script):
    capture_script("slow:1.0:first", "second")
    document = documents.get_or_create("ordering")

    await controller.start("ordering")
    await wait_until(lambda: "second" in document.text)
    result = await controller.stop()

    assert result.text == "first second"
    assert document.text == "first second"


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_transcription(config, documents, controller, capture_script):
    capture_script("slow:1.0:Hello")
    session = await controller.start("drain")

    await wait_until(lambda: session.sequence >= 2 and session.pending)
    result = await controller.stop()

    assert result.text == "Hello"
    assert documents.get("drain").text == "Hello"


@pytest.mark.asyncio
async def test_stop_when_idle_is_a_no_op(controller, documents):
    assert await controller.stop() is None
    assert documents.names() == []
    assert controller.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_start_while_recording_raises(controller, capture_script):
    capture_script()
    await controller.start("twice")
    with pytest.raises(SessionAlreadyRunningError):
        await controller.start("twice")
    await controller.stop()


@pytest.mark.asyncio
async def test_missing_recognizer_fails_before_touching_document(config, documents, controller):
    config.transcriber.command = ["no-such-recognizer-xyz"]

    with pytest.raises(MissingExecutableError):
        await controller.start("notes")

    assert documents.names() == []
    assert controller.state is SessionState.IDLE
    assert not Path(config.recorder.chunk_dir).exists()


@pytest.mark.asyncio
async def test_run_toggles(controller, capture_script):
    capture_script("Hello")
    await controller.run("toggle")
    assert controller.is_recording

    await wait_until(lambda: "Hello" in controller.documents.get("toggle").text)
    result = await controller.run()

    assert result.text == "Hello"
    assert controller.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_capture_failure_is_retried(controller, monitor, capture_script):
    capture_script("!fail", "Hello")
    await controller.start("retry")

    await wait_until(lambda: "Hello" in controller.documents.get("retry").text)
    result = await controller.stop()

    assert result.text == "Hello"
    assert monitor.get_stats("capture")["errors"] == 1


@pytest.mark.asyncio
async def test_loop_gives_up_after_consecutive_failures(config, controller, capture_script):
    config.recorder.max_consecutive_failures = 2
    capture_script("!fail", "!fail", "Never")
    session = await controller.start("broken")

    await wait_until(lambda: session.recorder_task.done())
    result = await controller.stop()

    assert result.text == ""
    assert controller.documents.get("broken").text == ""


@pytest.mark.asyncio
async def test_cleanup_enabled_replaces_region_with_cleaned_text(config, documents, monitor, capture_script):
    config.cleanup.enabled = True
    config.cleanup.api_key = "test-key"
    calls = []
    cleaner = _remote(config, lambda request: httpx.Response(200, json={"content": [{"type": "text", "text": "Hello, world."}]}), calls, monitor)
    controller = SessionController(config, documents=documents, cleaner=cleaner, monitor=monitor)
    capture_script("hello", "world")

    await controller.start("llm")
    document = documents.get("llm")
    assert document.text == "TRANSCRIBING + LLM => "

    await wait_until(lambda: "world" in document.text)
    result = await controller.stop()

    assert document.text == "Hello, world."
    assert result.raw_text == "hello world"
    assert result.cleanup.cleaned
    assert len(calls) == 1
    assert calls[0]["messages"][0]["content"].endswith("hello world")


@pytest.mark.asyncio
async def test_remote_failure_keeps_raw_transcript(config, documents, monitor, capture_script):
    config.cleanup.enabled = True
    config.cleanup.api_key = "test-key"
    calls = []
    cleaner = _remote(config, lambda request: httpx.Response(500, json={"error": "boom"}), calls, monitor)
    controller = SessionController(config, documents=documents, cleaner=cleaner, monitor=monitor)
    capture_script("Hello", "(cough) world")

    await controller.start("llm")
    document = documents.get("llm")
    await wait_until(lambda: "world" in document.text)
    result = await controller.stop()

    assert document.text == "Hello world"
    assert result.cleanup.used_fallback
    assert len(calls) == 1
    assert monitor.get_stats("cleanup")["fallbacks"] == 1


@pytest.mark.asyncio
async def test_toggling_cleanup_mid_session_keeps_session_tags(config, documents, monitor, capture_script):
    config.cleanup.api_key = "test-key"
    calls = []
    cleaner = _remote(config, lambda request: httpx.Response(200, json={"content": [{"text": "cleaned"}]}), calls, monitor)
    controller = SessionController(config, documents=documents, cleaner=cleaner, monitor=monitor)
    capture_script("Hello")

    await controller.start("toggle")
    tags = controller.set_cleanup_enabled(True)
    assert tags.start == "TRANSCRIBING + LLM => "

    document = documents.get("toggle")
    await wait_until(lambda: "Hello" in document.text)
    result = await controller.stop()

    assert result.region_found
    assert document.text == "Hello"
    assert calls == []
    assert controller.tags.cleaned


@pytest.mark.asyncio
async def test_killed_document_stops_inserts(config, documents, controller, capture_script):
    capture_script("Hello", "world")
    await controller.start("doomed")

    await wait_until(lambda: "Hello" in documents.get("doomed").text)
    documents.kill("doomed")
    result = await controller.stop()

    assert not result.region_found
    assert result.text == ""
    assert controller.state is SessionState.IDLE


def test_cleanup_when_idle_purges_chunk_dir(config, controller):
    chunk_dir = Path(config.recorder.chunk_dir)
    chunk_dir.mkdir(parents=True)
    (chunk_dir / "chunk-stale.wav").write_bytes(b"RIFF")

    controller.cleanup()

    assert not chunk_dir.exists()
    assert controller.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_cleanup_while_recording_resets_everything(config, controller, capture_script):
    capture_script()
    session = await controller.start("reset")
    await wait_until(lambda: session.process is not None)
    process = session.process

    controller.cleanup()
    await asyncio.sleep(0.2)

    assert controller.session is None
    assert controller.state is SessionState.IDLE
    assert session.recorder_task.done()
    assert process.returncode is not None
    assert not session.sink.valid
    assert not Path(config.recorder.chunk_dir).exists()

    # A fresh session can start after the reset
    capture_script()
    await controller.start("reset")
    await controller.stop()


@pytest.mark.asyncio
async def test_reset_while_stopping_leaves_next_session_alone(config, documents, monitor, capture_script):
    config.cleanup.enabled = True
    config.cleanup.api_key = "test-key"
    entered = asyncio.Event()
    release = asyncio.Event()

    async def held_handler(request):
        entered.set()
        await release.wait()
        return httpx.Response(200, json={"content": [{"text": "Hello."}]})

    cleaner = RemoteCleaner(config.cleanup, client=httpx.AsyncClient(transport=httpx.MockTransport(held_handler)), monitor=monitor)
    controller = SessionController(config, documents=documents, cleaner=cleaner, monitor=monitor)
    capture_script("Hello")

    await controller.start("first")
    await wait_until(lambda: "Hello" in documents.get("first").text)
    stop_task = asyncio.create_task(controller.stop())
    await asyncio.wait_for(entered.wait(), timeout=10)

    controller.cleanup()
    capture_script()
    second = await controller.start("second")
    release.set()

    assert await stop_task is None
    assert controller.session is second
    assert controller.is_recording
    assert not second.recorder_task.done()
    assert Path(config.recorder.chunk_dir).exists()
    assert list(controller.history) == []

    result = await controller.stop()

    assert result.document == "second"
    assert documents.get("second").text == ""
    assert controller.state is SessionState.IDLE
