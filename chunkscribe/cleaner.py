import re
import time
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from .config import CleanupConfig
from .logging_config import get_logger
from .monitor import PipelineMonitor, get_pipeline_monitor

logger = get_logger(__name__)

# Non-nesting [...] and (...) spans, e.g. "[BLANK_AUDIO]" or "(laughs)"
_annotation_regex = re.compile(r"\[[^\]]*\]|\([^)]*\)")
_whitespace_run_regex = re.compile(r"\s{2,}")


def strip_annotations(fragment: str) -> str:
    """Remove bracketed and parenthesized annotations from a transcript fragment."""
    if not fragment:
        return ""
    stripped = _annotation_regex.sub("", fragment)
    return _whitespace_run_regex.sub(" ", stripped).strip()


class CleanupResult(BaseModel):
    """Outcome of a remote cleanup call."""

    text: str = Field(description="Text to use: the cleaned text, or the original on fallback")
    original: str = Field(description="Text that was sent for cleanup")
    cleaned: bool = Field(default=False, description="True when the remote call succeeded")
    fallback_reason: Optional[str] = Field(default=None, description="Why the original text was kept")
    processing_time: float = Field(default=0.0, description="Time spent on the remote call")

    @property
    def used_fallback(self) -> bool:
        return not self.cleaned

    @classmethod
    def fallback(cls, original: str, reason: str, processing_time: float = 0.0) -> "CleanupResult":
        return cls(text=original, original=original, cleaned=False, fallback_reason=reason, processing_time=processing_time)


class RemoteCleaner:
    """Send a finished transcript to a messages-style LLM endpoint for cleanup.

    ``clean`` never raises: any failure yields a ``CleanupResult`` carrying the
    original text and the reason.
    """

    def __init__(self, config: CleanupConfig, client: Optional[httpx.AsyncClient] = None, monitor: Optional[PipelineMonitor] = None):
        self.config = config
        self.monitor = monitor or get_pipeline_monitor()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    def build_prompt(self, raw_text: str) -> str:
        return f"{self.config.prompt}{raw_text}"

    def build_headers(self) -> Dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": self.config.api_key or "",
            self.config.version_header: self.config.api_version,
        }

    def build_payload(self, raw_text: str) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": [{"role": "user", "content": self.build_prompt(raw_text)}],
        }

    @staticmethod
    def extract_text(body: Any) -> str:
        """Pull ``content[0].text`` out of a response body."""
        try:
            text = body["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"Unexpected response shape: {e!r}") from e
        if not isinstance(text, str):
            raise ValueError(f"Response text is {type(text).__name__}, not str")
        return text

    async def clean(self, raw_text: str) -> CleanupResult:
        """Clean ``raw_text`` remotely, falling back to it unchanged on any failure."""
        if not raw_text:
            return CleanupResult(text=raw_text, original=raw_text, cleaned=False, fallback_reason="empty input")

        if not self.config.api_key:
            logger.warning("⚠️ Remote cleanup requested but no API key is configured - keeping raw transcript")
            self.monitor.record_error("cleanup", "fallback")
            return CleanupResult.fallback(raw_text, "no API key configured")

        start_time = time.time()
        try:
            response = await self.client.post(self.config.endpoint, headers=self.build_headers(), json=self.build_payload(raw_text), timeout=self.config.timeout)
            response.raise_for_status()
            cleaned = self.extract_text(response.json())
        except httpx.TimeoutException as e:
            elapsed = time.time() - start_time
            logger.warning(f"⏱️ Remote cleanup timed out after {elapsed:.1f}s - keeping raw transcript: {e}")
            self.monitor.record_request("cleanup", elapsed)
            self.monitor.record_error("cleanup", "timeout")
            return CleanupResult.fallback(raw_text, f"timeout: {e}", elapsed)
        except Exception as e:
            elapsed = time.time() - start_time
            logger.warning(f"⚠️ Remote cleanup failed - keeping raw transcript: {e}")
            self.monitor.record_request("cleanup", elapsed)
            self.monitor.record_error("cleanup", "fallback")
            return CleanupResult.fallback(raw_text, str(e) or e.__class__.__name__, elapsed)

        elapsed = time.time() - start_time
        self.monitor.record_request("cleanup", elapsed)
        logger.info(f"✨ Remote cleanup finished in {elapsed:.2f}s ({len(raw_text)} -> {len(cleaned)} chars)")
        return CleanupResult(text=cleaned, original=raw_text, cleaned=True, processing_time=elapsed)

    async def clean_with_remote(self, raw_text: str) -> str:
        """Return the cleaned text, or ``raw_text`` itself when cleanup fails."""
        result = await self.clean(raw_text)
        return result.text

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
