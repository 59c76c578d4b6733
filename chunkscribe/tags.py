from dataclasses import dataclass
from typing import Optional, Tuple

from .config import TagConfig
from .document import Document
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TagPair:
    """Start and end delimiters of one session's text."""

    start: str
    end: str
    cleaned: bool = False

    @classmethod
    def from_labels(cls, start_label: str, end_label: str, cleaned: bool = False, cleaned_suffix: str = " + LLM") -> "TagPair":
        """Derive the pair from base labels.

        ``LABEL => `` opens the region and `` <= LABEL`` closes it; when cleanup
        is enabled the suffix is injected into both labels.
        """
        if cleaned:
            start_label = f"{start_label}{cleaned_suffix}"
            end_label = f"{end_label}{cleaned_suffix}"
        return cls(start=f"{start_label} => ", end=f" <= {end_label}", cleaned=cleaned)

    @classmethod
    def from_config(cls, config: TagConfig, cleaned: bool = False) -> "TagPair":
        return cls.from_labels(config.start_label, config.end_label, cleaned, config.cleaned_suffix)


class TagRegion:
    """Locate, read and replace the tag-delimited span of a document."""

    def __init__(self, document: Document, tags: TagPair):
        self.document = document
        self.tags = tags

    def get_start_tag(self) -> str:
        return self.tags.start

    def get_end_tag(self) -> str:
        return self.tags.end

    def find_tags(self) -> Optional[Tuple[int, int]]:
        """Return ``(start, end)`` of the most recent tagged span, end exclusive.

        The start tag is searched backward from the end of the document; the
        end tag forward from there.
        """
        start = self.document.find_backward(self.tags.start)
        if start < 0:
            return None
        end = self.document.find_forward(self.tags.end, start + len(self.tags.start))
        if end < 0:
            return None
        return start, end + len(self.tags.end)

    def extract(self) -> Optional[str]:
        """Return the tagged span including both tags, or None if not found."""
        span = self.find_tags()
        if span is None:
            return None
        return self.document.substring(*span)

    def remove_tags(self, text: str) -> str:
        return text.replace(self.tags.start, "").replace(self.tags.end, "")

    def overwrite(self, new_text: str) -> bool:
        """Replace the tagged span with ``new_text``.

        Returns False when no complete span is present.
        """
        span = self.find_tags()
        if span is None:
            logger.warning(f"Tag region {self.tags.start!r}...{self.tags.end!r} not found in {self.document.name!r}")
            return False
        start, end = span
        self.document.delete(start, end)
        self.document.insert(start, new_text)
        return True
