"""In-memory host documents with live markers.

A ``Document`` is the editor-side target of a transcription session: a mutable
text with a cursor (``point``) and any number of ``Marker`` objects that follow
edits the way editor markers do.
"""

import weakref
from typing import Dict, List, Optional

from .logging_config import get_logger

logger = get_logger(__name__)


class Marker:
    """A live position inside a document.

    Inserting text before the marker shifts it right. Inserting exactly at an
    advancing marker moves it past the new text, so repeated inserts at the
    marker concatenate in call order.
    """

    def __init__(self, document: "Document", position: int, advances: bool = True):
        self.document: Optional[Document] = document
        self.position = position
        self.advances = advances

    @property
    def valid(self) -> bool:
        return self.document is not None and self.document.alive

    def invalidate(self) -> None:
        if self.document is not None:
            self.document._forget_marker(self)
        self.document = None

    def __repr__(self) -> str:
        name = self.document.name if self.document is not None else None
        return f"Marker(document={name!r}, position={self.position}, advances={self.advances})"


class Document:
    """Mutable text buffer with a cursor and live markers."""

    def __init__(self, name: str, text: str = ""):
        self.name = name
        self._text = text
        self.point = len(text)
        self.alive = True
        self._markers: "weakref.WeakSet[Marker]" = weakref.WeakSet()

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def _check_alive(self) -> None:
        if not self.alive:
            raise RuntimeError(f"Document {self.name!r} has been killed")

    def _check_position(self, position: int) -> None:
        if not 0 <= position <= len(self._text):
            raise IndexError(f"Position {position} outside document {self.name!r} (length {len(self._text)})")

    def create_marker(self, position: Optional[int] = None, advances: bool = True) -> Marker:
        """Create a marker at ``position`` (defaults to point)."""
        self._check_alive()
        position = self.point if position is None else position
        self._check_position(position)
        marker = Marker(self, position, advances)
        self._markers.add(marker)
        return marker

    def _forget_marker(self, marker: Marker) -> None:
        self._markers.discard(marker)

    def insert(self, position: int, text: str) -> None:
        """Insert ``text`` at ``position`` and adjust point and markers."""
        self._check_alive()
        self._check_position(position)
        if not text:
            return

        self._text = self._text[:position] + text + self._text[position:]
        length = len(text)

        for marker in list(self._markers):
            if marker.position > position or (marker.position == position and marker.advances):
                marker.position += length
        if self.point >= position:
            self.point += length

    def insert_at_point(self, text: str) -> None:
        """Insert at the cursor, leaving the cursor after the new text."""
        self.insert(self.point, text)

    def delete(self, start: int, end: int) -> str:
        """Delete ``[start, end)`` and return the removed text."""
        self._check_alive()
        if start > end:
            start, end = end, start
        self._check_position(start)
        self._check_position(end)

        removed = self._text[start:end]
        self._text = self._text[:start] + self._text[end:]
        length = end - start

        for marker in list(self._markers):
            marker.position = self._shift_for_delete(marker.position, start, end, length)
        self.point = self._shift_for_delete(self.point, start, end, length)
        return removed

    @staticmethod
    def _shift_for_delete(position: int, start: int, end: int, length: int) -> int:
        if position >= end:
            return position - length
        if position > start:
            return start
        return position

    def substring(self, start: int, end: int) -> str:
        return self._text[start:end]

    def find_backward(self, needle: str, end: Optional[int] = None) -> int:
        """Return the start of the last occurrence of ``needle`` before ``end``, or -1."""
        end = len(self._text) if end is None else end
        return self._text.rfind(needle, 0, end)

    def find_forward(self, needle: str, start: int = 0) -> int:
        """Return the start of the next occurrence of ``needle`` at or after ``start``, or -1."""
        return self._text.find(needle, start)

    def kill(self) -> None:
        """Destroy the document; every marker pointing into it becomes invalid."""
        self.alive = False
        for marker in list(self._markers):
            marker.document = None
        self._markers = weakref.WeakSet()

    def to_dict(self) -> dict:
        return {"name": self.name, "text": self._text, "point": self.point, "length": len(self._text), "alive": self.alive}


class DocumentStore:
    """Named documents available to sessions."""

    def __init__(self):
        self._documents: Dict[str, Document] = {}

    def get(self, name: str) -> Optional[Document]:
        return self._documents.get(name)

    def get_or_create(self, name: str) -> Document:
        document = self._documents.get(name)
        if document is None:
            document = Document(name)
            self._documents[name] = document
            logger.info(f"📄 Created document {name!r}")
        return document

    def kill(self, name: str) -> bool:
        document = self._documents.pop(name, None)
        if document is None:
            return False
        document.kill()
        logger.info(f"🗑️ Killed document {name!r}")
        return True

    def names(self) -> List[str]:
        return sorted(self._documents)
