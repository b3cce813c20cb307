"""Seams between the engine and a host application.

The engine never inspects a host document. A host supplies a MessageAdapter
(to read a message node) and a SegmentRenderer (to show results).
"""

from __future__ import annotations

import re
import uuid
from typing import Any, List, Optional, Protocol, runtime_checkable

from .models import ExtractedMessage, Segment, SegmentType

GENERATED_KEY_PREFIX = "chattranslate"

_ZERO_WIDTH = re.compile("[\u200b\u200d\ufeff]")
_EXCESS_NEWLINES = re.compile(r"(?:\r?\n){3,}")


@runtime_checkable
class MessageAdapter(Protocol):
    """Reads translatable content and identity out of a host message node."""

    def extract_segments(self, node: Any) -> ExtractedMessage:
        """Return the ordered segments (quote before main) plus the raw texts."""
        ...

    def message_key(self, node: Any) -> str:
        """Return a stable identity for the node, generating one if it has none."""
        ...


@runtime_checkable
class SegmentRenderer(Protocol):
    """Caller-owned render target.

    Segments whose translation is None are still being translated.
    show_error and remove may be left out; the engine skips them.
    """

    def render_segments(self, container: Any, segments: List[Segment]) -> None: ...

    def show_error(self, container: Any, message: str) -> None: ...

    def remove(self, container: Any) -> None: ...


def clean_text(text: Optional[str]) -> str:
    """Drop zero-width characters, collapse runs of blank lines, trim."""
    text = _ZERO_WIDTH.sub("", text or "")
    return _EXCESS_NEWLINES.sub("\n\n", text).strip()


def generate_message_key() -> str:
    return f"{GENERATED_KEY_PREFIX}-{uuid.uuid4().hex}"


def build_segments(main_text: str = "", quoted_texts: Optional[List[str]] = None) -> ExtractedMessage:
    """Build a message's segment list.

    At most one quote (the first non-empty quoted text) and one main segment.
    A main text identical to the quote is dropped so it is not translated twice.
    """
    quotes: List[str] = []
    segments: List[Segment] = []

    for quoted in quoted_texts or []:
        quote = clean_text(quoted)
        if quote:
            quotes.append(quote)
            segments.append(Segment(type=SegmentType.QUOTE, text=quote))
            break

    main = clean_text(main_text)
    if main and main in quotes:
        main = ""
    if main:
        segments.append(Segment(type=SegmentType.MAIN, text=main))

    return ExtractedMessage(segments=segments, main_text=main, quoted_texts=quotes)


class PayloadMessageAdapter:
    """Adapter for hosts that already send plain fields instead of a node.

    The node is a mapping with `main_text`, optional `quoted_texts`, and an
    optional `message_key`; a generated key is written back when missing.
    """

    def extract_segments(self, node: dict) -> ExtractedMessage:
        return build_segments(node.get("main_text", ""), node.get("quoted_texts") or [])

    def message_key(self, node: dict) -> str:
        key = node.get("message_key")
        if not key:
            key = generate_message_key()
            node["message_key"] = key
        return key
