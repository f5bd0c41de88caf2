"""
mejour.engine.content — Structured Post Body Codec
===================================================

The remote post schema exposes a single free-text ``body``.  Capture time and
tags ride along as leading markers::

    [PHOTO_TIME:2024-01-15T10:30:00Z][TAGS:cafe · books]
    The actual text

Encoding order is fixed: time marker first, then the tag marker, then a single
newline, then the text.  Decoding never raises; a marker without its closing
``]`` makes the whole body plain text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from mejour.constants import (
    MARKER_SUFFIX,
    TAG_SEPARATOR,
    TAGS_MARKER_PREFIX,
    TIME_MARKER_PREFIX,
)

logger = logging.getLogger(__name__)

__all__ = ["PostContent", "decode_body", "encode_body", "format_capture_time"]

_TEXT_SEPARATOR = "\n"


@dataclass(frozen=True, slots=True)
class PostContent:
    """Decoded view of a post body."""

    capture_time: datetime | None = None
    tags: list[str] = field(default_factory=list)
    text: str = ""


def format_capture_time(value: datetime) -> str:
    """ISO-8601 in UTC with a ``Z`` suffix.  Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _parse_capture_time(raw: str) -> datetime | None:
    raw = raw.strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        logger.debug("Ignoring unparsable capture time %r", raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _clean_tag(tag: str) -> str:
    # Either delimiter inside a tag would split or end the tag marker early.
    return tag.replace(MARKER_SUFFIX, "").replace(TAG_SEPARATOR, "").strip()


def _split_tags(payload: str) -> list[str]:
    return [tok.strip() for tok in payload.split(TAG_SEPARATOR) if tok.strip()]


def _take_marker(text: str, prefix: str) -> tuple[str, str] | None:
    """Return ``(payload, remainder)`` for a leading marker, or None.

    Raises ValueError when the prefix is present but never terminated.
    """
    if not text.startswith(prefix):
        return None
    end = text.find(MARKER_SUFFIX, len(prefix))
    if end < 0:
        raise ValueError(f"unterminated marker {prefix!r}")
    return text[len(prefix):end], text[end + len(MARKER_SUFFIX):]


def encode_body(
    capture_time: datetime | None = None,
    tags: list[str] | tuple[str, ...] | None = None,
    text: str = "",
) -> str:
    """Fold *capture_time* and *tags* into a single body string."""
    cleaned = [c for c in (_clean_tag(t) for t in (tags or ()) if t) if c]
    head = ""
    if capture_time is not None:
        head += f"{TIME_MARKER_PREFIX}{format_capture_time(capture_time)}{MARKER_SUFFIX}"
    if cleaned:
        head += f"{TAGS_MARKER_PREFIX}{f' {TAG_SEPARATOR} '.join(cleaned)}{MARKER_SUFFIX}"
    if not head:
        return text
    return head + _TEXT_SEPARATOR + text


def decode_body(body: str | None) -> PostContent:
    """Recover capture time, tags and display text from *body*."""
    body = body or ""
    capture_time: datetime | None = None
    tags: list[str] = []
    rest = body
    had_marker = False

    try:
        taken = _take_marker(rest, TIME_MARKER_PREFIX)
        if taken is not None:
            had_marker = True
            payload, rest = taken
            capture_time = _parse_capture_time(payload)

        # The tag marker only counts as a leading segment
        taken_tags = _take_marker(rest, TAGS_MARKER_PREFIX)
        if taken_tags is not None:
            payload, rest = taken_tags
            had_marker = True
            tags = _split_tags(payload)
    except ValueError:
        logger.debug("Malformed body marker; treating body as plain text")
        return PostContent(text=body)

    if had_marker and rest.startswith(_TEXT_SEPARATOR):
        rest = rest[len(_TEXT_SEPARATOR):]
    return PostContent(capture_time=capture_time, tags=tags, text=rest)
