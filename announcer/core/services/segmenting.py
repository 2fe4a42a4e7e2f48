"""
Message segmentation for chat platforms with a size limit.

A message longer than the limit is cut into segments, preferably after the
last newline that fits, else after the last space, else hard at the limit.
Every segment is prefixed with "[n/total] " and fits the limit including
the prefix. Only the first segment notifies; the rest are sent silently.
Removing the prefixes and joining the segments yields the original text.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Segment:
    text: str
    silent: bool = False


def _prefix(index: int, total: int) -> str:
    return f"[{index}/{total}] "


def _chunk(text: str, size: int) -> list[str]:
    chunks: list[str] = []
    rest = text
    while len(rest) > size:
        window = rest[:size]
        cut = window.rfind("\n")
        if cut <= 0:
            cut = window.rfind(" ")
        cut = cut + 1 if cut > 0 else size
        chunks.append(rest[:cut])
        rest = rest[cut:]
    if rest:
        chunks.append(rest)
    return chunks


def split_message(text: str, limit: int) -> list[Segment]:
    """
    Split text into segments of at most limit characters.

    Raises:
        ValueError: if limit leaves no room for text after the prefix
    """
    if len(text) <= limit:
        return [Segment(text)]

    digits = 1
    while True:
        widest = 10**digits - 1
        room = limit - len(_prefix(widest, widest))
        if room <= 0:
            raise ValueError(f"limit {limit} too small to segment a message")
        chunks = _chunk(text, room)
        if len(str(len(chunks))) <= digits:
            break
        digits += 1

    total = len(chunks)
    return [
        Segment(text=_prefix(i, total) + chunk, silent=i > 1)
        for i, chunk in enumerate(chunks, start=1)
    ]


def strip_prefix(segment_text: str) -> str:
    """Remove a leading "[n/total] " marker if present."""
    if segment_text.startswith("["):
        end = segment_text.find("] ")
        if end > 0 and "/" in segment_text[1:end]:
            return segment_text[end + 2:]
    return segment_text
