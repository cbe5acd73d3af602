"""
Text span helpers.

All helpers return ``(start, end)`` offsets into the text they were given so
callers can slice the exact source text back out.
"""

import re
import unicodedata

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def normalize_text(text: str) -> str:
    """NFC-normalize, unify line endings and trim surrounding whitespace."""
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()


def sentence_spans(text: str) -> list[tuple[int, int]]:
    """
    Split text into sentences.

    The whitespace following a sentence stays attached to it, so the spans
    tile the text without gaps.
    """
    if not text:
        return []

    spans = []
    start = 0
    for match in SENTENCE_BOUNDARY.finditer(text):
        end = match.end()
        if end > start:
            spans.append((start, end))
        start = end
    if start < len(text):
        spans.append((start, len(text)))
    return spans


def word_spans(text: str, start: int = 0, end: int | None = None) -> list[tuple[int, int]]:
    """Split ``text[start:end]`` into words, trailing whitespace attached."""
    end = len(text) if end is None else end
    spans = []
    for match in re.finditer(r"\S+\s*", text[start:end]):
        spans.append((start + match.start(), start + match.end()))
    if spans and spans[0][0] > start:
        spans[0] = (start, spans[0][1])
    elif not spans and end > start:
        spans.append((start, end))
    return spans


def fixed_size_spans(text: str, size: int) -> list[tuple[int, int]]:
    """Cut text into consecutive character windows of ``size``."""
    if size <= 0:
        raise ValueError("size must be positive")
    return [(i, min(i + size, len(text))) for i in range(0, len(text), size)]
