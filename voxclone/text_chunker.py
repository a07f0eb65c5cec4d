"""
Text chunker for long synthesis requests.

Splits text into ordered, bounded chunks, cutting after a sentence
terminator whenever one falls inside the window so sentences are never
split unnecessarily. Each chunk is synthesized independently and merged
back by its index.
"""

from typing import Iterator

from .datatypes import TextChunk

# Latin, Arabic/Urdu full stop and question mark, CJK full stop
TERMINATORS = frozenset(".!?۔؟。")


def iter_segments(text: str, max_chunk_size: int = 1000) -> Iterator[TextChunk]:
    """
    Yield chunks of at most ``max_chunk_size`` characters.

    Args:
        text: Complete input text
        max_chunk_size: Window size in characters (>= 1)

    Yields:
        TextChunk with consecutive indices starting at 0

    Example:
        for chunk in iter_segments(article, 500):
            audio = synth.synthesize(chunk, ...)
    """
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be >= 1, got {max_chunk_size}")

    n = len(text)
    start = 0
    index = 0
    while start < n:
        end = min(start + max_chunk_size, n)
        if end < n:
            # Nearest terminator, searching back from the window end
            for i in range(end - 1, start, -1):
                if text[i] in TERMINATORS:
                    end = i + 1
                    break

        piece = text[start:end].strip()
        start = end
        if piece:
            yield TextChunk(piece, index)
            index += 1


def segment(text: str, max_chunk_size: int = 1000) -> list[TextChunk]:
    """Non-streaming wrapper around iter_segments()."""
    return list(iter_segments(text, max_chunk_size))


class TextSegmenter:
    """Segmenter bound to a chunk size."""

    def __init__(self, max_chunk_size: int = 1000):
        if max_chunk_size < 1:
            raise ValueError(f"max_chunk_size must be >= 1, got {max_chunk_size}")
        self.max_chunk_size = max_chunk_size

    def segment(self, text: str) -> list[TextChunk]:
        return segment(text, self.max_chunk_size)
