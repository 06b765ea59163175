"""
voiceturn - Text Utilities
==========================

Splitting long replies into synthesis-sized chunks.
"""

from typing import List


# Synthesis providers commonly cap a request at 4096 characters
DEFAULT_MAX_CHUNK_CHARS = 4000

WORD_BREAKS = (" ", "\n", "\t")


def _find_break(text: str, max_length: int) -> int:
    """Index of the last character to keep in the next chunk (exclusive end)."""
    # Prefer a sentence end in the back half of the window
    sentence = text.rfind(". ", 0, max_length + 1)
    if sentence != -1 and sentence >= max_length / 2:
        return sentence + 1

    # Then the nearest word boundary (space, newline or tab)
    space = max(text.rfind(c, 1, max_length + 1) for c in WORD_BREAKS)
    if space != -1:
        return space

    # No boundary at all: hard cut
    return max_length


def chunk_text(text: str, max_length: int = DEFAULT_MAX_CHUNK_CHARS) -> List[str]:
    """
    Split text into chunks of at most ``max_length`` characters.

    Breaks at the last sentence end (". ") when it falls in the back half of
    the window, otherwise at the last space or line break, and only mid-word
    when a single word is longer than the limit. Chunks are whitespace-trimmed,
    so joining them reproduces the input up to whitespace at the boundaries.

    Args:
        text: Text to split
        max_length: Maximum chunk length in characters

    Returns:
        List of chunks; ``[text]`` unchanged when it already fits
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")

    if len(text) <= max_length:
        return [text]

    chunks: List[str] = []
    remaining = text.strip()

    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        end = _find_break(remaining, max_length)
        chunk = remaining[:end].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[end:].strip()

    return chunks
