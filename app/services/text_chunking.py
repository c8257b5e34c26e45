"""Sentence-aware text splitting for length-limited providers."""

import re

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")


def split_sentences(text: str) -> list[str]:
    """Split text after terminal punctuation and on line breaks.

    Punctuation stays attached to its sentence; empty fragments are dropped.
    """
    return [sentence.strip() for sentence in _SENTENCE_BOUNDARY.split(text) if sentence.strip()]


def _split_long_sentence(sentence: str, max_chars: int) -> list[str]:
    pieces: list[str] = []
    current = ""
    for word in sentence.split():
        while len(word) > max_chars:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(word[:max_chars])
            word = word[max_chars:]
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_chars:
            pieces.append(current)
            current = word
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def chunk_text(text: str, max_chars: int) -> list[str]:
    """Split ``text`` into chunks of at most ``max_chars`` characters.

    Chunks break on sentence boundaries. A sentence longer than the limit
    is broken on word boundaries, and a single word longer than the limit
    is cut. Joining the chunks with a space yields the original sentences
    in order.

    Args:
        text: Text to split
        max_chars: Maximum chunk length (must be positive)

    Returns:
        List of chunks; ``[text.strip()]`` when the text already fits

    Raises:
        ValueError: If max_chars is not positive
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    stripped = text.strip()
    if len(stripped) <= max_chars:
        return [stripped] if stripped else []

    chunks: list[str] = []
    current = ""
    for sentence in split_sentences(stripped):
        parts = [sentence] if len(sentence) <= max_chars else _split_long_sentence(sentence, max_chars)
        for part in parts:
            candidate = f"{current} {part}" if current else part
            if len(candidate) > max_chars:
                chunks.append(current)
                current = part
            else:
                current = candidate
    if current:
        chunks.append(current)
    return chunks
