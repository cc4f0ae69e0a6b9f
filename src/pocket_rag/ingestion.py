"""Corpus splitting for ingestion."""

import logging
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SEPARATOR = "<chunk_splitter>"


def split_corpus(text: str, marker: str = DEFAULT_CHUNK_SEPARATOR) -> List[str]:
    """
    Split a corpus into chunks at lines that begin with ``marker``.

    The marker line opens a new chunk (marker removed); every following line
    is joined to it with a single space. Text before the first marker forms
    a chunk of its own. Chunks are trimmed and empty chunks dropped.

    Example:
        >>> split_corpus("<chunk_splitter> a\\nb\\n<chunk_splitter>c")
        ['a b', 'c']
    """
    if not marker:
        raise ValueError("Chunk separator marker must not be empty")

    chunks: List[str] = []
    parts: List[str] = []

    for line in text.splitlines():
        if line.startswith(marker):
            if parts:
                chunks.append("".join(parts))
            parts = [line[len(marker):].strip()]
        else:
            parts.append(" " + line)

    if parts:
        chunks.append("".join(parts))

    return [chunk.strip() for chunk in chunks if chunk.strip()]


def read_corpus_file(path: str, marker: str = DEFAULT_CHUNK_SEPARATOR) -> List[str]:
    """Read a UTF-8 corpus file and split it with ``split_corpus``."""
    corpus_path = Path(path)
    if not corpus_path.exists():
        raise FileNotFoundError(f"Corpus not found: {path}")

    chunks = split_corpus(corpus_path.read_text(encoding="utf-8"), marker)
    logger.info(f"Read {len(chunks)} chunks from {path}")
    return chunks
