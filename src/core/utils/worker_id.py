"""Worker ID generation using coolnames for unique, memorable identifiers."""

import re

from coolname import generate_slug

# Blob names only keep [0-9A-Za-z.-]; worker ids are embedded in them
_UNSAFE_CHARS = re.compile(r"[^0-9A-Za-z.-]")


def generate_worker_id(prefix: str = "", words: int = 2) -> str:
    """Generate a memorable worker ID that is safe to embed in blob names.

    Args:
        prefix: Optional prefix (e.g., "ingest")
        words: Number of coolname words (2-4)

    Returns:
        "prefix-word1-word2" or "word1-word2"

    Examples:
        >>> generate_worker_id()
        'golden-tiger'
        >>> generate_worker_id("ingest")
        'ingest-swift-falcon'
    """
    slug = generate_slug(words)
    worker_id = f"{prefix}-{slug}" if prefix else slug
    return _UNSAFE_CHARS.sub("-", worker_id)
