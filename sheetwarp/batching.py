"""Script detection and batching utilities."""

from __future__ import annotations

import math
import re
from typing import List, Sequence

from .structures import Batch

JAPANESE_PATTERN = re.compile(
    "["
    "\u3000-\u303f"  # CJK symbols and punctuation
    "\u3040-\u309f"  # Hiragana
    "\u30a0-\u30ff"  # Katakana
    "\uff00-\uff9f"  # Half-width and full-width forms
    "\u4e00-\u9faf"  # CJK unified ideographs
    "\u3400-\u4dbf"  # Extension A
    "]"
)


def contains_japanese(text: str) -> bool:
    """Detect whether the text contains Japanese-script characters."""

    if not text:
        return False
    return JAPANESE_PATTERN.search(text) is not None


def count_batches(total: int, size: int) -> int:
    if size <= 0:
        raise ValueError("Batch size must be a positive integer.")
    return math.ceil(total / size)


def partition(strings: Sequence[str], size: int) -> List[Batch]:
    """Slice strings into consecutive batches of at most ``size`` items."""

    total = count_batches(len(strings), size)
    batches: List[Batch] = []
    for offset in range(total):
        start = offset * size
        batches.append(
            Batch(
                index=offset + 1,
                total=total,
                strings=list(strings[start:start + size]),
            )
        )
    return batches
