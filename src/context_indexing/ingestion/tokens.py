"""Heuristic token estimation used for chunk sizing."""

from __future__ import annotations

import math

# Rough average for English text; not tokenizer-exact.
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str, chars_per_token: int = CHARS_PER_TOKEN) -> int:
    """Approximate the token count of *text* as ``ceil(len(text) / chars_per_token)``."""
    if not text:
        return 0
    return math.ceil(len(text) / chars_per_token)
