"""Heading-scoped markdown chunking within a token budget."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from context_indexing.errors import ChunkingError
from context_indexing.ingestion.tokens import CHARS_PER_TOKEN, estimate_tokens
from context_indexing.models import ChunkCandidate

TARGET_MIN_TOKENS = 200
TARGET_MAX_TOKENS = 500

_HEADING_RE = re.compile(r"^#{2,3}\s+(.+)")
_PARAGRAPH_BREAK_RE = re.compile(r"\n\n+")
_SEPARATOR = "\n\n"


@dataclass
class _Section:
    heading: str | None
    lines: list[str] = field(default_factory=list)


@dataclass
class _Draft:
    heading: str | None
    content: str


def _split_sections(markdown: str) -> list[_Section]:
    """Group lines under the nearest preceding ``##`` / ``###`` heading.

    The heading line itself stays in its section's content.  Lines before
    the first heading form a section with ``heading=None``.
    """
    sections: list[_Section] = []
    current = _Section(heading=None)

    for line in markdown.split("\n"):
        match = _HEADING_RE.match(line)
        if match:
            if current.lines:
                sections.append(current)
            current = _Section(heading=match.group(1).strip(), lines=[line])
        else:
            current.lines.append(line)

    if current.lines:
        sections.append(current)
    return sections


def chunk_markdown(
    markdown: str | None,
    *,
    min_tokens: int = TARGET_MIN_TOKENS,
    max_tokens: int = TARGET_MAX_TOKENS,
    chars_per_token: int = CHARS_PER_TOKEN,
) -> list[ChunkCandidate]:
    """Split *markdown* into heading-scoped chunks of roughly *min_tokens*–*max_tokens*.

    Parameters
    ----------
    markdown:
        Extracted document text.  ``None`` and blank strings yield ``[]``.
    min_tokens:
        Sections estimated below this size are merged into the previous
        chunk when the merged result still fits within *max_tokens*.
    max_tokens:
        Sections estimated above this size are split on blank-line
        paragraph boundaries.  A single paragraph larger than the limit
        is kept whole.
    chars_per_token:
        Ratio used by :func:`estimate_tokens`.

    Returns
    -------
    list[ChunkCandidate]
        Chunks in document order with contiguous ``chunk_index`` from 0.

    Raises
    ------
    ChunkingError
        If *markdown* is neither a string nor ``None``.
    """
    if markdown is None:
        return []
    if not isinstance(markdown, str):
        raise ChunkingError(f"Expected markdown text, got {type(markdown).__name__}")
    if not markdown.strip():
        return []
    if min_tokens > max_tokens:
        raise ValueError(f"min_tokens ({min_tokens}) must be <= max_tokens ({max_tokens})")

    def tokens(text: str) -> int:
        return estimate_tokens(text, chars_per_token)

    drafts: list[_Draft] = []

    for section in _split_sections(markdown):
        content = "\n".join(section.lines).strip()
        if not content:
            continue

        size = tokens(content)
        if size <= max_tokens:
            if size < min_tokens and drafts:
                merged = drafts[-1].content + _SEPARATOR + content
                if tokens(merged) <= max_tokens:
                    drafts[-1].content = merged
                    continue
            drafts.append(_Draft(heading=section.heading, content=content))
            continue

        # Oversized: greedily pack paragraphs, never splitting one.
        accumulator: list[str] = []
        for paragraph in _PARAGRAPH_BREAK_RE.split(content):
            if not paragraph.strip():
                continue
            candidate = _SEPARATOR.join(accumulator + [paragraph])
            if accumulator and tokens(candidate) > max_tokens:
                drafts.append(_Draft(heading=section.heading, content=_SEPARATOR.join(accumulator)))
                accumulator = [paragraph]
            else:
                accumulator.append(paragraph)
        if accumulator:
            drafts.append(_Draft(heading=section.heading, content=_SEPARATOR.join(accumulator)))

    return [
        ChunkCandidate(
            chunk_index=index,
            heading=draft.heading,
            content=draft.content,
            token_count=tokens(draft.content),
        )
        for index, draft in enumerate(drafts)
    ]
