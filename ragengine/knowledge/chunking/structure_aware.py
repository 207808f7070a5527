"""
Structure-Aware Chunker

Keeps fenced code blocks and pipe tables intact as their own chunks and
accumulates the prose around them by paragraph.
"""

import re
from dataclasses import dataclass

from ragengine.core.types import Chunk, ChunkingConfig, ChunkingStrategyType, Document
from ragengine.knowledge.chunking.base import ChunkingStrategy, paragraph_spans

CODE_BLOCK = re.compile(r"```[\s\S]*?```")
TABLE = re.compile(r"^[ \t]*\|.*\|[ \t]*$(?:\n[ \t]*\|.*\|[ \t]*$)*", re.MULTILINE)
LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")


@dataclass(frozen=True)
class Segment:
    """A character range of the source document."""

    start: int
    end: int
    kind: str  # text | code_block | table


def find_structures(text: str, config: ChunkingConfig) -> list[Segment]:
    """
    Locate preserved spans.

    Code fences are matched first; tables are then searched only in the
    text left between code fences, so a pipe line inside a fence is never
    taken for a table.
    """
    spans: list[Segment] = []
    if config.preserve_code_blocks:
        spans.extend(Segment(m.start(), m.end(), "code_block") for m in CODE_BLOCK.finditer(text))

    if config.preserve_tables:
        tables = []
        for gap in _gaps(text, spans):
            tables.extend(
                Segment(m.start(), m.end(), "table")
                for m in TABLE.finditer(text, gap.start, gap.end)
            )
        spans.extend(tables)

    return sorted(spans, key=lambda s: s.start)


def _gaps(text: str, spans: list[Segment]) -> list[Segment]:
    gaps = []
    cursor = 0
    for span in sorted(spans, key=lambda s: s.start):
        if span.start > cursor:
            gaps.append(Segment(cursor, span.start, "text"))
        cursor = max(cursor, span.end)
    if cursor < len(text):
        gaps.append(Segment(cursor, len(text), "text"))
    return gaps


def _is_list(text: str) -> bool:
    lines = [line for line in text.splitlines() if line.strip()]
    return bool(lines) and LIST_ITEM.match(lines[0]) is not None and all(
        LIST_ITEM.match(line) or line.startswith((" ", "\t")) for line in lines
    )


class StructureAwareChunker(ChunkingStrategy):
    """
    Preserved spans become verbatim chunks regardless of size. Prose
    between them is accumulated paragraph by paragraph and flushed when
    the next paragraph would exceed `max_chunk_size`; there is no minimum
    and no sentence fallback, so a single long paragraph may exceed the
    maximum. With `preserve_lists`, a run of list paragraphs is treated
    as one unit. Output is ordered by document offset.
    """

    strategy = ChunkingStrategyType.STRUCTURE_AWARE

    async def chunk(self, document: Document, config: ChunkingConfig) -> list[Chunk]:
        text = document.content
        if not text.strip():
            return []

        structures = find_structures(text, config)
        pieces: list[tuple[int, int, str]] = [(s.start, s.end, s.kind) for s in structures]

        for gap in _gaps(text, structures):
            pieces.extend(self._pack_text(text, gap, config))

        pieces.sort(key=lambda p: p[0])

        chunks = []
        for start, end, kind in pieces:
            metadata = {
                "segment_type": kind,
                "preserved": kind != "text",
                "char_range": [start, end],
            }
            chunks.append(
                self._create_chunk(document, text[start:end], position=len(chunks), metadata=metadata)
            )
        return chunks

    def _units(self, text: str, gap: Segment, config: ChunkingConfig) -> list[tuple[int, int]]:
        units = paragraph_spans(text[gap.start : gap.end], offset=gap.start)
        if not config.preserve_lists:
            return units

        merged: list[tuple[int, int]] = []
        in_list = False
        for start, end in units:
            is_list = _is_list(text[start:end])
            if merged and is_list and in_list:
                merged[-1] = (merged[-1][0], end)
            else:
                merged.append((start, end))
            in_list = is_list
        return merged

    def _pack_text(
        self, text: str, gap: Segment, config: ChunkingConfig
    ) -> list[tuple[int, int, str]]:
        packed = []
        current: tuple[int, int] | None = None

        for start, end in self._units(text, gap, config):
            if current is None:
                current = (start, end)
                continue

            if self._tokenizer.count(text[current[0] : end]) > config.max_chunk_size:
                packed.append((current[0], current[1], "text"))
                current = (start, end)
            else:
                current = (current[0], end)

        if current is not None:
            packed.append((current[0], current[1], "text"))
        return packed
