"""
Semantic Chunker

Paragraph-first chunking with a min/max token policy and a sentence
fallback for paragraphs that do not fit.
"""

from dataclasses import dataclass, field

from ragengine.core.types import Chunk, ChunkingConfig, ChunkingStrategyType, Document
from ragengine.knowledge.chunking.base import ChunkingStrategy, split_paragraphs, split_sentences

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "


@dataclass
class _Draft:
    """Chunk text accumulated so far."""

    parts: list[str] = field(default_factory=list)
    tokens: int = 0
    kinds: set[str] = field(default_factory=set)

    @property
    def empty(self) -> bool:
        return not self.parts

    @property
    def boundary(self) -> str:
        """Split unit of the chunk; `mixed` when several kinds were combined."""
        if len(self.kinds) == 1:
            return next(iter(self.kinds))
        return "mixed" if self.kinds else "paragraph"

    def append(
        self, piece: str, tokens: int, sep: str, sep_tokens: int, kind: str = "paragraph"
    ) -> "_Draft":
        self.kinds.add(kind)
        if self.empty:
            self.parts.append(piece)
            self.tokens = tokens
        else:
            self.parts.extend([sep, piece])
            self.tokens += sep_tokens + tokens
        return self


class SemanticChunker(ChunkingStrategy):
    """
    Accumulates blank-line paragraphs into chunks.

    Flush rule: a chunk is closed when the next unit would push it past
    `max_chunk_size` and it already holds `min_chunk_size` tokens.

    - A paragraph larger than `max_chunk_size` closes the current chunk and
      is re-split into sentences (or token windows when
      `respect_sentences` is off).
    - A paragraph that does not fit a chunk still under `min_chunk_size`
      is split into sentences to top the chunk up.
    - When a sentence cannot fit, the chunk is closed anyway and marked
      `forced_short` if it is under the minimum.
    - A single sentence longer than `max_chunk_size` becomes its own chunk.
    - The final chunk is always emitted.
    """

    strategy = ChunkingStrategyType.SEMANTIC

    async def chunk(self, document: Document, config: ChunkingConfig) -> list[Chunk]:
        paragraphs = split_paragraphs(document.content)
        if not paragraphs:
            return []

        run = _SemanticRun(self, document, config)
        draft = _Draft()
        for paragraph in paragraphs:
            draft = run.add_paragraph(draft, paragraph)
        run.flush(draft, final=True)
        return run.chunks


class _SemanticRun:
    """Mutable state of one chunking call."""

    def __init__(self, strategy: SemanticChunker, document: Document, config: ChunkingConfig):
        self._strategy = strategy
        self._tokenizer = strategy.tokenizer
        self._document = document
        self._config = config
        self._para_sep = self._tokenizer.count(PARAGRAPH_SEPARATOR)
        self._sent_sep = self._tokenizer.count(SENTENCE_SEPARATOR)
        self.chunks: list[Chunk] = []

    def add_paragraph(self, draft: _Draft, paragraph: str) -> _Draft:
        config = self._config
        tokens = self._tokenizer.count(paragraph)

        if tokens > config.max_chunk_size:
            self.flush(draft)
            if config.respect_sentences:
                return self.add_sentences(_Draft(), split_sentences(paragraph))
            return self.add_token_windows(paragraph)

        projected = draft.tokens + self._para_sep + tokens
        if draft.empty or projected <= config.max_chunk_size:
            return draft.append(paragraph, tokens, PARAGRAPH_SEPARATOR, self._para_sep)

        if draft.tokens >= config.min_chunk_size or not config.respect_sentences:
            self.flush(draft)
            return _Draft().append(paragraph, tokens, PARAGRAPH_SEPARATOR, self._para_sep)

        # Top up a short chunk sentence by sentence
        return self.add_sentences(draft, split_sentences(paragraph), first_sep=PARAGRAPH_SEPARATOR)

    def add_sentences(
        self,
        draft: _Draft,
        sentences: list[str],
        first_sep: str = SENTENCE_SEPARATOR,
    ) -> _Draft:
        max_size = self._config.max_chunk_size

        for i, sentence in enumerate(sentences):
            sep = first_sep if i == 0 else SENTENCE_SEPARATOR
            sep_tokens = self._para_sep if sep == PARAGRAPH_SEPARATOR else self._sent_sep
            tokens = self._tokenizer.count(sentence)

            if tokens > max_size:
                self.flush(draft)
                oversized = _Draft().append(sentence, tokens, sep, sep_tokens, kind="sentence")
                self.flush(oversized, oversized=True)
                draft = _Draft()
                continue

            if not draft.empty and draft.tokens + sep_tokens + tokens > max_size:
                self.flush(draft)
                draft = _Draft()

            draft.append(sentence, tokens, sep, sep_tokens, kind="sentence")

        return draft

    def add_token_windows(self, paragraph: str) -> _Draft:
        """Cut an oversized paragraph into max-size token windows."""
        tokens = self._tokenizer.encode(paragraph)
        size = self._config.max_chunk_size
        windows = [tokens[i : i + size] for i in range(0, len(tokens), size)]

        for window in windows[:-1]:
            self.flush(
                _Draft(parts=[self._tokenizer.decode(window)], tokens=len(window), kinds={"token"})
            )

        # The tail keeps accumulating with the following paragraphs
        tail = windows[-1]
        return _Draft(parts=[self._tokenizer.decode(tail)], tokens=len(tail), kinds={"token"})

    def flush(self, draft: _Draft, final: bool = False, oversized: bool = False) -> None:
        if draft.empty:
            return

        config = self._config
        metadata = {
            "boundary_type": draft.boundary,
            "min_chunk_size": config.min_chunk_size,
            "max_chunk_size": config.max_chunk_size,
        }
        if oversized:
            metadata["oversized"] = True
        elif not final and draft.tokens < config.min_chunk_size:
            metadata["forced_short"] = True

        self.chunks.append(
            self._strategy._create_chunk(
                self._document,
                "".join(draft.parts),
                position=len(self.chunks),
                metadata=metadata,
            )
        )
        draft.parts = []
        draft.tokens = 0
        draft.kinds = set()
