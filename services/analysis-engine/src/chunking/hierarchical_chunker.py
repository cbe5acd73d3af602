"""
Hierarchical Legal Chunker

Splits legal documents into annotated chunks whose boundaries follow legal
structure wherever it can be detected.

Strategy (first match wins):
1. Regulation with chapters: chapter-level split
2. Contract: section-level split
3. Tables present: section-split the prose, each table one atomic chunk
4. High complexity: chapter split, section split per chapter, clause split
   for anything still above the refine ceiling
5. Everything else: section-level split

Every chunk keeps exact offsets into the source text
(``chunk.content == text[chunk.start_offset:chunk.end_offset]``).
"""

import time
from typing import Literal

from langchain_text_splitters import RecursiveCharacterTextSplitter

from shared.config import get_settings
from shared.models import (
    Chunk,
    ChunkLevel,
    Complexity,
    Document,
    DocumentKind,
    Language,
    StructureProfile,
)
from shared.utils import ChunkingDegraded, get_logger

from .legal_enrichment import (
    SectionLocator,
    extract_clause_tags,
    extract_legal_references,
    extract_subsection,
)
from .structure_classifier import TABLE_BLOCK, StructureClassifier
from .text_spans import fixed_size_spans
from .tokenizers import TiktokenTokenizer, Tokenizer

CHAPTER_SEPARATORS = [
    "\n## ",
    "\nArtikel ",
    "\nArt. ",
    "\nArticle ",
    "\nChapitre ",
    "\nArticolo ",
    "\nKapitel ",
    "\nAbschnitt ",
    "\nSection ",
    "\nChapter ",
    "\n\n\n",
]

SECTION_SEPARATORS = [
    "\n### ",
    "\n§ ",
    "\nAbs. ",
    "\nAbsatz ",
    "\nParagraph ",
    "\nSection ",
    "\nAlinéa ",
    "\nParagraphe ",
    "\nCapoverso ",
    "\nParagrafo ",
    "\n\n",
    "\n",
    " ",
]

CLAUSE_SEPARATORS = ["\n\n", "\n", ". ", "; ", ", ", " ", ""]

PARAGRAPH_SEPARATORS = [". ", "; ", ", ", " "]

OPTIMAL_CHUNK_SIZES = {
    DocumentKind.CONTRACT: 2000,
    DocumentKind.REGULATION: 4000,
    DocumentKind.CASE_LAW: 3000,
    DocumentKind.LEGAL_OPINION: 1500,
}
DEFAULT_CHUNK_SIZE = 1000

Span = tuple[int, int, ChunkLevel]


def optimal_chunk_size(kind: DocumentKind) -> int:
    """Recommended chunk size in characters for a document kind."""
    return OPTIMAL_CHUNK_SIZES.get(kind, DEFAULT_CHUNK_SIZE)


class HierarchicalChunker:
    """Structure-aware chunker for legal documents."""

    def __init__(
        self,
        classifier: StructureClassifier | None = None,
        tokenizer: Tokenizer | None = None,
        refine_ceiling: int | None = None,
        fallback_chunk_size: int | None = None,
        logger=None,
    ):
        """
        Initialize the chunker.

        Args:
            classifier: Structure classifier used when no profile is supplied
            tokenizer: Token counter for clause-level splitting
            refine_ceiling: Character size above which chunks of complex
                documents are refined to clause level
            fallback_chunk_size: Chunk size used when chunking degrades
            logger: Logger to use (defaults to the module logger)
        """
        settings = get_settings()
        self.logger = logger or get_logger(__name__)
        self.classifier = classifier or StructureClassifier(logger=self.logger)
        self.tokenizer = tokenizer or TiktokenTokenizer(
            encoding_name=settings.tokenizer_encoding, logger=self.logger
        )
        self.refine_ceiling = refine_ceiling or settings.clause_refine_ceiling
        self.fallback_chunk_size = fallback_chunk_size or settings.fallback_chunk_size

        self.splitters: dict[ChunkLevel, RecursiveCharacterTextSplitter] = {
            ChunkLevel.CHAPTER: self._character_splitter(4000, 400, CHAPTER_SEPARATORS),
            ChunkLevel.SECTION: self._character_splitter(2000, 200, SECTION_SEPARATORS),
            # Clause sizes are measured in tokens, not characters
            ChunkLevel.CLAUSE: RecursiveCharacterTextSplitter(
                chunk_size=512,
                chunk_overlap=50,
                separators=CLAUSE_SEPARATORS,
                keep_separator="end",
                length_function=self.tokenizer.count,
                strip_whitespace=False,
            ),
            ChunkLevel.PARAGRAPH: self._character_splitter(
                800, 80, PARAGRAPH_SEPARATORS, keep_separator="end"
            ),
        }

    @staticmethod
    def _character_splitter(
        chunk_size: int,
        chunk_overlap: int,
        separators: list[str],
        keep_separator: bool | Literal["start", "end"] = "start",
    ) -> RecursiveCharacterTextSplitter:
        return RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=separators,
            keep_separator=keep_separator,
            length_function=len,
            strip_whitespace=False,
        )

    def split_document(
        self,
        document: Document,
        profile: StructureProfile | None = None,
    ) -> list[Chunk]:
        """
        Split a document into enriched chunks.

        Args:
            document: Document to split
            profile: Structure profile (classified on demand when omitted, then
                adjusted by ``document.hints``)

        Returns:
            Ordered chunks; fixed-size chunks if structural splitting fails
        """
        text = document.text
        if not text.strip():
            return []

        start_time = time.time()
        language = document.language or self.classifier.default_language

        try:
            if profile is None:
                profile = self.classifier.classify(text, document.kind)
                if document.hints:
                    profile = self.classifier.apply_hints(profile, document.hints)
            language = document.language or profile.language
            strategy, spans = self._apply_strategy(text, profile)
            chunks = self._build_chunks(document, spans, language)
        except Exception as e:
            strategy = "fixed_size"
            chunks = self._degrade(document, language, e)

        duration_ms = (time.time() - start_time) * 1000
        self.logger.log_performance(
            "split_document",
            duration_ms,
            document_id=document.id,
            strategy=strategy,
            chunks=len(chunks),
        )
        return chunks

    def split_at_level(self, document: Document, level: ChunkLevel) -> list[Chunk]:
        """Split the whole document at a single level, e.g. paragraphs for fine-grained review."""
        text = document.text
        if not text.strip():
            return []

        language = document.language or self.classifier.default_language
        try:
            if level == ChunkLevel.TABLE:
                spans = [
                    (m.start(), m.end(), ChunkLevel.TABLE) for m in TABLE_BLOCK.finditer(text)
                ]
            else:
                spans = self._split_span(text, 0, len(text), level)
            return self._build_chunks(document, spans, language)
        except Exception as e:
            return self._degrade(document, language, e)

    def optimal_chunk_size(self, kind: DocumentKind) -> int:
        return optimal_chunk_size(kind)

    def _apply_strategy(self, text: str, profile: StructureProfile) -> tuple[str, list[Span]]:
        kind = profile.document_kind

        if kind == DocumentKind.REGULATION and profile.has_chapters:
            return "chapter", self._split_span(text, 0, len(text), ChunkLevel.CHAPTER)

        if kind == DocumentKind.CONTRACT:
            return "section", self._split_span(text, 0, len(text), ChunkLevel.SECTION)

        if profile.has_tables:
            return "table_aware", self._split_table_aware(text)

        if profile.complexity == Complexity.HIGH:
            return "hierarchical", self._split_hierarchical(text)

        return "section", self._split_span(text, 0, len(text), ChunkLevel.SECTION)

    def _split_table_aware(self, text: str) -> list[Span]:
        spans: list[Span] = []
        cursor = 0

        for match in TABLE_BLOCK.finditer(text):
            if text[cursor:match.start()].strip():
                spans.extend(self._split_span(text, cursor, match.start(), ChunkLevel.SECTION))
            spans.append((match.start(), match.end(), ChunkLevel.TABLE))
            cursor = match.end()

        if text[cursor:].strip():
            spans.extend(self._split_span(text, cursor, len(text), ChunkLevel.SECTION))

        return spans

    def _split_hierarchical(self, text: str) -> list[Span]:
        spans: list[Span] = []

        for chapter_start, chapter_end, _ in self._split_span(
            text, 0, len(text), ChunkLevel.CHAPTER
        ):
            for start, end, level in self._split_span(
                text, chapter_start, chapter_end, ChunkLevel.SECTION
            ):
                if end - start > self.refine_ceiling:
                    spans.extend(self._split_span(text, start, end, ChunkLevel.CLAUSE))
                else:
                    spans.append((start, end, level))

        return spans

    def _split_span(self, text: str, start: int, end: int, level: ChunkLevel) -> list[Span]:
        """Split ``text[start:end]`` with the level's splitter, keeping absolute offsets."""
        segment = text[start:end]
        pieces = self.splitters[level].split_text(segment)

        spans: list[Span] = []
        search_from = 0
        for piece in pieces:
            position = segment.find(piece, search_from)
            if position < 0:
                position = segment.find(piece)
            if position < 0:
                self.logger.warning(
                    "Split piece not found in source segment, skipping",
                    extra={"level": level.value, "piece_length": len(piece)},
                )
                continue
            spans.append((start + position, start + position + len(piece), level))
            search_from = position + 1

        return spans

    def _build_chunks(
        self,
        document: Document,
        spans: list[Span],
        language: Language,
    ) -> list[Chunk]:
        text = document.text
        locator = SectionLocator(text)
        chunks = []

        for index, (start, end, level) in enumerate(spans):
            content = text[start:end]
            chunks.append(
                Chunk(
                    id=f"{document.id}_chunk_{index}",
                    document_id=document.id,
                    index=index,
                    level=level,
                    content=content,
                    start_offset=start,
                    end_offset=end,
                    language=language,
                    legal_references=extract_legal_references(content),
                    clause_tags=extract_clause_tags(content),
                    section=locator.locate(start, end),
                    subsection=extract_subsection(content),
                )
            )

        return chunks

    def _degrade(self, document: Document, language: Language, error: Exception) -> list[Chunk]:
        self.logger.log_error_with_context(
            "Chunking degraded to fixed-size chunks",
            ChunkingDegraded(str(error)),
            document_id=document.id,
            cause=type(error).__name__,
        )
        spans = [
            (start, end, ChunkLevel.PARAGRAPH)
            for start, end in fixed_size_spans(document.text, self.fallback_chunk_size)
        ]
        return self._build_chunks(document, spans, language)
