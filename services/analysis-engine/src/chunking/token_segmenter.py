"""
Token-budgeted re-segmentation.

Turns normalized document text into AnalysisUnits for the compliance
pipeline:

1. Count tokens; above the per-request ceiling, pre-split at sentence
   boundaries into sub-chunks that each fit the ceiling
2. Ask the reasoning service to propose titled, legally relevant units for
   every sub-chunk (concurrently), excluding boilerplate
3. Drop units below the minimum length and re-anchor the rest onto the
   source text
4. Fall back to fixed-size chunks wherever a proposal cannot be used

Segmentation never raises.
"""

import asyncio
import time
from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from shared.config import get_settings
from shared.models import AnalysisUnit, Chunk
from shared.utils import ResponseParseError, get_logger

from reasoning import ReasoningService, extract_json

from .text_spans import fixed_size_spans, normalize_text, sentence_spans, word_spans
from .tokenizers import TiktokenTokenizer, Tokenizer

SEGMENTATION_SYSTEM_PROMPT = """You are a legal analyst splitting a legal document into \
sections that can each be checked for compliance on their own.

Rules:
- Every section must cover one legally relevant topic (e.g. a clause or article).
- Exclude boilerplate from every section: document titles, signatures, dates, \
addresses, page numbers and pure formatting.
- Copy section content verbatim from the text.
- startIndex and endIndex are character offsets into the text you were given.

Respond with a single JSON object:
{"sections": [{"title": "...", "content": "...", "startIndex": 0, "endIndex": 0}]}"""


@dataclass
class SubChunk:
    """A slice of the normalized text that fits one request."""

    text: str
    offset: int
    token_count: int


class ProposedSection(BaseModel):
    title: str | None = None
    content: str
    start_index: int | None = Field(
        default=None, validation_alias=AliasChoices("startIndex", "start_index", "start")
    )
    end_index: int | None = Field(
        default=None, validation_alias=AliasChoices("endIndex", "end_index", "end")
    )


class SegmentationProposal(BaseModel):
    sections: list[ProposedSection] = Field(default_factory=list)


class TokenSegmenter:
    """Splits document text into analysis units under a token ceiling."""

    def __init__(
        self,
        reasoning: ReasoningService,
        tokenizer: Tokenizer | None = None,
        max_tokens_per_request: int | None = None,
        min_unit_length: int | None = None,
        fallback_chunk_size: int | None = None,
        logger=None,
    ):
        settings = get_settings()
        self.reasoning = reasoning
        self.logger = logger or get_logger(__name__)
        self.tokenizer = tokenizer or TiktokenTokenizer(
            model=settings.llm_model,
            encoding_name=settings.tokenizer_encoding,
            logger=self.logger,
        )
        self.max_tokens = max_tokens_per_request or settings.max_tokens_per_request
        self.min_unit_length = (
            min_unit_length if min_unit_length is not None else settings.min_unit_length
        )
        self.fallback_chunk_size = fallback_chunk_size or settings.fallback_chunk_size

    async def segment(self, text: str) -> list[AnalysisUnit]:
        """
        Segment text into analysis units.

        Offsets refer to the normalized text (see ``normalize_text``).

        Args:
            text: Document text

        Returns:
            Ordered analysis units; at least one for non-empty text
        """
        normalized = normalize_text(text)
        if not normalized:
            return []

        start_time = time.time()
        try:
            subchunks = await self.presplit(normalized)
            per_subchunk = await asyncio.gather(
                *[self._segment_subchunk(sub, i, len(subchunks)) for i, sub in enumerate(subchunks)]
            )
            spans = [span for spans in per_subchunk for span in spans]
        except Exception as e:
            self.logger.log_error_with_context(
                "Segmentation failed, using fixed-size units", e, text_length=len(normalized)
            )
            spans = []

        if not spans:
            self.logger.warning(
                "No analysis units proposed, using fixed-size units",
                extra={"text_length": len(normalized)},
            )
            spans = self._fallback_spans(normalized, 0)

        units = [
            AnalysisUnit(
                id=f"unit_{i}",
                content=content,
                title=title,
                start_offset=start,
                end_offset=end,
            )
            for i, (start, end, title, content) in enumerate(spans)
        ]

        self.logger.log_performance(
            "segment_document",
            (time.time() - start_time) * 1000,
            units=len(units),
            text_length=len(normalized),
        )
        return units

    async def presplit(self, text: str) -> list[SubChunk]:
        """
        Split text at sentence boundaries into sub-chunks under the token ceiling.

        A single sentence above the ceiling is split on word boundaries.
        """
        total_tokens = await asyncio.to_thread(self.tokenizer.count, text)
        if total_tokens <= self.max_tokens:
            return [SubChunk(text=text, offset=0, token_count=total_tokens)]

        spans = sentence_spans(text)
        counts = await asyncio.to_thread(
            lambda: [self.tokenizer.count(text[start:end]) for start, end in spans]
        )

        subchunks: list[SubChunk] = []
        current_start: int | None = None
        current_end = 0
        current_tokens = 0

        def flush():
            nonlocal current_start, current_tokens
            if current_start is not None:
                subchunks.append(
                    SubChunk(
                        text=text[current_start:current_end],
                        offset=current_start,
                        token_count=current_tokens,
                    )
                )
            current_start = None
            current_tokens = 0

        for (start, end), tokens in zip(spans, counts):
            if tokens > self.max_tokens:
                flush()
                subchunks.extend(self._hard_split(text, start, end))
                continue
            if current_start is not None and current_tokens + tokens > self.max_tokens:
                flush()
            if current_start is None:
                current_start = start
            current_end = end
            current_tokens += tokens
        flush()

        self.logger.info(
            f"Pre-split {total_tokens} tokens into {len(subchunks)} sub-chunks",
            extra={"total_tokens": total_tokens, "max_tokens": self.max_tokens},
        )
        return subchunks

    def _hard_split(self, text: str, start: int, end: int) -> list[SubChunk]:
        pieces: list[SubChunk] = []
        piece_start = start
        piece_end = start
        piece_tokens = 0

        for word_start, word_end in word_spans(text, start, end):
            tokens = self.tokenizer.count(text[word_start:word_end])
            if piece_end > piece_start and piece_tokens + tokens > self.max_tokens:
                pieces.append(SubChunk(text[piece_start:piece_end], piece_start, piece_tokens))
                piece_start = word_start
                piece_tokens = 0
            piece_end = word_end
            piece_tokens += tokens

        if piece_end > piece_start:
            pieces.append(SubChunk(text[piece_start:piece_end], piece_start, piece_tokens))
        return pieces

    async def _segment_subchunk(
        self,
        sub: SubChunk,
        index: int,
        total: int,
    ) -> list[tuple[int, int, str | None, str]]:
        user_prompt = self._user_prompt(sub, index, total)
        raw = ""
        try:
            raw = await self.reasoning.invoke(
                SEGMENTATION_SYSTEM_PROMPT, user_prompt, json_mode=True
            )
            data = extract_json(raw)
            if isinstance(data, list):
                data = {"sections": data}
            proposal = SegmentationProposal.model_validate(data)
        except (ResponseParseError, ValidationError) as e:
            self.logger.warning(
                f"Unparseable segmentation for sub-chunk {index + 1}/{total}, using fixed-size units",
                extra={"error": str(e), "raw_response": raw[:500]},
            )
            return self._fallback_spans(sub.text, sub.offset)
        except Exception as e:
            self.logger.log_error_with_context(
                f"Segmentation call failed for sub-chunk {index + 1}/{total}",
                e,
                subchunk_offset=sub.offset,
            )
            return self._fallback_spans(sub.text, sub.offset)

        spans = []
        search_from = 0
        for section in proposal.sections:
            content = section.content.strip()
            if len(content) < self.min_unit_length:
                continue

            position = sub.text.find(content, search_from)
            if position < 0:
                position = sub.text.find(content)

            if position >= 0:
                start, end = position, position + len(content)
                search_from = end
            else:
                start, end = self._clamp_offsets(section, len(sub.text))

            spans.append((sub.offset + start, sub.offset + end, section.title, content))

        return spans

    @staticmethod
    def _clamp_offsets(section: ProposedSection, length: int) -> tuple[int, int]:
        start = min(max(section.start_index or 0, 0), length)
        end = section.end_index if section.end_index is not None else length
        end = min(max(end, start), length)
        return start, end

    @staticmethod
    def _user_prompt(sub: SubChunk, index: int, total: int) -> str:
        return (
            f"This is part {index + 1} of {total} of the document.\n\n"
            f"TEXT:\n{sub.text}"
        )

    def _fallback_spans(self, text: str, offset: int) -> list[tuple[int, int, str | None, str]]:
        spans = []
        for start, end in fixed_size_spans(text, self.fallback_chunk_size):
            content = text[start:end]
            if not content.strip():
                continue
            spans.append((offset + start, offset + end, None, content))
        return spans

    @staticmethod
    def from_chunks(chunks: list[Chunk]) -> list[AnalysisUnit]:
        """Use chunker output directly as analysis units."""
        return [
            AnalysisUnit(
                id=chunk.id,
                content=chunk.content,
                title=f"§ {chunk.section}" if chunk.section else None,
                start_offset=chunk.start_offset,
                end_offset=chunk.end_offset,
            )
            for chunk in chunks
        ]
