"""
Analysis strategies.

``LocalSectionSearch`` splits the document locally, searches legal context
per unit and runs units through the token-budgeted batch orchestrator.
``DirectDocumentWithToolSearch`` hands the whole document to the reasoning
service together with a ``file_search`` tool; it is the single-unit case.
"""

from typing import Any, Protocol

from shared.models import (
    AnalysisUnit,
    DirectDocumentWithToolSearch,
    Document,
    DocumentContext,
    DocumentKind,
    UnitResult,
)
from shared.utils import UnitAnalysisFailed, get_logger

from chunking import HierarchicalChunker, TokenSegmenter
from reasoning import FileAttachment

from .batch_orchestrator import BatchDoneFn, BatchOrchestrator
from .prompts import DIRECT_DOCUMENT_SYSTEM_PROMPT
from .section_analyzer import SectionAnalyzer


class StrategyRunner(Protocol):
    async def split(self, text: str, document_id: str, kind: DocumentKind) -> list[AnalysisUnit]:
        ...

    async def analyze(
        self,
        units: list[AnalysisUnit],
        document_context: DocumentContext,
        on_batch_done: BatchDoneFn | None = None,
    ) -> list[UnitResult]:
        ...


class LocalSectionSearchRunner:
    """Local split, per-unit legal search, batched under the token budget."""

    def __init__(
        self,
        segmenter: TokenSegmenter,
        chunker: HierarchicalChunker,
        orchestrator: BatchOrchestrator,
        analyzer: SectionAnalyzer,
        segmentation: str = "semantic",
    ):
        self.segmenter = segmenter
        self.chunker = chunker
        self.orchestrator = orchestrator
        self.analyzer = analyzer
        self.segmentation = segmentation

    async def split(self, text: str, document_id: str, kind: DocumentKind) -> list[AnalysisUnit]:
        if self.segmentation == "hierarchical":
            chunks = self.chunker.split_document(Document(id=document_id, text=text, kind=kind))
            return TokenSegmenter.from_chunks(chunks)
        return await self.segmenter.segment(text)

    async def analyze(
        self,
        units: list[AnalysisUnit],
        document_context: DocumentContext,
        on_batch_done: BatchDoneFn | None = None,
    ) -> list[UnitResult]:
        async def analyze_unit(unit: AnalysisUnit, index: int, total: int) -> UnitResult:
            return await self.analyzer.analyze(unit, document_context, index, total)

        return await self.orchestrator.run(
            units,
            analyze_unit,
            self.analyzer.fallback_result,
            document_context=document_context,
            on_batch_done=on_batch_done,
        )


def file_search_tool(strategy: DirectDocumentWithToolSearch) -> dict[str, Any] | None:
    """Tool configuration for the reasoning service's built-in file search."""
    if not strategy.vector_store_id:
        return None
    return {
        "type": "file_search",
        "vector_store_ids": [strategy.vector_store_id],
        "filters": {"type": "eq", "key": "region", "value": strategy.region},
    }


class DirectDocumentRunner:
    """Whole document as one unit, legal search delegated to the reasoning service."""

    def __init__(
        self,
        analyzer: SectionAnalyzer,
        strategy: DirectDocumentWithToolSearch,
        attachment: FileAttachment | None = None,
        logger=None,
    ):
        self.analyzer = analyzer
        self.strategy = strategy
        self.attachment = attachment
        self.logger = logger or get_logger(__name__)

    async def split(self, text: str, document_id: str, kind: DocumentKind) -> list[AnalysisUnit]:
        if not text:
            return []
        return [
            AnalysisUnit(
                id="unit_0",
                content=text,
                title="Full document",
                start_offset=0,
                end_offset=len(text),
            )
        ]

    async def analyze(
        self,
        units: list[AnalysisUnit],
        document_context: DocumentContext,
        on_batch_done: BatchDoneFn | None = None,
    ) -> list[UnitResult]:
        results = []
        for index, unit in enumerate(units):
            try:
                verdict, is_fallback = await self.analyzer.judge_compliance(
                    unit,
                    document_context,
                    [],
                    index,
                    len(units),
                    file_attachment=self.attachment,
                    tool_config=file_search_tool(self.strategy),
                    system_prompt=DIRECT_DOCUMENT_SYSTEM_PROMPT.format(
                        legal_framework=self.analyzer.legal_framework
                    ),
                )
                results.append(self.analyzer.build_result(unit, verdict, is_fallback=is_fallback))
            except Exception as e:
                self.logger.log_error_with_context(
                    "Direct document analysis failed, using fallback verdict",
                    UnitAnalysisFailed(unit.id, e),
                    unit_id=unit.id,
                )
                results.append(self.analyzer.fallback_result(unit))

        if on_batch_done is not None:
            await on_batch_done(0, 1, len(results))
        return results
