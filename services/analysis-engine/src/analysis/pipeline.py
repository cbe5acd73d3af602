"""
Compliance Analysis Pipeline

Runs one document through segmentation, document-context extraction,
batched unit analysis and aggregation. Each stage is also exposed on its
own so the job service can place cancellation checkpoints between them.
Persistence is left to the caller.
"""

import time
from collections.abc import Awaitable, Callable

from shared.config import get_settings
from shared.models import (
    AnalysisResult,
    AnalysisStatus,
    AnalysisUnit,
    DirectDocumentWithToolSearch,
    DocumentContext,
    DocumentKind,
    JobStage,
    LocalSectionSearch,
    ProgressUpdate,
    UnitResult,
)
from shared.models.analysis import utc_now
from shared.utils import get_logger

from chunking import HierarchicalChunker, TokenSegmenter
from chunking.text_spans import normalize_text
from extraction import reverse_anonymization
from reasoning import FileAttachment, ReasoningService
from retrieval import LegalContextSearch

from .aggregator import ComplianceAggregator
from .batch_orchestrator import BatchOrchestrator
from .document_context import DocumentContextExtractor
from .section_analyzer import SectionAnalyzer
from .strategies import DirectDocumentRunner, LocalSectionSearchRunner, StrategyRunner

Checkpoint = Callable[[JobStage], Awaitable[None]]
ProgressFn = Callable[[ProgressUpdate], Awaitable[None]]

ANALYZE_PROGRESS_START = 40
ANALYZE_PROGRESS_END = 90


class ComplianceAnalysisPipeline:
    """End-to-end compliance analysis of one document."""

    def __init__(
        self,
        reasoning: ReasoningService,
        legal_search: LegalContextSearch,
        chunker: HierarchicalChunker | None = None,
        segmenter: TokenSegmenter | None = None,
        orchestrator: BatchOrchestrator | None = None,
        analyzer: SectionAnalyzer | None = None,
        aggregator: ComplianceAggregator | None = None,
        context_extractor: DocumentContextExtractor | None = None,
        segmentation: str | None = None,
        logger=None,
    ):
        settings = get_settings()
        self.logger = logger or get_logger(__name__)
        self.chunker = chunker or HierarchicalChunker(logger=self.logger)
        self.segmenter = segmenter or TokenSegmenter(reasoning, logger=self.logger)
        self.orchestrator = orchestrator or BatchOrchestrator(logger=self.logger)
        self.analyzer = analyzer or SectionAnalyzer(reasoning, legal_search, logger=self.logger)
        self.aggregator = aggregator or ComplianceAggregator(logger=self.logger)
        self.context_extractor = context_extractor or DocumentContextExtractor(
            reasoning, logger=self.logger
        )
        self.segmentation = segmentation or settings.unit_segmentation

    def runner_for(
        self,
        strategy: LocalSectionSearch | DirectDocumentWithToolSearch,
        attachment: FileAttachment | None = None,
    ) -> StrategyRunner:
        if isinstance(strategy, DirectDocumentWithToolSearch):
            return DirectDocumentRunner(self.analyzer, strategy, attachment, logger=self.logger)
        return LocalSectionSearchRunner(
            self.segmenter,
            self.chunker,
            self.orchestrator,
            self.analyzer,
            segmentation=strategy.segmentation or self.segmentation,
        )

    async def split(
        self,
        text: str,
        document_id: str,
        strategy: LocalSectionSearch | DirectDocumentWithToolSearch,
        kind: DocumentKind = DocumentKind.GENERAL,
    ) -> list[AnalysisUnit]:
        return await self.runner_for(strategy).split(text, document_id, kind)

    async def extract_context(self, text: str) -> DocumentContext:
        return await self.context_extractor.extract(text)

    async def analyze_units(
        self,
        units: list[AnalysisUnit],
        document_context: DocumentContext,
        strategy: LocalSectionSearch | DirectDocumentWithToolSearch,
        attachment: FileAttachment | None = None,
        progress: ProgressFn | None = None,
    ) -> list[UnitResult]:
        async def on_batch_done(batch_index: int, total_batches: int, units_done: int) -> None:
            if progress is None:
                return
            span = ANALYZE_PROGRESS_END - ANALYZE_PROGRESS_START
            percent = ANALYZE_PROGRESS_START + int(span * (batch_index + 1) / max(total_batches, 1))
            await progress(
                ProgressUpdate(
                    stage=JobStage.ANALYZE,
                    percent=percent,
                    message=f"Analyzed {units_done} of {len(units)} sections",
                )
            )

        runner = self.runner_for(strategy, attachment)
        return await runner.analyze(units, document_context, on_batch_done=on_batch_done)

    def finalize(
        self,
        analysis_id: str,
        document_id: str,
        user_id: str,
        strategy: LocalSectionSearch | DirectDocumentWithToolSearch,
        document_context: DocumentContext,
        unit_results: list[UnitResult],
        keyword_map: dict[str, str] | None = None,
    ) -> AnalysisResult:
        """
        Restore anonymized text and aggregate.

        Unit offsets keep referring to the analyzed (anonymized) text.
        """
        if keyword_map:
            unit_results = [self._restore(result, keyword_map) for result in unit_results]

        overall = self.aggregator.aggregate(unit_results)
        return AnalysisResult(
            analysis_id=analysis_id,
            document_id=document_id,
            user_id=user_id,
            status=AnalysisStatus.COMPLETED,
            strategy=strategy.kind,
            document_context=document_context,
            units=unit_results,
            overall_compliance=overall,
            completed_at=utc_now(),
        )

    async def analyze(
        self,
        text: str,
        document_id: str,
        user_id: str,
        analysis_id: str,
        strategy: LocalSectionSearch | DirectDocumentWithToolSearch | None = None,
        kind: DocumentKind = DocumentKind.GENERAL,
        keyword_map: dict[str, str] | None = None,
        attachment: FileAttachment | None = None,
        checkpoint: Checkpoint | None = None,
        progress: ProgressFn | None = None,
    ) -> AnalysisResult:
        """
        Analyze a document end to end.

        Args:
            text: Extracted (possibly anonymized) document text
            document_id: Source document id
            user_id: Owner of the analysis
            analysis_id: Id of the analysis being produced
            strategy: Analysis strategy (local section search by default)
            kind: Declared document kind
            keyword_map: Anonymization map used to restore the output text
            attachment: Original file, forwarded by the direct-document strategy
            checkpoint: Awaited after split, context and analyze; raises to stop
            progress: Receives progress updates

        Returns:
            Completed AnalysisResult (not persisted)
        """
        strategy = strategy or LocalSectionSearch()
        start_time = time.time()
        text = normalize_text(text)

        units = await self.split(text, document_id, strategy, kind)
        await self._report(progress, JobStage.SPLIT, 30, f"Split document into {len(units)} sections")
        if checkpoint is not None:
            await checkpoint(JobStage.SPLIT)

        document_context = await self.extract_context(text)
        await self._report(progress, JobStage.CONTEXT, ANALYZE_PROGRESS_START, "Document context extracted")
        if checkpoint is not None:
            await checkpoint(JobStage.CONTEXT)

        unit_results = await self.analyze_units(
            units, document_context, strategy, attachment=attachment, progress=progress
        )
        if checkpoint is not None:
            await checkpoint(JobStage.ANALYZE)

        result = self.finalize(
            analysis_id,
            document_id,
            user_id,
            strategy,
            document_context,
            unit_results,
            keyword_map=keyword_map,
        )

        self.logger.log_performance(
            "compliance_analysis",
            (time.time() - start_time) * 1000,
            analysis_id=analysis_id,
            units=len(unit_results),
            strategy=strategy.kind,
        )
        return result

    @staticmethod
    async def _report(progress: ProgressFn | None, stage: JobStage, percent: int, message: str) -> None:
        if progress is not None:
            await progress(ProgressUpdate(stage=stage, percent=percent, message=message))

    @staticmethod
    def _restore(result: UnitResult, keyword_map: dict[str, str]) -> UnitResult:
        def restore(text: str) -> str:
            return reverse_anonymization(text, keyword_map)

        verdict = result.verdict.model_copy(
            update={
                "reasoning": restore(result.verdict.reasoning),
                "violations": [restore(v) for v in result.verdict.violations],
                "recommendations": [restore(r) for r in result.verdict.recommendations],
            }
        )
        unit = result.unit.model_copy(
            update={
                "content": restore(result.unit.content),
                "title": restore(result.unit.title) if result.unit.title else result.unit.title,
            }
        )
        findings = [
            finding.model_copy(
                update={
                    "title": restore(finding.title),
                    "description": restore(finding.description),
                    "evidence": [restore(e) for e in finding.evidence],
                }
            )
            for finding in result.findings
        ]
        recommendations = [
            recommendation.model_copy(update={"description": restore(recommendation.description)})
            for recommendation in result.recommendations
        ]
        return result.model_copy(
            update={
                "unit": unit,
                "verdict": verdict,
                "findings": findings,
                "recommendations": recommendations,
            }
        )
