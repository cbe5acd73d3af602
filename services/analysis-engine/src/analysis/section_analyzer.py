"""
Section Analyzer

Judges one analysis unit against the body of law:

1. Generate search queries for the unit's legal topic (templated fallback)
2. Search legal context for every query; failed searches are skipped
3. Ask for a compliance verdict on this unit only (fallback verdict when
   the response cannot be parsed)
4. Derive findings and recommendations from the verdict
"""

import asyncio

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from shared.config import get_settings
from shared.models import (
    AnalysisUnit,
    ComplianceVerdict,
    DocumentContext,
    Finding,
    FindingSeverity,
    FindingType,
    GeneratedQuery,
    LegalContextItem,
    Recommendation,
    RecommendationPriority,
    TextLocation,
    UnitResult,
)
from shared.utils import ResponseParseError, get_logger

from reasoning import FileAttachment, ReasoningService, extract_json
from retrieval import LegalContextSearch

from .prompts import (
    COMPLIANCE_SYSTEM_PROMPT,
    QUERY_GENERATION_SYSTEM_PROMPT,
    document_context_block,
)

FALLBACK_CONFIDENCE = 0.3
FALLBACK_REASONING = (
    "The automated analysis of this section could not be completed. "
    "Manual legal review required."
)
FALLBACK_RECOMMENDATION = "Manual legal review by an expert is recommended."
EXCERPT_LENGTH = 100
EVIDENCE_LENGTH = 200
CONTEXT_SOURCE_LENGTH = 1500


class VerdictPayload(BaseModel):
    """Verdict as returned by the reasoning service."""

    is_compliant: bool = Field(validation_alias=AliasChoices("isCompliant", "is_compliant", "compliant"))
    confidence: float | str | None = None
    reasoning: str = ""
    violations: list | str | None = None
    recommendations: list | str | None = None

    def to_verdict(self) -> ComplianceVerdict:
        return ComplianceVerdict(
            is_compliant=self.is_compliant,
            confidence=self.confidence if self.confidence is not None else 0.5,
            reasoning=self.reasoning or "",
            violations=self.violations,
            recommendations=self.recommendations,
        )


def fallback_verdict() -> ComplianceVerdict:
    """Low-confidence placeholder used whenever a real verdict is unavailable."""
    return ComplianceVerdict(
        is_compliant=True,
        confidence=FALLBACK_CONFIDENCE,
        reasoning=FALLBACK_REASONING,
        violations=[],
        recommendations=[FALLBACK_RECOMMENDATION],
    )


def parse_verdict(raw: str) -> ComplianceVerdict:
    """
    Parse and sanitize a verdict response.

    Raises:
        ResponseParseError: if the response holds no usable verdict
    """
    data = extract_json(raw)
    if not isinstance(data, dict):
        raise ResponseParseError("Verdict response is not a JSON object", raw=raw)
    try:
        return VerdictPayload.model_validate(data).to_verdict()
    except ValidationError as e:
        raise ResponseParseError(f"Invalid verdict: {e}", raw=raw) from e


class SectionAnalyzer:
    """Per-unit compliance analysis."""

    def __init__(
        self,
        reasoning: ReasoningService,
        legal_search: LegalContextSearch,
        queries_per_unit: int | None = None,
        top_k: int | None = None,
        score_threshold: float | None = None,
        legal_area: str | None = None,
        jurisdiction: str | None = None,
        index_id: str | None = None,
        legal_framework: str | None = None,
        logger=None,
    ):
        settings = get_settings()
        self.reasoning = reasoning
        self.legal_search = legal_search
        self.logger = logger or get_logger(__name__)
        self.queries_per_unit = queries_per_unit or settings.queries_per_unit
        self.top_k = top_k or settings.legal_search_top_k
        self.score_threshold = (
            score_threshold if score_threshold is not None else settings.legal_search_score_threshold
        )
        self.legal_area = legal_area or settings.legal_area
        self.jurisdiction = jurisdiction or settings.jurisdiction
        self.index_id = index_id or settings.legal_index_id
        self.legal_framework = legal_framework or settings.legal_framework

    async def analyze(
        self,
        unit: AnalysisUnit,
        document_context: DocumentContext,
        index: int,
        total: int,
    ) -> UnitResult:
        """
        Analyze one unit.

        A failed query-generation call falls back to templated queries.
        Failures of the compliance call propagate; the batch orchestrator
        turns them into the fallback result.
        """
        queries = await self.generate_queries(unit, document_context)
        legal_context = await self.search_legal_context(queries)
        verdict, is_fallback = await self.judge_compliance(
            unit, document_context, legal_context, index, total
        )
        return self.build_result(unit, verdict, queries, legal_context, is_fallback)

    async def generate_queries(
        self,
        unit: AnalysisUnit,
        document_context: DocumentContext,
    ) -> list[GeneratedQuery]:
        system_prompt = QUERY_GENERATION_SYSTEM_PROMPT.format(
            legal_area=self.legal_area,
            jurisdiction=self.jurisdiction,
            count=self.queries_per_unit,
        )
        user_prompt = (
            f"{self._context_block(document_context)}\n\n"
            f"SECTION: {unit.title or unit.id}\n{unit.content}"
        )

        try:
            raw = await self.reasoning.invoke(system_prompt, user_prompt, json_mode=True)
        except Exception as e:
            self.logger.log_error_with_context(
                "Query generation failed, using templated queries", e, unit_id=unit.id
            )
            return self.template_queries(unit, document_context)

        try:
            queries = self._parse_queries(raw)
        except ResponseParseError as e:
            self.logger.warning(
                f"Unparseable queries for {unit.id}, using templated queries",
                extra={"error": str(e), "raw_response": raw[:500]},
            )
            return self.template_queries(unit, document_context)

        return queries[: self.queries_per_unit]

    def _parse_queries(self, raw: str) -> list[GeneratedQuery]:
        data = extract_json(raw)
        items = data.get("queries") if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ResponseParseError("No query list in response", raw=raw)

        queries = []
        for item in items:
            if isinstance(item, str) and item.strip():
                queries.append(GeneratedQuery(text=item.strip()))
            elif isinstance(item, dict):
                text = item.get("query") or item.get("text")
                if isinstance(text, str) and text.strip():
                    queries.append(GeneratedQuery(text=text.strip(), focus=item.get("focus")))

        if not queries:
            raise ResponseParseError("Query list is empty", raw=raw)
        return queries

    def template_queries(
        self,
        unit: AnalysisUnit,
        document_context: DocumentContext,
    ) -> list[GeneratedQuery]:
        """Deterministic queries from document context and a content excerpt."""
        excerpt = " ".join(unit.content[:EXCERPT_LENGTH].split())
        key_terms = " ".join(document_context.key_terms[:5])
        templates = [
            f"{document_context.document_type} {document_context.business_domain} {self.legal_area}",
            f"{key_terms} {self.legal_area}".strip(),
            excerpt,
        ]
        return [
            GeneratedQuery(text=text, templated=True)
            for text in templates[: self.queries_per_unit]
            if text
        ]

    async def search_legal_context(self, queries: list[GeneratedQuery]) -> list[LegalContextItem]:
        async def search_one(query: GeneratedQuery) -> list[LegalContextItem]:
            try:
                result = await self.legal_search.search(
                    query.text,
                    legal_area=self.legal_area,
                    jurisdiction=self.jurisdiction,
                    top_k=self.top_k,
                    index_id=self.index_id,
                    score_threshold=self.score_threshold,
                )
            except Exception as e:
                self.logger.log_error_with_context(
                    "Legal context search failed, skipping query", e, query=query.text
                )
                return []
            return [
                LegalContextItem(source=document, relevance_score=score, query=query.text)
                for document, score in zip(result.documents, result.scores)
            ]

        per_query = await asyncio.gather(*[search_one(query) for query in queries])

        best: dict[str, LegalContextItem] = {}
        for item in (item for items in per_query for item in items):
            current = best.get(item.source.id)
            if current is None or item.relevance_score > current.relevance_score:
                best[item.source.id] = item

        return sorted(best.values(), key=lambda item: item.relevance_score, reverse=True)

    async def judge_compliance(
        self,
        unit: AnalysisUnit,
        document_context: DocumentContext,
        legal_context: list[LegalContextItem],
        index: int,
        total: int,
        file_attachment: FileAttachment | None = None,
        tool_config: dict | None = None,
        system_prompt: str | None = None,
    ) -> tuple[ComplianceVerdict, bool]:
        """Return the verdict and whether it is the fallback verdict."""
        system_prompt = system_prompt or COMPLIANCE_SYSTEM_PROMPT.format(
            legal_framework=self.legal_framework,
            index=index + 1,
            total=total,
        )
        user_prompt = (
            f"{self._context_block(document_context)}\n\n"
            f"LEGAL CONTEXT:\n{self._legal_context_block(legal_context)}\n\n"
            f"UNIT {index + 1} OF {total}: {unit.title or unit.id}\n{unit.content}"
        )

        raw = await self.reasoning.invoke(
            system_prompt,
            user_prompt,
            file_attachment=file_attachment,
            tool_config=tool_config,
            json_mode=True,
        )
        try:
            return parse_verdict(raw), False
        except ResponseParseError as e:
            self.logger.warning(
                f"Unparseable verdict for {unit.id}, using fallback verdict",
                extra={"error": str(e), "raw_response": raw[:500]},
            )
            return fallback_verdict(), True

    def build_result(
        self,
        unit: AnalysisUnit,
        verdict: ComplianceVerdict,
        queries: list[GeneratedQuery] | None = None,
        legal_context: list[LegalContextItem] | None = None,
        is_fallback: bool = False,
    ) -> UnitResult:
        return UnitResult(
            unit=unit,
            verdict=verdict,
            queries=queries or [],
            legal_context=legal_context or [],
            findings=self.derive_findings(unit, verdict),
            recommendations=self.derive_recommendations(unit, verdict),
            is_fallback=is_fallback,
        )

    def fallback_result(self, unit: AnalysisUnit) -> UnitResult:
        """Manual-review placeholder result for a unit whose analysis failed."""
        return self.build_result(unit, fallback_verdict(), is_fallback=True)

    def derive_findings(self, unit: AnalysisUnit, verdict: ComplianceVerdict) -> list[Finding]:
        """One finding per violation, only for non-compliant verdicts."""
        if verdict.is_compliant:
            return []

        location = TextLocation(
            start_offset=unit.start_offset,
            end_offset=unit.end_offset,
            section_label=unit.title,
        )
        return [
            Finding(
                id=f"{unit.id}_finding_{i}",
                unit_id=unit.id,
                type=FindingType.LEGAL_VIOLATION,
                severity=FindingSeverity.HIGH,
                title=f"Legal violation in {unit.title or unit.id}",
                description=violation,
                location=location,
                evidence=[unit.content[:EVIDENCE_LENGTH]],
                legal_basis=[self.legal_framework],
            )
            for i, violation in enumerate(verdict.violations)
        ]

    def derive_recommendations(
        self,
        unit: AnalysisUnit,
        verdict: ComplianceVerdict,
    ) -> list[Recommendation]:
        priority = RecommendationPriority.LOW if verdict.is_compliant else RecommendationPriority.HIGH
        return [
            Recommendation(
                id=f"{unit.id}_rec_{i}",
                unit_id=unit.id,
                priority=priority,
                description=text,
            )
            for i, text in enumerate(verdict.recommendations)
        ]

    @staticmethod
    def _context_block(document_context: DocumentContext) -> str:
        return document_context_block(
            document_context.document_type,
            document_context.business_domain,
            document_context.key_terms,
        )

    @staticmethod
    def _legal_context_block(items: list[LegalContextItem]) -> str:
        if not items:
            return "No relevant provisions found."
        return "\n\n".join(
            f"[{item.relevance_score:.2f}] {', '.join(item.source.legal_references) or item.source.id}\n"
            f"{item.source.content[:CONTEXT_SOURCE_LENGTH]}"
            for item in items
        )
