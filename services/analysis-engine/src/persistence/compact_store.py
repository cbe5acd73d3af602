"""
Compact Result Store

Persists an AnalysisResult as two records written in one batch:

- ``{collection}/{analysis_id}``: the compact index. Everything except full
  findings and recommendations, which are referenced by id. Bounded by the
  store's per-record ceiling.
- ``{collection}/{analysis_id}/details/items``: the details blob, a map of
  id to finding or recommendation. Not subject to the ceiling.

Reads tolerate a missing or partial details blob: unresolvable ids are
skipped and logged, never raised. Retrieved legal context is not persisted.
"""

from pydantic import ValidationError

from shared.config import get_settings
from shared.models import (
    AnalysisResult,
    AnalysisUnit,
    CompactIndex,
    CompactUnitResult,
    DetailsBlob,
    Finding,
    Recommendation,
    ReviewStatus,
    UnitResult,
)
from shared.utils import ReconstructionGap, get_logger

from .document_store import DocumentStore, WriteOp


class CompactResultStore:
    """Index/details persistence of analysis results."""

    def __init__(self, store: DocumentStore, collection: str | None = None, logger=None):
        settings = get_settings()
        self.store = store
        self.collection = collection or settings.analysis_collection
        self.logger = logger or get_logger(__name__)

    def index_path(self, analysis_id: str) -> str:
        return f"{self.collection}/{analysis_id}"

    def details_path(self, analysis_id: str) -> str:
        return f"{self.collection}/{analysis_id}/details/items"

    @staticmethod
    def compact(result: AnalysisResult) -> tuple[CompactIndex, DetailsBlob]:
        """Split a result into its compact index and details blob."""
        items: dict[str, Finding | Recommendation] = {}
        units = []

        for unit_result in result.units:
            for finding in unit_result.findings:
                items[finding.id] = finding
            for recommendation in unit_result.recommendations:
                items[recommendation.id] = recommendation

            unit = unit_result.unit
            units.append(
                CompactUnitResult(
                    unit_id=unit.id,
                    title=unit.title,
                    content=unit.content,
                    start_offset=unit.start_offset,
                    end_offset=unit.end_offset,
                    verdict=unit_result.verdict,
                    queries=unit_result.queries,
                    finding_ids=[finding.id for finding in unit_result.findings],
                    recommendation_ids=[r.id for r in unit_result.recommendations],
                    is_fallback=unit_result.is_fallback,
                )
            )

        index = CompactIndex(
            **result.model_dump(exclude={"units"}),
            units=units,
        )
        return index, DetailsBlob(items=items)

    def reconstruct(self, index: CompactIndex, details: DetailsBlob | None) -> AnalysisResult:
        """
        Hydrate a compact index with the records from its details blob.

        Args:
            index: Compact index
            details: Details blob, or None when it is missing

        Returns:
            The analysis result; units whose records cannot be resolved get
            empty findings/recommendations
        """
        items = details.items if details is not None else {}
        if details is None:
            self._log_gap(index.analysis_id, "Details blob missing, returning units without findings")

        units = []
        for compact_unit in index.units:
            findings = self._resolve(
                index.analysis_id, compact_unit.finding_ids, items, Finding, details is not None
            )
            recommendations = self._resolve(
                index.analysis_id,
                compact_unit.recommendation_ids,
                items,
                Recommendation,
                details is not None,
            )
            units.append(
                UnitResult(
                    unit=AnalysisUnit(
                        id=compact_unit.unit_id,
                        content=compact_unit.content,
                        title=compact_unit.title,
                        start_offset=compact_unit.start_offset,
                        end_offset=compact_unit.end_offset,
                    ),
                    verdict=compact_unit.verdict,
                    queries=compact_unit.queries,
                    findings=findings,
                    recommendations=recommendations,
                    is_fallback=compact_unit.is_fallback,
                )
            )

        return AnalysisResult(**index.model_dump(exclude={"units"}), units=units)

    def _resolve(
        self,
        analysis_id: str,
        ids: list[str],
        items: dict,
        record_type: type,
        log_missing: bool,
    ) -> list:
        resolved = []
        for item_id in ids:
            item = items.get(item_id)
            if isinstance(item, record_type):
                resolved.append(item)
            elif log_missing:
                self._log_gap(analysis_id, f"Referenced {record_type.__name__.lower()} {item_id} not found")
        return resolved

    def _log_gap(self, analysis_id: str, message: str) -> None:
        self.logger.warning(
            message,
            extra={"analysis_id": analysis_id, "event": ReconstructionGap.__name__},
        )

    async def save(self, result: AnalysisResult) -> None:
        """
        Write index and details atomically.

        Raises:
            PersistenceWriteError: if the batch is rejected; nothing is written
        """
        index, details = self.compact(result)
        await self.store.batch_set(
            [
                WriteOp(self.index_path(result.analysis_id), index.model_dump(mode="json")),
                WriteOp(
                    self.details_path(result.analysis_id),
                    details.model_dump(mode="json"),
                    bounded=False,
                ),
            ],
            merge=False,
        )
        self.logger.log_audit(
            "save",
            "compliance_analysis",
            "success",
            analysis_id=result.analysis_id,
            units=len(index.units),
            detail_items=len(details.items),
        )

    async def load_index(self, analysis_id: str) -> CompactIndex | None:
        data = await self.store.get(self.index_path(analysis_id))
        if data is None:
            return None
        try:
            return CompactIndex.model_validate(data)
        except ValidationError as e:
            self.logger.log_error_with_context("Stored analysis index is invalid", e, analysis_id=analysis_id)
            return None

    async def get(self, analysis_id: str, user_id: str | None = None) -> AnalysisResult | None:
        """
        Load a full analysis result.

        Returns None when the analysis does not exist or belongs to another user.
        """
        index = await self.load_index(analysis_id)
        if index is None:
            return None
        if user_id is not None and index.user_id != user_id:
            self.logger.warning(
                "Analysis requested by a user who does not own it",
                extra={"analysis_id": analysis_id, "requested_by": user_id},
            )
            return None

        details = None
        details_data = await self.store.get(self.details_path(analysis_id))
        if details_data is not None:
            try:
                details = DetailsBlob.model_validate(details_data)
            except ValidationError as e:
                self.logger.log_error_with_context("Stored details blob is invalid", e, analysis_id=analysis_id)

        return self.reconstruct(index, details)

    async def list_for_user(self, user_id: str, limit: int = 20) -> list[CompactIndex]:
        """Most recent analyses of a user, as compact indexes."""
        records = await self.store.query(
            self.collection,
            where={"user_id": user_id},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [CompactIndex.model_validate(data) for _, data in records]

    async def list_for_document(self, document_id: str, user_id: str) -> list[CompactIndex]:
        records = await self.store.query(
            self.collection,
            where={"user_id": user_id, "document_id": document_id},
            order_by="created_at",
            descending=True,
        )
        return [CompactIndex.model_validate(data) for _, data in records]

    async def delete_for_document(self, document_id: str, user_id: str) -> int:
        """Delete every analysis of a document. Returns the number of analyses removed."""
        indexes = await self.list_for_document(document_id, user_id)
        paths = []
        for index in indexes:
            paths.extend([self.index_path(index.analysis_id), self.details_path(index.analysis_id)])
        if paths:
            await self.store.delete(paths)

        self.logger.log_audit(
            "delete",
            "compliance_analysis",
            "success",
            document_id=document_id,
            analyses=len(indexes),
        )
        return len(indexes)

    async def update_review(
        self,
        analysis_id: str,
        status: ReviewStatus,
        comment: str | None = None,
    ) -> bool:
        """Record the lawyer review outcome. Returns False if the analysis does not exist."""
        if await self.store.get(self.index_path(analysis_id)) is None:
            return False

        await self.store.batch_set(
            [
                WriteOp(
                    self.index_path(analysis_id),
                    {"review_status": status.value, "review_comment": comment},
                )
            ],
            merge=True,
        )
        self.logger.log_audit("review", "compliance_analysis", status.value, analysis_id=analysis_id)
        return True
