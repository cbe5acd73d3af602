"""Folds unit verdicts into the document-level compliance verdict."""

from shared.models import OverallCompliance, UnitResult
from shared.utils import get_logger


class ComplianceAggregator:
    """
    Strict aggregation: a document is compliant only if every unit is.

    The score is the share of compliant units. No LLM call is involved.
    """

    def __init__(self, logger=None):
        self.logger = logger or get_logger(__name__)

    def aggregate(self, unit_results: list[UnitResult]) -> OverallCompliance:
        total = len(unit_results)
        compliant = sum(1 for result in unit_results if result.verdict.is_compliant)
        violations = sum(len(result.verdict.violations) for result in unit_results)
        fallbacks = sum(1 for result in unit_results if result.is_fallback)

        score = compliant / total if total else 0.0
        is_compliant = total > 0 and compliant == total

        overall = OverallCompliance(
            is_compliant=is_compliant,
            compliance_score=score,
            summary=self._summary(total, compliant, violations, fallbacks, is_compliant),
            total_units=total,
            compliant_units=compliant,
            violation_count=violations,
            fallback_count=fallbacks,
        )
        self.logger.info(
            f"Aggregated {total} units: {compliant} compliant, {violations} violations",
            extra={"compliance_score": score, "fallback_count": fallbacks},
        )
        return overall

    @staticmethod
    def _summary(
        total: int,
        compliant: int,
        violations: int,
        fallbacks: int,
        is_compliant: bool,
    ) -> str:
        if total == 0:
            return "No sections were analyzed."

        verdict = "compliant" if is_compliant else "not compliant"
        summary = (
            f"The document is {verdict}: {compliant} of {total} sections are compliant "
            f"and {violations} violation(s) were found."
        )
        if fallbacks:
            summary += (
                f" {fallbacks} section(s) could not be analyzed automatically and "
                f"carry a low-confidence placeholder verdict; manual review is required."
            )
        return summary
