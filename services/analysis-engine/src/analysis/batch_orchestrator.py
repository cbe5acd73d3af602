"""
Rate-limited batch execution of unit analyses.

Units are analyzed in sequential batches. All units of a batch run
concurrently and the orchestrator waits for every one of them to settle
before it cools down and starts the next batch. The batch size is chosen so
one batch stays within the per-minute token budget:

    batch_size = clamp(floor(rate_limit * safety_margin / per_unit_tokens), 1, N)

This is a fixed-window limiter; unused budget within a window is not
reclaimed. The budget is per run and not shared between concurrent jobs.
"""

import asyncio
import math
import time
from collections.abc import Awaitable, Callable

from shared.config import get_settings
from shared.models import AnalysisUnit, DocumentContext, UnitResult
from shared.utils import TokenBudgetEstimationFailed, UnitAnalysisFailed, get_logger

from .token_budget import TokenBudgetEstimator

AnalyzeFn = Callable[[AnalysisUnit, int, int], Awaitable[UnitResult]]
FallbackFn = Callable[[AnalysisUnit], UnitResult]
BatchDoneFn = Callable[[int, int, int], Awaitable[None]]


class BatchOrchestrator:
    """Fans unit analyses out in token-budgeted batches."""

    def __init__(
        self,
        estimator: TokenBudgetEstimator | None = None,
        rate_limit_tokens_per_minute: int | None = None,
        safety_margin: float | None = None,
        cooldown_seconds: float | None = None,
        fallback_batch_size: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger=None,
    ):
        settings = get_settings()
        self.logger = logger or get_logger(__name__)
        self.estimator = estimator or TokenBudgetEstimator(logger=self.logger)
        self.rate_limit = rate_limit_tokens_per_minute or settings.llm_rate_limit_tokens_per_minute
        self.safety_margin = safety_margin if safety_margin is not None else settings.token_safety_margin
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else settings.batch_cooldown_seconds
        )
        self.fallback_batch_size = fallback_batch_size or settings.fallback_batch_size
        self.model = settings.llm_model
        self._sleep = sleep

    def compute_batch_size(self, n_units: int, per_unit_tokens: int) -> int:
        """Number of units that fit one batch window, clamped to [1, n_units]."""
        if n_units <= 0:
            return 0
        if per_unit_tokens <= 0:
            return n_units

        available = self.rate_limit * self.safety_margin
        return max(1, min(n_units, math.floor(available / per_unit_tokens)))

    @staticmethod
    def plan_batches(units: list[AnalysisUnit], batch_size: int) -> list[list[AnalysisUnit]]:
        if batch_size <= 0:
            return []
        return [units[i : i + batch_size] for i in range(0, len(units), batch_size)]

    def batch_size_for(
        self,
        units: list[AnalysisUnit],
        document_context: DocumentContext | None = None,
    ) -> int:
        """
        Size batches from one representative (the longest) unit.

        Falls back to the configured conservative batch size when the
        estimate cannot be computed.
        """
        if not units:
            return 0

        representative = max(units, key=lambda unit: len(unit.content))
        try:
            per_unit = self.estimator.estimate_unit_tokens(
                representative, document_context, self.model
            )
        except TokenBudgetEstimationFailed as e:
            self.logger.warning(
                f"Token estimation failed, using fallback batch size {self.fallback_batch_size}",
                extra={"error": str(e)},
            )
            return max(1, min(len(units), self.fallback_batch_size))

        batch_size = self.compute_batch_size(len(units), per_unit)
        self.logger.info(
            f"Batch size {batch_size} for {len(units)} units",
            extra={
                "per_unit_tokens": per_unit,
                "rate_limit_tokens_per_minute": self.rate_limit,
                "safety_margin": self.safety_margin,
            },
        )
        return batch_size

    async def run(
        self,
        units: list[AnalysisUnit],
        analyze: AnalyzeFn,
        fallback: FallbackFn,
        document_context: DocumentContext | None = None,
        on_batch_done: BatchDoneFn | None = None,
    ) -> list[UnitResult]:
        """
        Analyze all units and return exactly one result per unit, in unit order.

        Args:
            units: Units to analyze
            analyze: Coroutine analyzing one unit (unit, index, total)
            fallback: Builds the placeholder result for a failed unit
            document_context: Used for the token estimate
            on_batch_done: Awaited after each batch with
                (batch_index, total_batches, units_done)
        """
        batches = self.plan_batches(units, self.batch_size_for(units, document_context))
        total = len(units)
        results: list[UnitResult] = []

        async def analyze_safely(unit: AnalysisUnit, index: int) -> UnitResult:
            try:
                return await analyze(unit, index, total)
            except Exception as e:
                self.logger.log_error_with_context(
                    "Unit analysis failed, using fallback verdict",
                    UnitAnalysisFailed(unit.id, e),
                    unit_id=unit.id,
                    unit_index=index,
                    cause=type(e).__name__,
                )
                return fallback(unit)

        for batch_index, batch in enumerate(batches):
            batch_start = time.time()
            offset = len(results)
            batch_results = await asyncio.gather(
                *[analyze_safely(unit, offset + i) for i, unit in enumerate(batch)]
            )
            results.extend(batch_results)

            self.logger.log_batch(
                batch_index,
                len(batches),
                len(batch),
                (time.time() - batch_start) * 1000,
                fallbacks=sum(1 for result in batch_results if result.is_fallback),
            )

            if on_batch_done is not None:
                await on_batch_done(batch_index, len(batches), len(results))

            if batch_index < len(batches) - 1 and self.cooldown_seconds > 0:
                self.logger.info(f"Cooling down {self.cooldown_seconds}s before next batch")
                await self._sleep(self.cooldown_seconds)

        return results
