"""Per-unit token cost estimation for batch sizing."""

import math

from shared.config import get_settings
from shared.models import AnalysisUnit, DocumentContext
from shared.utils import TokenBudgetEstimationFailed, get_logger

from chunking import TiktokenTokenizer, Tokenizer

from .prompts import document_context_block


class TokenBudgetEstimator:
    """
    Estimates the tokens one unit analysis consumes.

    The estimate covers the unit content, the system prompt, the serialized
    document context, the query-generation call, the compliance call and the
    expected response, multiplied by a safety buffer.
    """

    def __init__(
        self,
        tokenizer: Tokenizer | None = None,
        system_prompt_overhead: int | None = None,
        query_generation_overhead: int | None = None,
        compliance_call_overhead: int | None = None,
        response_estimate: int | None = None,
        buffer: float | None = None,
        logger=None,
    ):
        settings = get_settings()
        self.logger = logger or get_logger(__name__)
        self._tokenizer = tokenizer
        self._model_tokenizers: dict[str, Tokenizer] = {}
        self.encoding_name = settings.tokenizer_encoding
        self.system_prompt_overhead = (
            system_prompt_overhead
            if system_prompt_overhead is not None
            else settings.token_overhead_system_prompt
        )
        self.query_generation_overhead = (
            query_generation_overhead
            if query_generation_overhead is not None
            else settings.token_overhead_query_generation
        )
        self.compliance_call_overhead = (
            compliance_call_overhead
            if compliance_call_overhead is not None
            else settings.token_overhead_compliance_call
        )
        self.response_estimate = (
            response_estimate if response_estimate is not None else settings.token_estimate_response
        )
        self.buffer = buffer if buffer is not None else settings.token_estimate_buffer

    def tokenizer_for(self, model: str | None) -> Tokenizer:
        if self._tokenizer is not None:
            return self._tokenizer
        key = model or ""
        if key not in self._model_tokenizers:
            self._model_tokenizers[key] = TiktokenTokenizer(
                model=model, encoding_name=self.encoding_name, logger=self.logger
            )
        return self._model_tokenizers[key]

    def estimate_unit_tokens(
        self,
        sample_unit: AnalysisUnit,
        document_context: DocumentContext | None = None,
        model: str | None = None,
    ) -> int:
        """
        Estimate tokens for analyzing one unit.

        Raises:
            TokenBudgetEstimationFailed: if token counting fails
        """
        try:
            tokenizer = self.tokenizer_for(model)
            content_tokens = tokenizer.count(sample_unit.content)
            context_tokens = 0
            if document_context is not None:
                context_tokens = tokenizer.count(
                    document_context_block(
                        document_context.document_type,
                        document_context.business_domain,
                        document_context.key_terms,
                    )
                )
        except Exception as e:
            raise TokenBudgetEstimationFailed(
                f"Could not count tokens for unit {sample_unit.id}: {e}"
            ) from e

        total = (
            content_tokens
            + self.system_prompt_overhead
            + context_tokens
            + self.query_generation_overhead
            + self.compliance_call_overhead
            + self.response_estimate
        )
        return math.ceil(total * self.buffer)
