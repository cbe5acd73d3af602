"""
Token counting.

Token counts drive clause-level chunk sizes, the re-segmentation ceiling and
the batch token budget, so every consumer takes a ``Tokenizer`` and the
tiktoken-backed one is only the default.
"""

import math
from typing import Protocol

from shared.utils import get_logger


class Tokenizer(Protocol):
    """Anything that can count language-model tokens in a string."""

    def count(self, text: str) -> int:
        ...


class CharEstimateTokenizer:
    """Character-based estimate used when no real encoding is available."""

    def __init__(self, chars_per_token: int = 4):
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)


class TiktokenTokenizer:
    """
    tiktoken-backed tokenizer.

    The encoding is resolved from the model name when tiktoken knows the
    model, otherwise from ``encoding_name``. If the encoding cannot be loaded
    at all the tokenizer falls back to character-based estimation.
    """

    def __init__(
        self,
        model: str | None = None,
        encoding_name: str = "cl100k_base",
        logger=None,
    ):
        self.model = model
        self.encoding_name = encoding_name
        self.logger = logger or get_logger(__name__)
        self._encoding = None
        self._fallback: CharEstimateTokenizer | None = None

    def _load(self):
        import tiktoken

        if self.model:
            try:
                return tiktoken.encoding_for_model(self.model)
            except KeyError:
                self.logger.debug(
                    f"No tiktoken encoding registered for {self.model}, using {self.encoding_name}"
                )
        return tiktoken.get_encoding(self.encoding_name)

    def count(self, text: str) -> int:
        if self._fallback is not None:
            return self._fallback.count(text)

        if self._encoding is None:
            try:
                self._encoding = self._load()
                self.logger.info(f"Loaded tiktoken encoding: {self._encoding.name}")
            except Exception as e:
                self.logger.warning(f"Failed to load tiktoken encoding {self.encoding_name}: {e}")
                self.logger.warning("Falling back to character-based estimation")
                self._fallback = CharEstimateTokenizer()
                return self._fallback.count(text)

        return len(self._encoding.encode(text, disallowed_special=()))
