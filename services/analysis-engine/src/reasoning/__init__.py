"""Reasoning service access."""

from .client import (
    FileAttachment,
    LangChainReasoningService,
    ReasoningService,
    get_chat_model,
    invoke_chat_model,
)
from .json_output import extract_json, parse_model

__all__ = [
    "ReasoningService",
    "LangChainReasoningService",
    "FileAttachment",
    "get_chat_model",
    "invoke_chat_model",
    "extract_json",
    "parse_model",
]
