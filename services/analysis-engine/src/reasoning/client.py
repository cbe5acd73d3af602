"""
Reasoning service client.

The engine talks to the language model only through ``ReasoningService``:
a system prompt, a user prompt, optionally an attached file and a tool
configuration, and a text answer back. ``LangChainReasoningService`` is the
production implementation on top of LangChain chat models.
"""

import asyncio
import base64
import time
from functools import lru_cache
from typing import Any, Literal, Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

from shared.config.settings import get_settings
from shared.utils.logger import get_logger

logger = get_logger(__name__)

Provider = Literal["anthropic", "openai"]


class FileAttachment(BaseModel):
    """A document handed to the reasoning service alongside the prompt."""

    filename: str
    content_type: str
    data: bytes


class ReasoningService(Protocol):
    """Completion capability consumed by the engine."""

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        file_attachment: FileAttachment | None = None,
        tool_config: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> str:
        ...


def _anthropic_model(api_key: str, **kwargs) -> BaseChatModel:
    from langchain_anthropic import ChatAnthropic

    return ChatAnthropic(api_key=api_key, **kwargs)


def _openai_model(api_key: str, **kwargs) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(api_key=api_key, **kwargs)


_MODEL_FACTORIES = {
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY", _anthropic_model),
    "openai": ("openai_api_key", "OPENAI_API_KEY", _openai_model),
}


@lru_cache(maxsize=4)
def get_chat_model(
    provider: Provider | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> BaseChatModel:
    """
    Build (and cache) the chat model for a provider.

    Unset arguments fall back to the LLM_* settings.

    Raises:
        ValueError: for an unknown provider or a missing API key
    """
    settings = get_settings()
    provider = provider or settings.llm_provider
    if provider not in _MODEL_FACTORIES:
        raise ValueError(f"Unsupported LLM provider: {provider}")

    key_field, key_env, factory = _MODEL_FACTORIES[provider]
    api_key = getattr(settings, key_field)
    if not api_key:
        raise ValueError(f"{key_env} not set in environment")

    model = model or settings.llm_model
    logger.info(f"Initializing chat model: {provider}/{model}")
    return factory(
        api_key,
        model=model,
        temperature=temperature if temperature is not None else settings.llm_temperature,
        max_tokens=max_tokens or settings.llm_max_tokens,
        timeout=settings.llm_timeout_seconds,
    )


def response_text(response: Any) -> str:
    """Flatten a chat model response into plain text."""
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


def _prompt_length(messages: list[BaseMessage]) -> int:
    return sum(len(m.content) if isinstance(m.content, str) else len(str(m.content)) for m in messages)


async def invoke_chat_model(llm, messages: list[BaseMessage]) -> Any:
    """
    Call a chat model, async first.

    Some environments break the async HTTP stack (DNS resolution inside the
    event loop); the sync client is then tried once in a worker thread.
    """
    start_time = time.time()
    model_name = str(getattr(llm, "model_name", None) or getattr(llm, "model", "unknown"))
    provider = "anthropic" if "claude" in model_name.lower() else "openai"

    try:
        response = await llm.ainvoke(messages)
    except Exception as async_error:
        logger.warning(
            f"Async LLM call failed, retrying with sync client: {async_error}",
            extra={"llm_model": model_name},
        )
        try:
            response = await asyncio.to_thread(llm.invoke, messages)
        except Exception as sync_error:
            logger.log_error_with_context(
                "LLM call failed (async and sync)",
                sync_error,
                llm_provider=provider,
                llm_model=model_name,
                duration_ms=(time.time() - start_time) * 1000,
            )
            raise

    usage = getattr(response, "usage_metadata", None) or {}
    logger.log_llm_call(
        model=model_name,
        provider=provider,
        duration_ms=(time.time() - start_time) * 1000,
        tokens_used=usage.get("total_tokens", 0),
        input_length=_prompt_length(messages),
        output_length=len(response_text(response)),
    )
    return response


class LangChainReasoningService:
    """
    ReasoningService backed by a LangChain chat model.

    JSON mode maps to OpenAI's ``response_format`` when the provider supports
    it; otherwise the prompt alone asks for JSON and callers extract it
    defensively. Tool configurations (e.g. ``file_search``) are bound to the
    model per call.
    """

    def __init__(self, llm=None, provider: str | None = None):
        settings = get_settings()
        self.provider = provider or settings.llm_provider
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_chat_model(provider=self.provider)
        return self._llm

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        file_attachment: FileAttachment | None = None,
        tool_config: dict[str, Any] | None = None,
        json_mode: bool = False,
    ) -> str:
        llm = self.llm
        if tool_config:
            llm = llm.bind_tools([tool_config])
        elif json_mode and self.provider == "openai":
            llm = llm.bind(response_format={"type": "json_object"})

        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=self._user_content(user_prompt, file_attachment)),
        ]
        response = await invoke_chat_model(llm, messages)
        return response_text(response)

    @staticmethod
    def _user_content(user_prompt: str, attachment: FileAttachment | None):
        if attachment is None:
            return user_prompt

        if attachment.content_type.startswith("text/"):
            attached_text = attachment.data.decode("utf-8", errors="replace")
            return [
                {"type": "text", "text": f"Attached document ({attachment.filename}):\n{attached_text}"},
                {"type": "text", "text": user_prompt},
            ]

        return [
            {
                "type": "file",
                "source_type": "base64",
                "mime_type": attachment.content_type,
                "data": base64.b64encode(attachment.data).decode("ascii"),
                "filename": attachment.filename,
            },
            {"type": "text", "text": user_prompt},
        ]
