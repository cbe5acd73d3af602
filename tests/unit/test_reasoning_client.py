"""
Unit Tests for the Reasoning Service Client and JSON Extraction
"""

from unittest.mock import AsyncMock, Mock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

from shared.utils import ResponseParseError

from reasoning import FileAttachment, LangChainReasoningService, extract_json, parse_model
from reasoning.client import response_text


class TestExtractJson:
    """Tests for defensive JSON extraction."""

    def test_bare_json(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        assert extract_json('Here you go:\n```json\n{"a": [1, 2]}\n```\nDone.') == {"a": [1, 2]}

    def test_json_in_prose(self):
        assert extract_json('The answer is {"isCompliant": false} as requested.') == {"isCompliant": False}

    def test_array(self):
        assert extract_json("[1, 2, 3]") == [1, 2, 3]

    def test_skips_unbalanced_brace(self):
        assert extract_json('Note {not json} then {"ok": true}') == {"ok": True}

    @pytest.mark.parametrize("raw", ["", "   ", "no json here", "{broken"])
    def test_no_json_raises(self, raw):
        with pytest.raises(ResponseParseError) as exc_info:
            extract_json(raw)
        assert exc_info.value.raw == raw

    def test_parse_model(self):
        class Payload(BaseModel):
            value: int

        assert parse_model('{"value": 3}', Payload).value == 3
        with pytest.raises(ResponseParseError):
            parse_model('{"value": "three"}', Payload)


class TestResponseText:
    """Tests for flattening chat model responses."""

    def test_string_content(self):
        assert response_text(AIMessage(content="hello")) == "hello"

    def test_block_content(self):
        message = AIMessage(content=[{"type": "text", "text": "a"}, {"type": "tool_use", "id": "x"}, "b"])
        assert response_text(message) == "ab"


class TestLangChainReasoningService:
    """Tests for LangChainReasoningService with a mocked chat model."""

    @pytest.fixture
    def llm(self):
        llm = Mock()
        llm.model_name = "gpt-4o"
        llm.ainvoke = AsyncMock(return_value=AIMessage(content='{"ok": true}'))
        return llm

    async def test_invoke_sends_system_and_user_messages(self, llm):
        service = LangChainReasoningService(llm=llm, provider="anthropic")

        text = await service.invoke("system", "user")

        assert text == '{"ok": true}'
        messages = llm.ainvoke.await_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "user"

    async def test_json_mode_binds_response_format_for_openai(self, llm):
        bound = Mock()
        bound.model_name = "gpt-4o"
        bound.ainvoke = AsyncMock(return_value=AIMessage(content="{}"))
        llm.bind.return_value = bound
        service = LangChainReasoningService(llm=llm, provider="openai")

        await service.invoke("system", "user", json_mode=True)

        llm.bind.assert_called_once_with(response_format={"type": "json_object"})
        bound.ainvoke.assert_awaited_once()

    async def test_tool_config_is_bound(self, llm):
        bound = Mock()
        bound.model_name = "gpt-4o"
        bound.ainvoke = AsyncMock(return_value=AIMessage(content="{}"))
        llm.bind_tools.return_value = bound
        tool = {"type": "file_search", "vector_store_ids": ["vs_1"]}
        service = LangChainReasoningService(llm=llm, provider="openai")

        await service.invoke("system", "user", tool_config=tool, json_mode=True)

        llm.bind_tools.assert_called_once_with([tool])
        llm.bind.assert_not_called()

    async def test_text_attachment_is_inlined(self, llm):
        service = LangChainReasoningService(llm=llm, provider="anthropic")
        attachment = FileAttachment(filename="vertrag.txt", content_type="text/plain", data="Inhalt".encode())

        await service.invoke("system", "user", file_attachment=attachment)

        content = llm.ainvoke.await_args.args[0][1].content
        assert content[0]["type"] == "text"
        assert "Inhalt" in content[0]["text"]
        assert content[1] == {"type": "text", "text": "user"}

    async def test_binary_attachment_is_a_file_block(self, llm):
        service = LangChainReasoningService(llm=llm, provider="anthropic")
        attachment = FileAttachment(filename="vertrag.pdf", content_type="application/pdf", data=b"%PDF-1.7")

        await service.invoke("system", "user", file_attachment=attachment)

        block = llm.ainvoke.await_args.args[0][1].content[0]
        assert block["type"] == "file"
        assert block["mime_type"] == "application/pdf"
        assert block["filename"] == "vertrag.pdf"

    async def test_sync_fallback_after_async_failure(self, llm):
        llm.ainvoke.side_effect = OSError("async DNS failure")
        llm.invoke = Mock(return_value=AIMessage(content="sync answer"))
        service = LangChainReasoningService(llm=llm, provider="anthropic")

        assert await service.invoke("system", "user") == "sync answer"
        llm.invoke.assert_called_once()

    async def test_total_failure_propagates(self, llm):
        llm.ainvoke.side_effect = OSError("down")
        llm.invoke = Mock(side_effect=OSError("still down"))
        service = LangChainReasoningService(llm=llm, provider="anthropic")

        with pytest.raises(OSError):
            await service.invoke("system", "user")
