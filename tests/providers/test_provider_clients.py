"""Tests for vendor request shapes and error classification."""

from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest
from google.genai import errors as genai_errors

from fixy.core.exceptions import ProviderError
from fixy.providers import anthropic_client, google_client, openai_client
from fixy.providers.anthropic_client import AnthropicProviderClient
from fixy.providers.base import ChatTurn, CompletionParams, is_retryable_status
from fixy.providers.google_client import GoogleProviderClient
from fixy.providers.openai_client import OpenAIProviderClient

pytestmark = pytest.mark.unit

CONTEXT = [
    ChatTurn(role="assistant", content="Welcome!", speaker_name="Helper"),
    ChatTurn(role="user", content="Hi", speaker_name="Alice"),
    ChatTurn(role="assistant", content="Hello Alice", speaker_name="Helper"),
    ChatTurn(role="user", content="Plan my week", speaker_name="Alice"),
]
PARAMS = CompletionParams(temperature=0.3, max_tokens=256)


def _status_error(cls, status: int, url: str):
    request = httpx.Request("POST", url)
    response = httpx.Response(status_code=status, text="error", request=request)
    return cls(message=f"status {status}", response=response, body=None)


@pytest.mark.parametrize("status,expected", [(429, True), (408, True), (500, True), (529, True), (400, False), (401, False), (None, False)])
def test_retryable_status(status, expected):
    assert is_retryable_status(status) is expected


class TestOpenAI:
    def _client(self, create):
        sdk = MagicMock()
        sdk.chat.completions.create = create
        sdk.close = AsyncMock()
        factory = MagicMock(return_value=sdk)
        return OpenAIProviderClient(client_factory=factory), factory

    def test_system_prompt_leads(self):
        messages = openai_client.build_messages("Be brief", CONTEXT)

        assert messages[0] == {"role": "system", "content": "Be brief"}
        assert [m["role"] for m in messages[1:]] == ["assistant", "user", "assistant", "user"]

    def test_no_system_message_without_prompt(self):
        assert openai_client.build_messages("", CONTEXT[1:2]) == [{"role": "user", "content": "Hi", "name": "Alice"}]

    def test_speaker_names_are_sent(self):
        messages = openai_client.build_messages("", CONTEXT)

        assert [m["name"] for m in messages] == ["Helper", "Alice", "Helper", "Alice"]

    def test_speaker_name_is_sanitized(self):
        turn = ChatTurn(role="user", content="Hi", speaker_name="Ana María O'Neil")

        (message,) = openai_client.build_messages("", [turn])

        assert message["name"] == "Ana_Mar_a_O_Neil"

    def test_unnamed_turn_has_no_name(self):
        (message,) = openai_client.build_messages("", [ChatTurn(role="user", content="Hi")])

        assert "name" not in message

    @pytest.mark.asyncio
    async def test_complete_sends_one_attempt_with_key(self):
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content="Done"))]
        client, factory = self._client(AsyncMock(return_value=response))

        text = await client.complete("gpt-4o", "Be brief", CONTEXT, PARAMS, "sk-test")

        assert text == "Done"
        factory.assert_called_once_with(api_key="sk-test", max_retries=0)
        kwargs = factory.return_value.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 256
        factory.return_value.close.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [(429, True), (503, True), (401, False), (400, False)])
    async def test_status_errors_are_classified(self, status, retryable):
        err = _status_error(openai.APIStatusError, status, "https://api.openai.com/v1/chat/completions")
        client, factory = self._client(AsyncMock(side_effect=err))

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("gpt-4o", "", CONTEXT, PARAMS, "sk-test")

        assert exc_info.value.retryable is retryable
        assert exc_info.value.provider_status == status
        factory.return_value.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self):
        err = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com"))
        client, _ = self._client(AsyncMock(side_effect=err))

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("gpt-4o", "", CONTEXT, PARAMS, "sk-test")

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_empty_completion_is_terminal(self):
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content="   "))]
        client, _ = self._client(AsyncMock(return_value=response))

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("gpt-4o", "", CONTEXT, PARAMS, "sk-test")

        assert exc_info.value.retryable is False


class TestAnthropic:
    def _client(self, create):
        sdk = MagicMock()
        sdk.messages.create = create
        sdk.close = AsyncMock()
        factory = MagicMock(return_value=sdk)
        return AnthropicProviderClient(client_factory=factory), factory

    def test_leading_assistant_turns_are_dropped(self):
        messages = anthropic_client.build_messages(CONTEXT)

        assert messages[0] == {"role": "user", "content": "Alice: Hi"}
        assert len(messages) == 3

    def test_human_turns_carry_speaker_prefix(self):
        messages = anthropic_client.build_messages(CONTEXT)

        assert [m["content"] for m in messages] == ["Alice: Hi", "Hello Alice", "Alice: Plan my week"]

    @pytest.mark.asyncio
    async def test_system_is_top_level_field(self):
        response = MagicMock()
        response.content = [MagicMock(type="text", text="Sure. "), MagicMock(type="tool_use"), MagicMock(type="text", text="Done")]
        client, factory = self._client(AsyncMock(return_value=response))

        text = await client.complete("claude-3-opus-20240229", "Be brief", CONTEXT, PARAMS, "sk-ant")

        assert text == "Sure. Done"
        kwargs = factory.return_value.messages.create.await_args.kwargs
        assert kwargs["system"] == "Be brief"
        assert all(m["role"] != "system" for m in kwargs["messages"])
        assert kwargs["max_tokens"] == 256

    @pytest.mark.asyncio
    async def test_system_omitted_when_empty(self):
        response = MagicMock()
        response.content = [MagicMock(type="text", text="ok")]
        client, factory = self._client(AsyncMock(return_value=response))

        await client.complete("claude-3-haiku-20240307", "", CONTEXT, PARAMS, "sk-ant")

        assert "system" not in factory.return_value.messages.create.await_args.kwargs

    @pytest.mark.asyncio
    async def test_no_user_turn_is_terminal(self):
        client, factory = self._client(AsyncMock())

        with pytest.raises(ProviderError):
            await client.complete("claude-3-haiku-20240307", "", CONTEXT[:1], PARAMS, "sk-ant")
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_overloaded_is_retryable(self):
        err = _status_error(anthropic.APIStatusError, 529, "https://api.anthropic.com/v1/messages")
        client, factory = self._client(AsyncMock(side_effect=err))

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("claude-3-haiku-20240307", "", CONTEXT, PARAMS, "sk-ant")

        assert exc_info.value.retryable is True
        factory.return_value.close.assert_awaited_once()


class TestGoogle:
    def _client(self, generate):
        sdk = MagicMock()
        sdk.aio.models.generate_content = generate
        sdk.aio.aclose = AsyncMock()
        factory = MagicMock(return_value=sdk)
        return GoogleProviderClient(client_factory=factory), factory

    def test_contents_use_user_and_model_roles(self):
        contents = google_client.build_contents("Be brief", CONTEXT)

        assert [c.role for c in contents] == ["user", "model", "user", "model", "user"]
        assert contents[0].parts[0].text == "Be brief"
        assert [c.parts[0].text for c in contents[1:]] == ["Welcome!", "Alice: Hi", "Hello Alice", "Alice: Plan my week"]

    @pytest.mark.asyncio
    async def test_generation_config(self):
        client, factory = self._client(AsyncMock(return_value=MagicMock(text="Gemini says hi")))

        text = await client.complete("gemini-pro", "", CONTEXT, PARAMS, "g-key")

        assert text == "Gemini says hi"
        factory.assert_called_once_with(api_key="g-key")
        config = factory.return_value.aio.models.generate_content.await_args.kwargs["config"]
        assert config.temperature == 0.3
        assert config.max_output_tokens == 256
        factory.return_value.aio.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_client_closed_after_error(self):
        client, factory = self._client(AsyncMock(side_effect=httpx.ConnectError("reset")))

        with pytest.raises(ProviderError):
            await client.complete("gemini-pro", "", CONTEXT, PARAMS, "g-key")

        factory.return_value.aio.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,retryable", [(429, True), (500, True), (403, False)])
    async def test_api_errors_are_classified(self, code, retryable):
        err = genai_errors.APIError(code, {"error": {"message": "boom", "status": "ERR"}})
        client, _ = self._client(AsyncMock(side_effect=err))

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("gemini-pro", "", CONTEXT, PARAMS, "g-key")

        assert exc_info.value.retryable is retryable

    @pytest.mark.asyncio
    async def test_transport_error_is_retryable(self):
        client, _ = self._client(AsyncMock(side_effect=httpx.ConnectError("reset")))

        with pytest.raises(ProviderError) as exc_info:
            await client.complete("gemini-pro", "", CONTEXT, PARAMS, "g-key")

        assert exc_info.value.retryable is True
