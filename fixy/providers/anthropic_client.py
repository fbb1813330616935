"""Anthropic messages API."""

from collections.abc import Callable

import anthropic

from fixy.core.exceptions import ProviderError
from fixy.providers.base import (
    TRANSPORT_ERRORS,
    ChatTurn,
    CompletionParams,
    error_from_status,
    labeled_content,
    require_text,
    transport_error,
)


def build_messages(context: list[ChatTurn]) -> list[dict]:
    """user/assistant list; the API requires the first turn to come from the user."""
    turns = list(context)
    while turns and turns[0].role != "user":
        turns.pop(0)
    return [{"role": turn.role, "content": labeled_content(turn)} for turn in turns]


class AnthropicProviderClient:
    provider = "anthropic"

    def __init__(self, client_factory: Callable[..., anthropic.AsyncAnthropic] = anthropic.AsyncAnthropic):
        self.client_factory = client_factory

    async def complete(
        self,
        model_id: str,
        system_prompt: str,
        context: list[ChatTurn],
        params: CompletionParams,
        credential: str,
    ) -> str:
        messages = build_messages(context)
        if not messages:
            raise ProviderError(self.provider, "Conversation has no user turn")

        request = {
            "model": model_id,
            "messages": messages,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
        }
        if system_prompt:
            request["system"] = system_prompt

        client = self.client_factory(api_key=credential, max_retries=0)
        try:
            response = await client.messages.create(**request)
        except anthropic.APIStatusError as exc:
            raise error_from_status(self.provider, exc.status_code, exc.message) from exc
        except anthropic.APIConnectionError as exc:
            raise transport_error(self.provider, exc) from exc
        except TRANSPORT_ERRORS as exc:
            raise transport_error(self.provider, exc) from exc
        finally:
            await client.close()

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        return require_text(self.provider, text)
