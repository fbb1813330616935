"""OpenAI chat completions."""

import re
from collections.abc import Callable

import openai

from fixy.core.exceptions import ProviderError
from fixy.providers.base import (
    TRANSPORT_ERRORS,
    ChatTurn,
    CompletionParams,
    error_from_status,
    require_text,
    transport_error,
)

# The API only accepts these characters in a message `name`
_NAME_INVALID = re.compile(r"[^A-Za-z0-9_-]+")


def participant_name(speaker_name: str) -> str:
    return _NAME_INVALID.sub("_", speaker_name.strip()).strip("_")[:64]


def build_messages(system_prompt: str, context: list[ChatTurn]) -> list[dict]:
    """Role-labeled list with the system prompt as the leading message."""
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    for turn in context:
        message = {"role": turn.role, "content": turn.content}
        name = participant_name(turn.speaker_name)
        if name:
            message["name"] = name
        messages.append(message)
    return messages


class OpenAIProviderClient:
    provider = "openai"

    def __init__(self, client_factory: Callable[..., openai.AsyncOpenAI] = openai.AsyncOpenAI):
        self.client_factory = client_factory

    async def complete(
        self,
        model_id: str,
        system_prompt: str,
        context: list[ChatTurn],
        params: CompletionParams,
        credential: str,
    ) -> str:
        # Retries belong to the orchestrator, so the SDK makes exactly one attempt
        client = self.client_factory(api_key=credential, max_retries=0)
        try:
            response = await client.chat.completions.create(
                model=model_id,
                messages=build_messages(system_prompt, context),
                temperature=params.temperature,
                max_tokens=params.max_tokens,
            )
        except openai.APIStatusError as exc:
            raise error_from_status(self.provider, exc.status_code, exc.message) from exc
        except openai.APIConnectionError as exc:
            raise transport_error(self.provider, exc) from exc
        except TRANSPORT_ERRORS as exc:
            raise transport_error(self.provider, exc) from exc
        finally:
            await client.close()

        if not response.choices:
            raise ProviderError(self.provider, "Response contained no choices")
        return require_text(self.provider, response.choices[0].message.content)
