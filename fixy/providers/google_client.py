"""Google Gemini via the google-genai SDK."""

from collections.abc import Callable

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from fixy.providers.base import (
    TRANSPORT_ERRORS,
    ChatTurn,
    CompletionParams,
    error_from_status,
    labeled_content,
    require_text,
    transport_error,
)


def build_contents(system_prompt: str, context: list[ChatTurn]) -> list[types.Content]:
    """`user`/`model` turns. The system prompt rides in a synthetic leading user turn."""
    contents = []
    if system_prompt:
        contents.append(types.Content(role="user", parts=[types.Part(text=system_prompt)]))
    for turn in context:
        role = "model" if turn.role == "assistant" else "user"
        contents.append(types.Content(role=role, parts=[types.Part(text=labeled_content(turn))]))
    return contents


class GoogleProviderClient:
    provider = "google"

    def __init__(self, client_factory: Callable[..., genai.Client] = genai.Client):
        self.client_factory = client_factory

    async def complete(
        self,
        model_id: str,
        system_prompt: str,
        context: list[ChatTurn],
        params: CompletionParams,
        credential: str,
    ) -> str:
        client = self.client_factory(api_key=credential)
        try:
            response = await client.aio.models.generate_content(
                model=model_id,
                contents=build_contents(system_prompt, context),
                config=types.GenerateContentConfig(
                    temperature=params.temperature,
                    max_output_tokens=params.max_tokens,
                ),
            )
        except genai_errors.APIError as exc:
            raise error_from_status(self.provider, exc.code, exc.message or str(exc)) from exc
        except TRANSPORT_ERRORS as exc:
            raise transport_error(self.provider, exc) from exc
        finally:
            await client.aio.aclose()

        return require_text(self.provider, response.text)
