"""Provider gateway: dispatch by vendor and bound every call in time."""

import asyncio

import structlog

from fixy.core.exceptions import ProviderError, ProviderTimeoutError
from fixy.domain.catalog import AIModel, Provider
from fixy.providers.anthropic_client import AnthropicProviderClient
from fixy.providers.base import ChatTurn, CompletionParams, ProviderClient
from fixy.providers.google_client import GoogleProviderClient
from fixy.providers.openai_client import OpenAIProviderClient

logger = structlog.get_logger(__name__)


class ProviderGateway:
    """Single entry point for chat completions.

    The gateway makes one attempt per `complete` call; retry policy lives in
    the orchestrator, which knows the reply it is producing.
    """

    def __init__(self, clients: dict[Provider, ProviderClient], timeout_seconds: float = 45.0):
        self.clients = dict(clients)
        self.timeout_seconds = timeout_seconds

    async def complete(
        self,
        model: AIModel,
        system_prompt: str,
        context: list[ChatTurn],
        params: CompletionParams,
        credential: str,
    ) -> str:
        """Return the completion text.

        Raises:
            ProviderTimeoutError: the call exceeded `timeout_seconds` (terminal)
            ProviderError: any other vendor failure, flagged retryable or not
        """
        client = self.clients.get(model.provider)
        if client is None:
            raise ProviderError(model.provider.value, "No client registered for provider")

        try:
            text = await asyncio.wait_for(
                client.complete(model.provider_model_id, system_prompt, context, params, credential),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            logger.warning(
                "provider_call_timed_out",
                provider=model.provider.value,
                model=model.id,
                timeout_seconds=self.timeout_seconds,
            )
            raise ProviderTimeoutError(model.provider.value, self.timeout_seconds) from exc

        logger.debug("provider_call_completed", provider=model.provider.value, model=model.id, chars=len(text))
        return text


def default_clients() -> dict[Provider, ProviderClient]:
    return {
        Provider.OPENAI: OpenAIProviderClient(),
        Provider.ANTHROPIC: AnthropicProviderClient(),
        Provider.GOOGLE: GoogleProviderClient(),
    }
