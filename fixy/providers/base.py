"""Provider-neutral request types and error normalization."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from fixy.core.exceptions import ProviderError

# HTTP statuses worth another attempt: timeout, conflict, rate limit
RETRYABLE_STATUS_CODES = frozenset({408, 409, 429})


@dataclass(frozen=True)
class ChatTurn:
    """One message of conversation context, oldest-first in a list."""

    role: str  # "user" or "assistant"
    content: str
    speaker_name: str = ""


@dataclass(frozen=True)
class CompletionParams:
    temperature: float = 0.7
    max_tokens: int = 1000


def labeled_content(turn: ChatTurn) -> str:
    """Human turns as `Speaker: text`; assistant turns unchanged."""
    if turn.role == "user" and turn.speaker_name:
        return f"{turn.speaker_name}: {turn.content}"
    return turn.content


class ProviderClient(Protocol):
    """One implementation per vendor. Exactly one network call per invocation."""

    provider: str

    async def complete(
        self,
        model_id: str,
        system_prompt: str,
        context: list[ChatTurn],
        params: CompletionParams,
        credential: str,
    ) -> str: ...


def is_retryable_status(status_code: int | None) -> bool:
    if status_code is None:
        return False
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def error_from_status(provider: str, status_code: int | None, message: str) -> ProviderError:
    return ProviderError(provider, message, retryable=is_retryable_status(status_code), status_code=status_code)


def transport_error(provider: str, exc: Exception) -> ProviderError:
    """Connection resets, DNS failures and SDK-level timeouts are retryable."""
    return ProviderError(provider, f"{type(exc).__name__}: {exc}", retryable=True)


def require_text(provider: str, text: str | None) -> str:
    """Empty completions are terminal: retrying the same prompt rarely helps."""
    if not text or not text.strip():
        raise ProviderError(provider, "Empty response", retryable=False)
    return text


TRANSPORT_ERRORS = (httpx.TransportError,)
