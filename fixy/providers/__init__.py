"""Chat-completion clients for OpenAI, Anthropic and Google behind one gateway."""

from fixy.providers.base import ChatTurn, CompletionParams, ProviderClient
from fixy.providers.gateway import ProviderGateway, default_clients

__all__ = [
    "ChatTurn",
    "CompletionParams",
    "ProviderClient",
    "ProviderGateway",
    "default_clients",
]
