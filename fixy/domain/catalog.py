"""Model catalog: the static registry of AI models agents can be bound to.

Changing the catalog is a deploy-time operation. Nothing here does I/O.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from fixy.core.exceptions import NotFoundError, ValidationError


class Provider(StrEnum):
    """External chat-completion vendors."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


def parse_provider(value: str) -> Provider:
    """Accept `openai`, `OpenAI`, `ANTHROPIC`... Raises ValidationError otherwise."""
    try:
        return Provider(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(p.value for p in Provider)
        raise ValidationError(f"Invalid provider '{value}'. Must be one of: {allowed}") from None


@dataclass(frozen=True)
class AIModel:
    id: str
    display_name: str
    provider: Provider
    provider_model_id: str  # identifier sent on the wire
    credit_cost: Decimal
    requires_elite: bool = False
    requires_byok: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "provider": self.provider.value,
            "credit_cost": float(self.credit_cost),
            "requires_elite": self.requires_elite,
            "requires_byok": self.requires_byok,
        }


MODELS: tuple[AIModel, ...] = (
    AIModel(
        id="gpt-4o",
        display_name="GPT-4o",
        provider=Provider.OPENAI,
        provider_model_id="gpt-4o",
        credit_cost=Decimal("2"),
    ),
    AIModel(
        id="gpt-4-turbo",
        display_name="GPT-4 Turbo",
        provider=Provider.OPENAI,
        provider_model_id="gpt-4-turbo",
        credit_cost=Decimal("1"),
    ),
    AIModel(
        id="gpt-3.5-turbo",
        display_name="GPT-3.5 Turbo",
        provider=Provider.OPENAI,
        provider_model_id="gpt-3.5-turbo",
        credit_cost=Decimal("0.2"),
    ),
    AIModel(
        id="claude-3-opus",
        display_name="Claude 3 Opus",
        provider=Provider.ANTHROPIC,
        provider_model_id="claude-3-opus-20240229",
        credit_cost=Decimal("3"),
        requires_elite=True,
        requires_byok=True,
    ),
    AIModel(
        id="claude-3-sonnet",
        display_name="Claude 3 Sonnet",
        provider=Provider.ANTHROPIC,
        provider_model_id="claude-3-sonnet-20240229",
        credit_cost=Decimal("1.5"),
        requires_elite=True,
        requires_byok=True,
    ),
    AIModel(
        id="claude-3-haiku",
        display_name="Claude 3 Haiku",
        provider=Provider.ANTHROPIC,
        provider_model_id="claude-3-haiku-20240307",
        credit_cost=Decimal("0.5"),
        requires_byok=True,
    ),
    AIModel(
        id="gemini-pro",
        display_name="Gemini Pro",
        provider=Provider.GOOGLE,
        provider_model_id="gemini-pro",
        credit_cost=Decimal("0.5"),
        requires_byok=True,
    ),
    AIModel(
        id="gemini-ultra",
        display_name="Gemini Ultra",
        provider=Provider.GOOGLE,
        provider_model_id="gemini-ultra",
        credit_cost=Decimal("2"),
        requires_elite=True,
        requires_byok=True,
    ),
)

_BY_ID: dict[str, AIModel] = {model.id: model for model in MODELS}


def list_models() -> list[AIModel]:
    return list(MODELS)


def find_model(model_id: str) -> AIModel | None:
    return _BY_ID.get(model_id)


def get_model(model_id: str) -> AIModel:
    model = _BY_ID.get(model_id)
    if model is None:
        raise NotFoundError(f"Model not found: {model_id}")
    return model
