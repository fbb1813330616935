"""Credit, BYOK and admin request/response bodies."""

from decimal import Decimal

from pydantic import BaseModel, Field


class CreditAccountResponse(BaseModel):
    used: float
    limit: float
    remaining: float
    reset_date: str


class CreditsResponse(BaseModel):
    plan: str
    credits: CreditAccountResponse
    transactions: list[dict] = Field(default_factory=list)


class StoreByokRequest(BaseModel):
    provider: str
    api_key: str = Field(..., min_length=1)


class ByokCredentialResponse(BaseModel):
    id: str
    provider: str
    created_at: str
    updated_at: str


class ChangePlanRequest(BaseModel):
    plan: str


class TopUpRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = "Credit top-up"


class ResetRunResponse(BaseModel):
    reset_count: int
