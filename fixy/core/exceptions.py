class FixyError(Exception):
    """Base exception for the Fixy backend."""

    status_code = 500


class ValidationError(FixyError):
    """Raised for malformed input. Never retried."""

    status_code = 400


class AccessDenied(FixyError):
    """Raised when the caller may not touch the target resource."""

    status_code = 403


class NotFoundError(FixyError):
    """Raised when a chatroom, agent, user, model or reply does not exist."""

    status_code = 404


class EntitlementDenied(FixyError):
    """Raised when plan, BYOK holdings or credits do not permit a model call.

    User-facing and expected; callers must not log it as an incident.
    """

    status_code = 403

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or f"Model use denied: {reason}")

    @property
    def upgrade_required(self) -> bool:
        return self.reason in ("requires_elite_plan", "credit_limit_reached")

    @property
    def byok_required(self) -> bool:
        return self.reason in ("requires_byok", "credential_unavailable")


class CredentialUnavailable(EntitlementDenied):
    """Raised when a stored credential cannot be decrypted or used.

    Surfaces to the user like an entitlement denial, but is logged as a
    possible configuration problem (corrupt record or rotated key).
    """

    def __init__(self, provider: str, message: str | None = None):
        self.provider = provider
        super().__init__("credential_unavailable", message or f"Credential for {provider} is unavailable")


class ProviderError(FixyError):
    """Raised when an external chat-completion call fails."""

    def __init__(self, provider: str, message: str, retryable: bool = False, status_code: int | None = None):
        self.provider = provider
        self.retryable = retryable
        self.raw_message = message
        self.provider_status = status_code
        super().__init__(f"{provider} error: {message}")


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds the configured timeout."""

    def __init__(self, provider: str, timeout: float):
        self.timeout = timeout
        super().__init__(provider, f"timed out after {timeout:g}s", retryable=False)


class LedgerError(FixyError):
    """Raised when a credit debit cannot be recorded.

    Never blocks message delivery: handled as a billing reconciliation concern.
    """


class StorageError(FixyError):
    """Raised when a persistence operation fails."""
