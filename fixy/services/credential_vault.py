"""Credential vault: encrypted BYOK storage and credential resolution.

Secrets are sealed with AES-256-GCM under a single configured key. The
stored form is `v1:<urlsafe-b64(nonce || ciphertext+tag)>` with a fresh
12-byte nonce per encryption, so sealing the same secret twice yields two
different tokens.

Rotating the key invalidates every stored secret: decryption then raises
CredentialUnavailable and nothing is re-encrypted behind the caller's back.
"""

import base64
import binascii
import os
import uuid

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixy.core.clock import as_utc, utcnow
from fixy.core.exceptions import CredentialUnavailable, NotFoundError, ValidationError
from fixy.db.models import ByokCredential
from fixy.domain.catalog import Provider

logger = structlog.get_logger(__name__)

TOKEN_VERSION = "v1"
NONCE_BYTES = 12


class SecretBox:
    """AES-256-GCM sealing with a hex-encoded 32-byte key."""

    def __init__(self, hex_key: str):
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as exc:
            raise ValueError("encryption_key must be 64 hex characters") from exc
        if len(key) != 32:
            raise ValueError("encryption_key must be 64 hex characters")
        self._aead = AESGCM(key)

    def encrypt(self, secret: str) -> str:
        if not secret:
            raise ValidationError("Secret must not be empty")
        nonce = os.urandom(NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, secret.encode("utf-8"), None)
        encoded = base64.urlsafe_b64encode(nonce + sealed).decode("ascii")
        return f"{TOKEN_VERSION}:{encoded}"

    def decrypt(self, token: str, provider: str = "unknown") -> str:
        """Open a sealed token. Any malformed or tampered token raises CredentialUnavailable."""
        version, _, encoded = (token or "").partition(":")
        if version != TOKEN_VERSION or not encoded:
            raise CredentialUnavailable(provider, "Stored credential has an unrecognized format")

        try:
            raw = base64.urlsafe_b64decode(encoded.encode("ascii"))
        except (binascii.Error, ValueError) as exc:
            raise CredentialUnavailable(provider, "Stored credential is not valid base64") from exc

        if len(raw) <= NONCE_BYTES:
            raise CredentialUnavailable(provider, "Stored credential is truncated")

        try:
            plaintext = self._aead.decrypt(raw[:NONCE_BYTES], raw[NONCE_BYTES:], None)
        except InvalidTag as exc:
            raise CredentialUnavailable(provider, "Stored credential failed authentication") from exc

        secret = plaintext.decode("utf-8")
        if not secret:
            raise CredentialUnavailable(provider, "Stored credential is empty")
        return secret


class CredentialVault:
    """Stores BYOK secrets and resolves the key to use for a provider call.

    Resolution order: the user's active BYOK key, then the platform key
    from configuration, then None.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        box: SecretBox,
        platform_credentials: dict[str, str] | None = None,
    ):
        self.session_factory = session_factory
        self.box = box
        self.platform_credentials = {k: v for k, v in (platform_credentials or {}).items() if v}

    async def _active_record(self, session: AsyncSession, user_id: uuid.UUID, provider: Provider) -> ByokCredential | None:
        result = await session.execute(
            select(ByokCredential).where(
                ByokCredential.user_id == user_id,
                ByokCredential.provider == provider.value,
                ByokCredential.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def resolve_credential(self, user_id: uuid.UUID, provider: Provider) -> str | None:
        """Return the secret for a provider call, or None when nothing is configured.

        Raises:
            CredentialUnavailable: a BYOK record exists but cannot be decrypted
        """
        async with self.session_factory() as session:
            record = await self._active_record(session, user_id, provider)

        if record is not None:
            try:
                return self.box.decrypt(record.api_key_encrypted, provider.value)
            except CredentialUnavailable:
                logger.error(
                    "byok_decrypt_failed",
                    user_id=str(user_id),
                    provider=provider.value,
                    credential_id=str(record.id),
                )
                raise

        return self.platform_credentials.get(provider.value)

    async def has_active_credential(self, user_id: uuid.UUID, provider: Provider) -> bool:
        async with self.session_factory() as session:
            return await self._active_record(session, user_id, provider) is not None

    async def list_credentials(self, user_id: uuid.UUID) -> list[dict]:
        """Active credentials as provider + timestamps. Secrets never leave the vault."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ByokCredential)
                .where(ByokCredential.user_id == user_id, ByokCredential.is_active.is_(True))
                .order_by(ByokCredential.provider)
            )
            records = result.scalars().all()
        return [
            {
                "id": str(record.id),
                "provider": record.provider,
                "created_at": as_utc(record.created_at).isoformat(),
                "updated_at": as_utc(record.updated_at).isoformat(),
            }
            for record in records
        ]

    async def store_credential(self, user_id: uuid.UUID, provider: Provider, secret: str) -> dict:
        """Insert a BYOK key, or supersede the existing one for this provider in place."""
        secret = (secret or "").strip()
        if not secret:
            raise ValidationError("API key is required")
        sealed = self.box.encrypt(secret)

        for _ in range(2):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ByokCredential).where(
                        ByokCredential.user_id == user_id,
                        ByokCredential.provider == provider.value,
                    )
                )
                record = result.scalar_one_or_none()
                created = record is None

                if created:
                    record = ByokCredential(user_id=user_id, provider=provider.value, api_key_encrypted=sealed)
                    session.add(record)
                else:
                    record.api_key_encrypted = sealed
                    record.is_active = True
                    record.updated_at = utcnow()

                try:
                    await session.commit()
                except IntegrityError:
                    # Concurrent first insert for the same provider; retry as an update
                    await session.rollback()
                    continue

                logger.info(
                    "byok_credential_stored",
                    user_id=str(user_id),
                    provider=provider.value,
                    superseded=not created,
                )
                return {
                    "id": str(record.id),
                    "provider": record.provider,
                    "created_at": as_utc(record.created_at).isoformat(),
                    "updated_at": as_utc(record.updated_at).isoformat(),
                }

        raise ValidationError(f"Could not store credential for {provider.value}")

    async def revoke_credential(self, user_id: uuid.UUID, provider: Provider) -> None:
        """Soft-delete the active key for a provider."""
        async with self.session_factory() as session:
            record = await self._active_record(session, user_id, provider)
            if record is None:
                raise NotFoundError("API key not found")
            record.is_active = False
            record.updated_at = utcnow()
            await session.commit()

        logger.info("byok_credential_revoked", user_id=str(user_id), provider=provider.value)
