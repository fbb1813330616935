"""User notifications: credit alerts, resets and top-ups.

Email delivery is owned by an external mailer that drains the Redis outbox
list. Every notification is also mirrored to the user's realtime topic as a
`credit-notice` event so open clients update without polling.
"""

import json
import uuid
from datetime import UTC, datetime
from typing import Protocol

import structlog
from redis.asyncio import Redis

from fixy.realtime.fanout import Fanout

logger = structlog.get_logger(__name__)

EMAIL_OUTBOX_KEY = "fixy:email_outbox"


class TemplateKind:
    CREDIT_THRESHOLD_APPROACHING = "credit_threshold_approaching"
    CREDIT_LIMIT_REACHED = "credit_limit_reached"
    CREDITS_RESET = "credits_reset"
    CREDITS_ADDED = "credits_added"


# kind -> (subject, body). Bodies are str.format templates over the notify params.
TEMPLATES: dict[str, tuple[str, str]] = {
    TemplateKind.CREDIT_THRESHOLD_APPROACHING: (
        "Fixy: You've used {percent}% of your credits",
        "You've used {used} out of {limit} credits. Consider topping up to avoid interruptions.\n"
        "Manage your credits: {frontend_url}/dashboard/credits",
    ),
    TemplateKind.CREDIT_LIMIT_REACHED: (
        "Fixy: You've reached your credit limit",
        "You've used all {limit} credits. Top up now to continue using AI features.\n"
        "Top up credits: {frontend_url}/dashboard/credits",
    ),
    TemplateKind.CREDITS_RESET: (
        "Fixy: Your credits have been reset",
        "Your monthly credits have been reset. You now have {limit} credits available.\n"
        "Visit your dashboard: {frontend_url}/dashboard",
    ),
    TemplateKind.CREDITS_ADDED: (
        "Fixy: Credits added to your account",
        "{amount} credits have been added to your account. Your new limit is {limit}.\n"
        "Visit your dashboard: {frontend_url}/dashboard",
    ),
}


class Notifier(Protocol):
    async def notify(self, user_id: uuid.UUID, template_kind: str, params: dict) -> None: ...


def render(template_kind: str, params: dict) -> tuple[str, str]:
    """Render (subject, body) for a template kind. Unknown kinds raise KeyError."""
    subject, body = TEMPLATES[template_kind]
    return subject.format(**params), body.format(**params)


class RedisOutboxNotifier:
    """Queues rendered emails on a Redis list and mirrors them to realtime.

    Never raises: a failed notification is logged and dropped.
    """

    def __init__(self, redis: Redis, fanout: Fanout, frontend_url: str = "http://localhost:3000"):
        self.redis = redis
        self.fanout = fanout
        self.frontend_url = frontend_url.rstrip("/")

    async def notify(self, user_id: uuid.UUID, template_kind: str, params: dict) -> None:
        try:
            subject, body = render(template_kind, {"frontend_url": self.frontend_url, **params})
            entry = {
                "id": uuid.uuid4().hex,
                "user_id": str(user_id),
                "to": params.get("email"),
                "template": template_kind,
                "subject": subject,
                "body": body,
                "params": params,
                "queued_at": datetime.now(UTC).isoformat(),
            }
            await self.redis.rpush(EMAIL_OUTBOX_KEY, json.dumps(entry, default=str))
        except Exception as exc:
            logger.warning(
                "notification_enqueue_failed",
                user_id=str(user_id),
                template=template_kind,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return

        public_params = {k: v for k, v in params.items() if k != "email"}
        await self.fanout.credit_notice(user_id, template_kind, public_params)
        logger.info("notification_queued", user_id=str(user_id), template=template_kind)
