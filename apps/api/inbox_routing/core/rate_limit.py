"""Rate limiting configuration for the routing API."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from inbox_routing.core.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
)


def webhook_limit() -> str:
    return f"{settings.RATE_LIMIT_WEBHOOK}/minute"


def webhook_limit_disabled() -> bool:
    return settings.RATE_LIMIT_WEBHOOK <= 0
