"""Per-client throttling of credential endpoints."""
from slowapi import Limiter
from slowapi.util import get_remote_address

from linkvault.config import get_settings

settings = get_settings()

# Fixed window per client address, no queueing of excess requests.
limiter = Limiter(
    key_func=get_remote_address,
    strategy="fixed-window",
    storage_uri="memory://",
    enabled=settings.rate_limit_enabled,
)


def login_rate_limit() -> str:
    return get_settings().login_rate_limit
