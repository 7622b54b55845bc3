"""Shared rate limiter instance for use across route files."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from pedidolist.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

# Default limit for the local API, e.g. "120/60 seconds"
DEFAULT_LIMIT = f"{settings.rate_limit_requests}/{settings.rate_limit_window} seconds"
