"""Admin API key authentication.

Only the administrative surface (cache and governor maintenance) is
protected; artifact reads are public and governed by rate limits instead.
Keys come from the comma-separated ``APP_ADMIN_API_KEYS`` setting.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Header

from skycache.core.config import settings
from skycache.core.errors import AuthenticationAppError
from skycache.core.logging import short_hash

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key3 "))
        ['key1', 'key2', 'key3']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()
    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str | None) -> None:
    """Check ``provided_key`` against the configured admin keys.

    Args:
        provided_key: Value of the X-API-Key header, if any.

    Raises:
        AuthenticationAppError: If the key is missing, unknown, or no keys
            are configured while authentication is required.
    """
    if not settings.app.admin_api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.admin_api_keys)
    if not valid_keys:
        logger.error(
            "auth.failed",
            extra={"reason": "admin_api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="admin_api_keys_not_configured",
            message="Admin authentication is enabled but no admin keys are configured",
            details={
                "hint": "Set APP_ADMIN_API_KEYS or disable with APP_ADMIN_API_KEY_REQUIRED=false"
            },
        )

    if not provided_key:
        logger.warning("auth.failed", extra={"reason": "missing_api_key"})
        raise AuthenticationAppError(
            code="missing_api_key",
            message="Missing API key. Provide X-API-Key header.",
        )

    if not any(hmac.compare_digest(provided_key, key) for key in valid_keys):
        logger.warning(
            "auth.failed",
            extra={"reason": "invalid_api_key", "api_key_hash": short_hash(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_admin_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding admin routes.

    Usage:
        router = APIRouter(dependencies=[Depends(verify_admin_api_key)])

    Raises:
        AuthenticationAppError: Rendered as HTTP 403 by the exception handlers.
    """
    validate_api_key(x_api_key)
    if x_api_key:
        logger.info("auth.success", extra={"api_key_hash": short_hash(x_api_key)})
