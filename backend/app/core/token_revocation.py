"""
Token Revocation using Redis.

Logged-out tokens are blacklisted until they would have expired anyway.
"""

import logging
import backend.app.core.redis_client as redis_module
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Args:
        token: The JWT token string to revoke
        user_id: User ID who owns the token

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        ttl_seconds = settings.access_token_expire_minutes * 60
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        await redis_module.redis_client.set(key, str(user_id), ex=ttl_seconds)
        return True
    except Exception as exc:
        logger.error("Error revoking token for user %s: %s", user_id, exc)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    Redis being unreachable is treated as "not revoked" so that an outage
    does not lock every member out.
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        exists = await redis_module.redis_client.exists(key)
        return exists > 0
    except Exception as exc:
        logger.warning("Error checking token revocation: %s", exc)
        return False
