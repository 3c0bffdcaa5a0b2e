"""
Bearer token verification against the Supabase auth API.

Sign-in itself happens in the browser; this module only asks Supabase who a
session token belongs to.
"""

import os
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .errors import NetworkError, UpstreamAuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an 'Authorization: Bearer <token>' header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class IdentityVerifier:
    """Resolves a session token to a user via GET {SUPABASE_URL}/auth/v1/user."""

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout_seconds: float = 10,
    ):
        self.supabase_url = (supabase_url or os.environ.get("SUPABASE_URL", "")).rstrip("/")
        self.anon_key = anon_key or os.environ.get("SUPABASE_ANON_KEY", "")
        self.timeout_seconds = timeout_seconds

        if not self.supabase_url:
            logger.warning("SUPABASE_URL not configured. All requests will be rejected.")

    async def verify(self, authorization: Optional[str]) -> Identity:
        """
        Raises:
            UpstreamAuthError: Missing, malformed or rejected token
            NetworkError: Supabase unreachable
        """
        token = bearer_token(authorization)
        if not token or not self.supabase_url:
            raise UpstreamAuthError("Unauthorized")

        headers = {"apikey": self.anon_key, "Authorization": f"Bearer {token}"}
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as http:
                async with http.get(f"{self.supabase_url}/auth/v1/user", headers=headers) as response:
                    if response.status != 200:
                        logger.info(f"Session token rejected: HTTP {response.status}")
                        raise UpstreamAuthError("Unauthorized")
                    user = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Identity check failed: {type(e).__name__}: {e}") from e

        if not user or not user.get("id"):
            raise UpstreamAuthError("Unauthorized")

        return Identity(user_id=str(user["id"]), email=user.get("email"))
