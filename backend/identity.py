"""
Student Progress Engine - Identity Providers
Resolve the authenticated user id for a request. The engine never
authenticates anyone itself; it trusts whatever the provider returns.
"""

from typing import Mapping, Optional

import httpx

from config import IdentityConfig, get_identity_config
from logger import get_logger

log = get_logger("identity")


class IdentityUnavailable(Exception):
    """The identity service could not be reached or answered nonsense."""


class IdentityProvider:
    """Base provider: headers in, opaque user id (or None) out."""

    async def resolve(self, headers: Mapping[str, str]) -> Optional[str]:
        raise NotImplementedError


class HeaderIdentityProvider(IdentityProvider):
    """User id set by a trusted gateway in front of the service."""

    def __init__(self, header_name: str = "X-User-Id"):
        self.header_name = header_name

    async def resolve(self, headers: Mapping[str, str]) -> Optional[str]:
        user_id = (headers.get(self.header_name) or "").strip()
        return user_id or None


class RemoteIdentityProvider(IdentityProvider):
    """Bearer token exchanged for a user id at an external userinfo endpoint."""

    def __init__(
        self,
        verify_url: str,
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.verify_url = verify_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def resolve(self, headers: Mapping[str, str]) -> Optional[str]:
        auth = headers.get("Authorization") or ""
        if not auth.lower().startswith("bearer "):
            return None

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout_seconds) as client:
                resp = await client.get(self.verify_url, headers={"Authorization": auth})
        except httpx.HTTPError as e:
            log.error(f"Identity lookup failed: {e}")
            raise IdentityUnavailable(str(e)) from e

        if resp.status_code in (401, 403):
            return None
        if resp.status_code != 200:
            raise IdentityUnavailable(f"identity service returned {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise IdentityUnavailable("identity service returned invalid JSON") from e
        if not isinstance(body, dict):
            raise IdentityUnavailable("identity service returned an unexpected payload")

        user_id = body.get("user_id")
        return str(user_id) if user_id else None


def get_identity_provider(config: Optional[IdentityConfig] = None) -> IdentityProvider:
    """Provider selected by IDENTITY_PROVIDER."""
    config = config or get_identity_config()
    if config.provider == "remote":
        return RemoteIdentityProvider(config.verify_url, config.timeout_seconds)
    return HeaderIdentityProvider(config.header_name)
