"""Identity provider admin API client.

Talks to the GoTrue admin endpoints with the service-role key, which is
read from server configuration only.  Missing configuration is reported at
call time, so the app still starts without it.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any

import httpx

from ssgms.config import settings
from ssgms.exceptions import ConfigurationError, IdentityProviderError

logger = logging.getLogger(__name__)

LINK_TYPES = ("invite", "recovery", "magiclink", "signup")


@dataclasses.dataclass(frozen=True)
class GeneratedLink:
    user_id: uuid.UUID
    action_link: str


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


class IdentityAdminClient:
    def __init__(
        self,
        base_url: str | None,
        service_role_key: str | None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        if not self.base_url or not self.service_role_key:
            raise ConfigurationError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY")
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(f"Identity provider unreachable: {exc}")
            raise IdentityProviderError(f"Identity provider unreachable: {exc}")

        if resp.status_code >= 500:
            raise IdentityProviderError(_error_message(resp))
        if resp.status_code >= 400:
            # Provider-side rejections (duplicate user, bad email) are the caller's problem
            raise IdentityProviderError(_error_message(resp), status_code=400)
        return resp

    async def generate_link(
        self,
        link_type: str,
        email: str,
        redirect_to: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> GeneratedLink:
        """Mint a one-time action link.  ``invite`` also creates the account."""
        if link_type not in LINK_TYPES:
            raise ValueError(f"Unsupported link type: {link_type}")

        payload: dict[str, Any] = {"type": link_type, "email": email}
        redirect = (redirect_to or "").strip() or settings.DEFAULT_REDIRECT_URL
        if redirect:
            payload["redirect_to"] = redirect
        if data:
            payload["data"] = data

        resp = await self._request("POST", "/auth/v1/admin/generate_link", json=payload)
        body = resp.json()

        # Older servers nest the link under "properties" and the account under "user"
        action_link = body.get("action_link") or (body.get("properties") or {}).get("action_link")
        user_id = body.get("id") or (body.get("user") or {}).get("id")
        if not action_link or not user_id:
            raise IdentityProviderError("Failed to generate link", status_code=500)
        return GeneratedLink(user_id=uuid.UUID(str(user_id)), action_link=action_link)

    async def delete_user(self, user_id: uuid.UUID) -> None:
        await self._request("DELETE", f"/auth/v1/admin/users/{user_id}")
        logger.info(f"Deleted identity account {user_id}")


def get_identity_admin() -> IdentityAdminClient:
    """FastAPI dependency; overridden with a fake in tests."""
    return IdentityAdminClient(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_ROLE_KEY,
        timeout=settings.IDENTITY_TIMEOUT_SECONDS,
    )
