"""Owner email lookup against the hosted auth admin API."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from juristmind.config import settings
from juristmind.errors import LookupFailure

logger = logging.getLogger(__name__)


@runtime_checkable
class UserDirectory(Protocol):
    """Resolves a user id to an email address."""

    async def get_email(self, user_id: str) -> str:
        """Return the user's email. Raises LookupFailure if unknown."""
        ...


class SupabaseUserDirectory:
    """Looks users up via ``GET /auth/v1/admin/users/{id}`` (service role)."""

    def __init__(
        self,
        base_url: str | None = None,
        service_role_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or settings.supabase_url).rstrip("/")
        self._key = service_role_key or settings.supabase_service_role_key
        self._http = http_client

    def _headers(self) -> dict[str, str]:
        return {"apikey": self._key, "Authorization": f"Bearer {self._key}"}

    async def get_email(self, user_id: str) -> str:
        if not self._base_url or not self._key:
            msg = "User lookup not configured: SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY missing"
            raise LookupFailure(msg)

        url = f"{self._base_url}/auth/v1/admin/users/{user_id}"
        try:
            if self._http is not None:
                resp = await self._http.get(url, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=20) as client:
                    resp = await client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            msg = f"User lookup failed for {user_id}: {exc}"
            raise LookupFailure(msg) from exc

        if resp.status_code == 404:
            msg = f"User not found: {user_id}"
            raise LookupFailure(msg)
        if not resp.is_success:
            msg = f"User lookup failed for {user_id}: HTTP {resp.status_code}"
            raise LookupFailure(msg)

        try:
            data = resp.json()
        except ValueError as exc:
            msg = f"User lookup failed for {user_id}: unreadable response body"
            raise LookupFailure(msg) from exc
        # Older API versions wrap the record in {"user": {...}}
        user = data.get("user", data) if isinstance(data, dict) else {}
        email = user.get("email") if isinstance(user, dict) else None
        if not email:
            msg = f"User {user_id} has no email address"
            raise LookupFailure(msg)
        return email
