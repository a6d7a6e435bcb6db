import logging
from typing import Any, Dict, List, Optional

import httpx

from config.settings import settings

from .errors import AppError, NotFoundError

logger = logging.getLogger(__name__)


class SupabaseClient:
    """
    Minimal client for the auth/database backend's REST API.

    Requests carry the caller's access token when one is given, so the
    backend's row-level policies decide what the caller may read or change.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else (settings.SUPABASE_KEY or "")
        self.access_token = access_token
        self._transport = transport
        self._timeout = timeout

    def with_token(self, access_token: str) -> "SupabaseClient":
        return SupabaseClient(
            self.base_url, self.api_key, access_token, transport=self._transport, timeout=self._timeout
        )

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                return await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("[Supabase] %s %s failed: %s", method, path, e)
            raise AppError(f"Backend unavailable: {e}", status_code=502) from e

    @staticmethod
    def _raise_for_error(r: httpx.Response) -> None:
        if r.is_success:
            return
        try:
            message = r.json().get("message") or r.text
        except ValueError:
            message = r.text
        logger.error("[Supabase] %s %s -> %s: %s", r.request.method, r.request.url.path, r.status_code, message)
        raise AppError(message or f"Backend error {r.status_code}", status_code=400)

    async def get_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        """Resolve an access token to its user, or None if the token is not valid."""
        r = await self._request("GET", "/auth/v1/user", headers=self._headers(access_token))
        if r.status_code in (401, 403):
            return None
        self._raise_for_error(r)
        return r.json()

    async def select_one(self, table: str, row_id: str, columns: str = "*") -> Dict[str, Any]:
        r = await self._request(
            "GET",
            f"/rest/v1/{table}",
            params={"id": f"eq.{row_id}", "select": columns},
            headers=self._headers(),
        )
        self._raise_for_error(r)
        rows: List[Dict[str, Any]] = r.json()
        if not rows:
            raise NotFoundError(f"No {table} row with id {row_id}")
        return rows[0]

    async def update(self, table: str, row_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        r = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params={"id": f"eq.{row_id}"},
            json=values,
            headers={**self._headers(), "Prefer": "return=representation"},
        )
        self._raise_for_error(r)
        rows = r.json()
        if not rows:
            raise NotFoundError(f"No {table} row with id {row_id}")
        return rows[0]

    async def insert(self, table: str, values: Dict[str, Any], columns: str = "*") -> Dict[str, Any]:
        r = await self._request(
            "POST",
            f"/rest/v1/{table}",
            params={"select": columns},
            json=values,
            headers={**self._headers(), "Prefer": "return=representation"},
        )
        self._raise_for_error(r)
        rows = r.json()
        if not rows:
            raise AppError(f"Insert into {table} returned no data", status_code=500)
        return rows[0]
