"""
Direct API Client for the Managed Backend (Supabase)

This module provides a small async HTTP client for the two Supabase services
the application relies on:
- GoTrue (``/auth/v1``) for sign up, sign in, sign out and token introspection
- PostgREST (``/rest/v1``) for row CRUD on the application tables

Key Features:
    - Direct HTTP requests using aiohttp, no generated SDK
    - Equality filters, ordering, limits and ``gte`` range filters
    - Insert / upsert / update / delete returning the affected rows
    - Consistent error mapping to SupabaseError / AuthError

The table schema is owned by the Supabase project, not by this repository.
"""
import aiohttp
import asyncio
import logging
from typing import Optional, List, Dict, Any
from .config import settings

logger = logging.getLogger(__name__)


class SupabaseError(Exception):
    """Raised when the managed backend rejects a request or cannot be reached."""

    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.message = message
        self.status = status


class AuthError(SupabaseError):
    """Raised when a token or a set of credentials is rejected."""

    def __init__(self, message: str = "Invalid authorization", status: int = 401):
        super().__init__(message, status)


def _encode_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def _content_range_total(content_range: Optional[str]) -> int:
    # PostgREST: "0-24/3573", or "*/3573" when no rows are returned
    total = (content_range or "").rsplit("/", 1)[-1]
    if not total.isdigit():
        raise SupabaseError(f"Invalid Content-Range header: {content_range}", status=502)
    return int(total)


def _error_message(data: Any, fallback: str) -> str:
    if isinstance(data, dict):
        for key in ("msg", "message", "error_description", "error"):
            if data.get(key):
                return str(data[key])
    return fallback


class SupabaseClient:
    """
    Async client for Supabase auth and REST endpoints.

    Table calls are made with the service role key; auth calls use the anon
    key plus the user's access token where one is required.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        service_role_key: str,
        timeout: float = 15.0
    ):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_role_key)

    def _rest_headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _auth_headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        key = self.anon_key or self.service_role_key
        return {
            "apikey": key,
            "Authorization": f"Bearer {access_token or key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        exact_count: bool = False
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        With ``exact_count`` the total row count from ``Content-Range`` is
        returned instead of the body.
        """
        if not self.configured:
            raise SupabaseError("Supabase not configured", status=503)

        endpoint = f"{self.url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    method,
                    endpoint,
                    headers=headers,
                    params=params,
                    json=json
                ) as response:
                    if response.status == 204:
                        return None
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = {"message": await response.text()}

                    if response.status >= 400:
                        message = _error_message(data, f"Supabase error {response.status}")
                        logger.error(f"❌ SUPABASE {method} {path} failed: {response.status} {message}")
                        if path.startswith("/auth/") and response.status in (400, 401, 403, 422):
                            raise AuthError(message, status=response.status)
                        raise SupabaseError(f"Database error: {message}", status=response.status)
                    if exact_count:
                        return _content_range_total(response.headers.get("Content-Range"))
                    return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"❌ SUPABASE {method} {path} unreachable: {str(e)}")
            raise SupabaseError(f"Supabase request failed: {str(e)}", status=502)

    # ------------------------------------------------------------------
    # Auth (GoTrue)
    # ------------------------------------------------------------------

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """
        Resolve an access token to the Supabase user it belongs to.

        Raises:
            AuthError: If the token is missing, expired or invalid
        """
        if not access_token:
            raise AuthError("No authorization header")
        user = await self._request("GET", "/auth/v1/user", headers=self._auth_headers(access_token))
        if not user or not user.get("id"):
            raise AuthError("Invalid authorization")
        return user

    async def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"email": email, "password": password}
        if full_name:
            payload["data"] = {"full_name": full_name}
        return await self._request("POST", "/auth/v1/signup", headers=self._auth_headers(), json=payload)

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/auth/v1/token",
            headers=self._auth_headers(),
            params={"grant_type": "password"},
            json={"email": email, "password": password}
        )

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/auth/v1/logout", headers=self._auth_headers(access_token))

    # ------------------------------------------------------------------
    # Tables (PostgREST)
    # ------------------------------------------------------------------

    @staticmethod
    def _filter_params(
        filters: Optional[Dict[str, Any]] = None,
        gte: Optional[Dict[str, Any]] = None
    ) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for column, value in (filters or {}).items():
            params[column] = _encode_value(value)
        for column, value in (gte or {}).items():
            params[column] = f"gte.{value}"
        return params

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        gte: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        params = self._filter_params(filters, gte)
        params["select"] = columns
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        rows = await self._request("GET", f"/rest/v1/{table}", headers=self._rest_headers(), params=params)
        return rows or []

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, filters, limit=1)
        return rows[0] if rows else None

    async def count(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        gte: Optional[Dict[str, Any]] = None
    ) -> int:
        """Number of matching rows, counted server side (no rows are transferred)."""
        params = self._filter_params(filters, gte)
        params["select"] = "*"
        params["limit"] = "0"
        return await self._request(
            "GET",
            f"/rest/v1/{table}",
            headers=self._rest_headers("count=exact"),
            params=params,
            exact_count=True
        )

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self._request(
            "POST",
            f"/rest/v1/{table}",
            headers=self._rest_headers("return=representation"),
            json=row
        )
        return rows[0] if rows else {}

    async def upsert(self, table: str, row: Dict[str, Any], on_conflict: str) -> Dict[str, Any]:
        rows = await self._request(
            "POST",
            f"/rest/v1/{table}",
            headers=self._rest_headers("resolution=merge-duplicates,return=representation"),
            params={"on_conflict": on_conflict},
            json=row
        )
        return rows[0] if rows else {}

    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        rows = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            headers=self._rest_headers("return=representation"),
            params=self._filter_params(filters),
            json=values
        )
        return rows or []

    async def delete(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = await self._request(
            "DELETE",
            f"/rest/v1/{table}",
            headers=self._rest_headers("return=representation"),
            params=self._filter_params(filters)
        )
        return rows or []


# Global client instance
supabase_client = SupabaseClient(
    url=settings.supabase_url,
    anon_key=settings.supabase_anon_key,
    service_role_key=settings.supabase_service_role_key
)
