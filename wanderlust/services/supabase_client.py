"""Supabase client: PostgREST, Auth, Storage and Edge Functions over HTTP."""

from typing import Any

import httpx

from wanderlust.models.auth import AuthSession, AuthUser
from wanderlust.utils.logger import get_logger, mask_sensitive

logger = get_logger(__name__)

# Filter operators understood by PostgREST, passed as (op, value) tuples
FILTER_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "is")


# =============================================================================
# Exceptions
# =============================================================================


class SupabaseError(Exception):
    """Base exception for backend errors. The message is the backend's own."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class SupabaseAuthError(SupabaseError):
    """Missing, expired or rejected credentials."""

    pass


class SupabaseNotFoundError(SupabaseError):
    """Requested row or object does not exist."""

    pass


class SupabaseNetworkError(SupabaseError):
    """Transport failure before any response was received."""

    pass


# =============================================================================
# Supabase Client
# =============================================================================


class SupabaseClient:
    """
    Async client for the hosted backend.

    Usage:
        async with SupabaseClient(url, anon_key) as client:
            rows = await client.select("trip_schedules", filters={"id": schedule_id})
            url = await client.invoke_function("create-checkout-session", json=body)
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: int = 30,
    ):
        """
        Initialize client.

        Args:
            url: Project URL (e.g., https://xyz.supabase.co)
            anon_key: Public anon API key
            timeout: Request timeout in seconds
        """
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.access_token: str | None = None
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SupabaseClient":
        self._client = httpx.AsyncClient(
            base_url=self.url,
            timeout=self.timeout,
            headers=self._auth_headers(),
        )
        logger.debug("supabase_client_opened", url=self.url, key=mask_sensitive(self.anon_key))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get HTTP client, raise if not initialized."""
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with SupabaseClient(...)' context.")
        return self._client

    def _auth_headers(self) -> dict[str, str]:
        bearer = self.access_token or self.anon_key
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {bearer}",
        }

    def set_session(self, access_token: str | None) -> None:
        """Use a user's access token (or the anon key when None) for later requests."""
        self.access_token = access_token
        if self._client is not None:
            self._client.headers.update(self._auth_headers())

    # =========================================================================
    # Request helpers
    # =========================================================================

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("supabase_request_failed", method=method, path=path, error=str(e))
            raise SupabaseNetworkError(str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            self._raise_for_error(response)
        return response

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        try:
            data = response.json()
        except ValueError:
            data = None

        message = None
        if isinstance(data, dict):
            message = (
                data.get("message")
                or data.get("msg")
                or data.get("error_description")
                or data.get("error")
            )
        if not message:
            message = response.text or f"HTTP {response.status_code}"

        status = response.status_code
        logger.warning("supabase_error_response", status=status, message=message)

        if status in (401, 403):
            raise SupabaseAuthError(message, status_code=status, response=data)
        if status == 404:
            raise SupabaseNotFoundError(message, status_code=status, response=data)
        raise SupabaseError(message, status_code=status, response=data)

    @staticmethod
    def _filter_params(filters: dict[str, Any] | None) -> dict[str, str]:
        """Translate {"col": value} / {"col": ("gt", value)} into PostgREST params."""
        params: dict[str, str] = {}
        for column, value in (filters or {}).items():
            if isinstance(value, tuple):
                op, operand = value
                if op not in FILTER_OPERATORS:
                    raise ValueError(f"Unsupported filter operator: {op}")
            else:
                op, operand = "eq", value
            if isinstance(operand, bool):
                operand = str(operand).lower()
            elif operand is None:
                operand = "null"
            params[column] = f"{op}.{operand}"
        return params

    # =========================================================================
    # Auth
    # =========================================================================

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password, and use the new session.

        Raises:
            SupabaseAuthError: If credentials are rejected
        """
        logger.info("auth_sign_in_attempt", email=email)
        try:
            response = await self._request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        except SupabaseAuthError:
            raise
        except SupabaseError as e:
            # Auth returns 400 for invalid credentials
            if e.status_code == 400:
                raise SupabaseAuthError(str(e), status_code=400, response=e.response) from e
            raise

        session = AuthSession.model_validate(response.json())
        self.set_session(session.access_token)
        logger.info("auth_sign_in_success", user_id=session.user.id)
        return session

    async def sign_up(self, email: str, password: str) -> AuthUser:
        response = await self._request(
            "POST", "/auth/v1/signup", json={"email": email, "password": password}
        )
        data = response.json()
        return AuthUser.model_validate(data.get("user", data))

    async def get_user(self) -> AuthUser | None:
        """Return the user of the current session, or None when signed out."""
        if not self.access_token:
            return None
        try:
            response = await self._request("GET", "/auth/v1/user")
        except SupabaseAuthError:
            return None
        return AuthUser.model_validate(response.json())

    async def sign_out(self) -> None:
        if self.access_token:
            try:
                await self._request("POST", "/auth/v1/logout")
            finally:
                self.set_session(None)
        logger.info("auth_signed_out")

    # =========================================================================
    # PostgREST
    # =========================================================================

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict]:
        """Select rows with equality/operator filters, ordering and limit."""
        params = {"select": "".join(columns.split()), **self._filter_params(filters)}
        if order:
            params["order"] = f"{order}.{'asc' if ascending else 'desc'}"
        if limit is not None:
            params["limit"] = str(limit)

        logger.debug("supabase_select", table=table, params=params)
        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        data = response.json()
        return data if isinstance(data, list) else [data]

    async def select_one(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> dict | None:
        """Single row or None. More than one matching row is an error."""
        rows = await self.select(
            table,
            columns=columns,
            filters=filters,
            order=order,
            ascending=ascending,
            limit=limit if limit is not None else 2,
        )
        if not rows:
            return None
        if len(rows) > 1:
            raise SupabaseError(
                f"JSON object requested, multiple ({len(rows)}) rows returned from {table}"
            )
        return rows[0]

    async def insert(
        self,
        table: str,
        rows: dict | list[dict],
        on_conflict: str | None = None,
    ) -> list[dict]:
        """Insert rows and return them. With on_conflict, merge into an existing row."""
        headers = {"Prefer": "return=representation"}
        params = {}
        if on_conflict:
            headers["Prefer"] = "resolution=merge-duplicates,return=representation"
            params["on_conflict"] = on_conflict

        logger.debug("supabase_insert", table=table, upsert=bool(on_conflict))
        response = await self._request(
            "POST", f"/rest/v1/{table}", json=rows, headers=headers, params=params
        )
        return response.json()

    async def update(self, table: str, values: dict, filters: dict[str, Any]) -> list[dict]:
        if not filters:
            raise ValueError("update requires at least one filter")
        response = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            json=values,
            params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return response.json()

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        if not filters:
            raise ValueError("delete requires at least one filter")
        await self._request("DELETE", f"/rest/v1/{table}", params=self._filter_params(filters))

    # =========================================================================
    # Edge Functions
    # =========================================================================

    async def invoke_function(
        self,
        name: str,
        json: Any = None,
        data: dict[str, str] | None = None,
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> Any:
        """Invoke an edge function with a JSON body or a multipart form."""
        logger.info("function_invoke", function=name)
        if files is not None or data is not None:
            response = await self._request(
                "POST", f"/functions/v1/{name}", data=data, files=files
            )
        else:
            response = await self._request("POST", f"/functions/v1/{name}", json=json or {})

        if not response.content:
            return None
        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()
        return response.text

    # =========================================================================
    # Storage
    # =========================================================================

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Upload an object and return its key."""
        logger.info("storage_upload", bucket=bucket, path=path, size=len(content))
        await self._request(
            "POST",
            f"/storage/v1/object/{bucket}/{path}",
            content=content,
            headers={"Content-Type": content_type},
        )
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{bucket}/{path}"
