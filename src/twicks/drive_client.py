"""Async HTTP client for the Google Drive v3 API (backup files)."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from twicks.constants import MANUAL_BACKUP_PREFIX, TOKEN_WAIT_CEILING_SECS
from twicks.errors import ExternalServiceError

logger = logging.getLogger(__name__)

_API_BASE = "https://www.googleapis.com"
_TOKEN_URL = "https://oauth2.googleapis.com/token"
_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
_JSON_MIME = "application/json"


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class DriveError(ExternalServiceError):
    """Base exception for Drive operations."""


class DriveAuthError(DriveError):
    """401/403, or no usable access token."""


class DriveNotFoundError(DriveError):
    """404: file not found."""


class DriveServerError(DriveError):
    """5xx: server-side error (retryable)."""


class DriveConnectionError(DriveError):
    """Network/DNS failure (retryable)."""


class DriveTimeoutError(DriveError):
    """Request or token acquisition timed out."""


_STATUS_MAP: dict[int, type[DriveError]] = {
    401: DriveAuthError,
    403: DriveAuthError,
    404: DriveNotFoundError,
}


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    body = response.text
    exc_cls = _STATUS_MAP.get(response.status_code)
    if exc_cls is not None:
        raise exc_cls(body, status_code=response.status_code)
    if response.status_code >= 500:
        raise DriveServerError(body, status_code=response.status_code)
    raise DriveError(body, status_code=response.status_code)


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


class DriveTokenProvider:
    """Holds the Drive access token and refreshes it when allowed to.

    A token passed in directly is used as-is. Without one, a refresh-token
    grant is exchanged at the OAuth endpoint; the whole exchange must finish
    within ``timeout_secs`` or ``DriveTimeoutError`` is raised. The consent
    flow that produces the refresh token happens elsewhere.
    """

    def __init__(
        self,
        access_token: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        timeout_secs: float = TOKEN_WAIT_CEILING_SECS,
    ) -> None:
        self._access_token = access_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._timeout = timeout_secs
        self._client = httpx.AsyncClient()

    @property
    def is_signed_in(self) -> bool:
        return bool(self._access_token)

    @property
    def can_refresh(self) -> bool:
        return bool(self._client_id and self._refresh_token)

    async def ensure_token(self, force: bool = False) -> str:
        """Return a usable access token, refreshing when missing or forced."""
        if self._access_token and not force:
            return self._access_token
        if not self.can_refresh:
            raise DriveAuthError("Not signed in to Google Drive.")
        try:
            self._access_token = await asyncio.wait_for(self._refresh(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise DriveTimeoutError("Timed out requesting Google token.") from exc
        return self._access_token

    async def _refresh(self) -> str:
        data = {
            "client_id": self._client_id or "",
            "refresh_token": self._refresh_token or "",
            "grant_type": "refresh_token",
        }
        if self._client_secret:
            data["client_secret"] = self._client_secret
        try:
            response = await self._client.post(_TOKEN_URL, data=data)
        except httpx.ConnectError as exc:
            raise DriveConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise DriveTimeoutError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise DriveError(f"Google sign-in failed: {exc}") from exc
        if response.status_code >= 400:
            raise DriveAuthError(
                f"Google sign-in failed: {response.text}", status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise DriveAuthError("Google sign-in failed: response is not JSON.") from exc
        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise DriveAuthError("Google sign-in failed: no access token in response.")
        return token

    async def sign_out(self) -> None:
        """Revoke the current token (best effort) and forget it."""
        token, self._access_token = self._access_token, None
        if not token:
            return
        try:
            await self._client.post(_REVOKE_URL, params={"token": token})
        except httpx.HTTPError:
            logger.warning("Token revocation failed; token dropped locally.")

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class DriveClient:
    """Async client for the Drive v3 files API.

    Uploads are a metadata create (``POST /drive/v3/files``) followed by a
    media upload (``PATCH /upload/drive/v3/files/{id}?uploadType=media``).
    """

    def __init__(self, tokens: DriveTokenProvider) -> None:
        self._tokens = tokens
        self._client = httpx.AsyncClient(
            base_url=_API_BASE,
            timeout=httpx.Timeout(connect=5.0, read=30.0, write=30.0, pool=5.0),
        )

    @property
    def tokens(self) -> DriveTokenProvider:
        return self._tokens

    @property
    def is_signed_in(self) -> bool:
        return self._tokens.is_signed_in

    # -- internal request dispatcher -----------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        content: bytes | None = None,
        content_type: str | None = None,
    ) -> Any:
        """Send an authorized request and map errors to the Drive hierarchy.

        A 401 with a refreshable grant refreshes the token and retries once.
        """
        response = await self._send(method, endpoint, params, json_data, content, content_type)
        if response.status_code == 401 and self._tokens.can_refresh:
            logger.info("Drive token rejected; refreshing and retrying %s %s.", method, endpoint)
            await self._tokens.ensure_token(force=True)
            response = await self._send(method, endpoint, params, json_data, content, content_type)

        _raise_for_status(response)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise DriveError(f"Drive request failed: response is not JSON ({endpoint}).") from exc

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None,
        json_data: Any,
        content: bytes | None,
        content_type: str | None,
    ) -> httpx.Response:
        token = await self._tokens.ensure_token()
        headers = {"Authorization": f"Bearer {token}"}
        if content_type:
            headers["Content-Type"] = content_type
        try:
            return await self._client.request(
                method, endpoint, params=params, json=json_data, content=content, headers=headers,
            )
        except httpx.ConnectError as exc:
            raise DriveConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise DriveTimeoutError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise DriveError(f"Drive request failed: {exc}") from exc

    # -- public API methods ---------------------------------------------------

    async def find_file(self, filename: str) -> dict[str, Any] | None:
        """Return ``{id, name}`` of the first non-trashed file named ``filename``."""
        escaped = filename.replace("'", "\\'")
        data = await self._request(
            "GET",
            "/drive/v3/files",
            params={
                "q": f"name='{escaped}' and trashed=false",
                "pageSize": "1",
                "fields": "files(id,name)",
            },
        )
        files = data.get("files") or []
        return files[0] if files else None

    async def list_backups(
        self, prefix: str = MANUAL_BACKUP_PREFIX, page_size: int = 20,
    ) -> list[dict[str, Any]]:
        """JSON backup files whose name contains ``prefix``, newest first."""
        query = " and ".join([
            f"mimeType='{_JSON_MIME}'",
            "trashed=false",
            f"name contains '{prefix}'",
        ])
        data = await self._request(
            "GET",
            "/drive/v3/files",
            params={
                "q": query,
                "orderBy": "modifiedTime desc",
                "pageSize": str(page_size),
                "fields": "files(id,name,modifiedTime,size)",
            },
        )
        return data.get("files") or []

    async def download_json(self, file_id: str) -> Any:
        """GET /drive/v3/files/{id}?alt=media: parsed file content."""
        return await self._request("GET", f"/drive/v3/files/{file_id}", params={"alt": "media"})

    async def _upload_media(self, file_id: str, payload: Any) -> dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/upload/drive/v3/files/{file_id}",
            params={"uploadType": "media"},
            content=json.dumps(payload).encode("utf-8"),
            content_type=_JSON_MIME,
        )

    async def create_json(self, filename: str, payload: Any) -> dict[str, Any]:
        """Create a new JSON file named ``filename`` holding ``payload``."""
        created = await self._request(
            "POST",
            "/drive/v3/files",
            json_data={"name": filename, "mimeType": _JSON_MIME},
        )
        file_id = created.get("id")
        if not file_id:
            raise DriveError("Drive upload failed: no file id returned.")
        return await self._upload_media(file_id, payload)

    async def upsert_json(self, filename: str, payload: Any) -> dict[str, Any]:
        """Overwrite the file named ``filename``, creating it if missing."""
        existing = await self.find_file(filename)
        if existing:
            return await self._upload_media(existing["id"], payload)
        return await self.create_json(filename, payload)

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP clients."""
        await self._client.aclose()
        await self._tokens.close()

    async def __aenter__(self) -> DriveClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
