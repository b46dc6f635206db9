"""Async HTTP client for the append-only remote backup endpoint.

The endpoint keeps one row per backup:

- ``POST {payload, label}`` -> ``{success, backup: {id, created_at, label, payload}}``
- ``GET`` -> newest row in the same shape, or ``{success: false, backup: null}``
"""

from __future__ import annotations

from typing import Any

import httpx

from twicks.errors import ExternalServiceError


class CloudBackupError(ExternalServiceError):
    """Base exception for remote backup operations."""


class CloudBackupConnectionError(CloudBackupError):
    """Network/DNS failure (retryable)."""


class CloudBackupTimeoutError(CloudBackupError):
    """Request timeout (retryable)."""


class CloudBackupClient:
    """Client for a single backup endpoint URL (no auth, CORS-open)."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=5.0, read=30.0, write=30.0, pool=5.0),
        )

    @property
    def url(self) -> str:
        return self._url

    async def _request(self, method: str, json_data: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self._client.request(method, self._url, json=json_data)
        except httpx.ConnectError as exc:
            raise CloudBackupConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise CloudBackupTimeoutError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise CloudBackupError(f"Cloud backup request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None
        if response.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise CloudBackupError(message or response.text, status_code=response.status_code)
        if not isinstance(body, dict):
            raise CloudBackupError("Unexpected response from backup endpoint.")
        return body

    async def save_backup(self, payload: Any, label: str = "manual") -> dict[str, Any]:
        """Insert a backup row. Returns the stored ``backup`` object."""
        body = await self._request("POST", {"payload": payload, "label": label})
        backup = body.get("backup")
        if not body.get("success") or not isinstance(backup, dict):
            raise CloudBackupError(f"Cloud backup failed: {body}")
        return backup

    async def fetch_latest(self) -> dict[str, Any] | None:
        """Return the newest backup row, or None when none exist."""
        body = await self._request("GET")
        backup = body.get("backup")
        if not body.get("success") or not isinstance(backup, dict):
            return None
        return backup

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> CloudBackupClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
