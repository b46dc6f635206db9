"""Tests for the remote backup endpoint client."""

from unittest.mock import AsyncMock

import httpx
import pytest

from twicks.cloud_backup_client import (
    CloudBackupClient,
    CloudBackupConnectionError,
    CloudBackupError,
    CloudBackupTimeoutError,
)

URL = "https://backup.example.com/api/backup"


def _mock_response(status: int = 200, json_data=None) -> httpx.Response:
    return httpx.Response(
        status_code=status,
        json=json_data if json_data is not None else {},
        request=httpx.Request("POST", URL),
    )


class TestSaveBackup:
    @pytest.mark.asyncio
    async def test_posts_payload_and_label(self) -> None:
        client = CloudBackupClient(URL)
        backup = {"id": 7, "created_at": "2026-01-01T00:00:00Z", "label": "manual", "payload": {}}
        client._client.request = AsyncMock(
            return_value=_mock_response(200, {"success": True, "backup": backup})
        )
        result = await client.save_backup({"localStorage": {"k": "v"}})
        assert result["id"] == 7
        call = client._client.request.call_args
        assert call.args == ("POST", URL)
        assert call.kwargs["json"] == {"payload": {"localStorage": {"k": "v"}}, "label": "manual"}

    @pytest.mark.asyncio
    async def test_server_error_carries_message(self) -> None:
        client = CloudBackupClient(URL)
        client._client.request = AsyncMock(
            return_value=_mock_response(500, {"success": False, "error": "db down"})
        )
        with pytest.raises(CloudBackupError, match="db down") as info:
            await client.save_backup({})
        assert info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unsuccessful_body(self) -> None:
        client = CloudBackupClient(URL)
        client._client.request = AsyncMock(return_value=_mock_response(200, {"success": False}))
        with pytest.raises(CloudBackupError):
            await client.save_backup({})

    @pytest.mark.asyncio
    async def test_connect_error(self) -> None:
        client = CloudBackupClient(URL)
        client._client.request = AsyncMock(side_effect=httpx.ConnectError("offline"))
        with pytest.raises(CloudBackupConnectionError):
            await client.save_backup({})

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        client = CloudBackupClient(URL)
        client._client.request = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(CloudBackupTimeoutError):
            await client.save_backup({})

    @pytest.mark.asyncio
    async def test_other_transport_error(self) -> None:
        client = CloudBackupClient(URL)
        client._client.request = AsyncMock(side_effect=httpx.ReadError("reset"))
        with pytest.raises(CloudBackupError, match="reset"):
            await client.fetch_latest()

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        client = CloudBackupClient(URL)
        client._client.request = AsyncMock(return_value=httpx.Response(
            status_code=200, content=b"<html>oops</html>", request=httpx.Request("GET", URL),
        ))
        with pytest.raises(CloudBackupError, match="Unexpected response"):
            await client.fetch_latest()


class TestFetchLatest:
    @pytest.mark.asyncio
    async def test_returns_backup(self) -> None:
        client = CloudBackupClient(URL)
        client._client.request = AsyncMock(return_value=_mock_response(200, {
            "success": True,
            "backup": {"id": 3, "payload": {"localStorage": {}}},
        }))
        backup = await client.fetch_latest()
        assert backup["id"] == 3
        assert client._client.request.call_args.args == ("GET", URL)

    @pytest.mark.asyncio
    async def test_none_when_empty(self) -> None:
        client = CloudBackupClient(URL)
        client._client.request = AsyncMock(
            return_value=_mock_response(200, {"success": False, "backup": None})
        )
        assert await client.fetch_latest() is None
