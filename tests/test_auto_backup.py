"""Tests for AutoBackup: dirty tracking, skip rules, debounce and shutdown."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from twicks.auto_backup import AutoBackup
from twicks.drive_client import DriveAuthError
from twicks.storage import KeyValueStore
from twicks.stores import JsonFileStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_drive(signed_in: bool = True, fail: Exception | None = None):
    """Create a mock DriveClient with a token provider and upsert_json."""
    drive = MagicMock()
    drive.tokens.is_signed_in = signed_in
    drive.tokens.can_refresh = False
    if fail is not None:
        drive.upsert_json = AsyncMock(side_effect=fail)
    else:
        drive.upsert_json = AsyncMock(return_value={"id": "auto-file"})
    return drive


@pytest.fixture
def store(tmp_path) -> KeyValueStore:
    return KeyValueStore([JsonFileStore(tmp_path)])


# ---------------------------------------------------------------------------
# perform_backup
# ---------------------------------------------------------------------------


class TestPerformBackup:
    @pytest.mark.asyncio
    async def test_clean_state_skips(self, store) -> None:
        drive = _mock_drive()
        backup = AutoBackup(store, drive)
        assert await backup.perform_backup() is False
        drive.upsert_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_dirty_uploads_auto_snapshot(self, store) -> None:
        drive = _mock_drive()
        backup = AutoBackup(store, drive, filename="auto.json")
        backup.attach()
        await store.save("twicks_bought_v1", [{"id": "a"}])
        assert backup.dirty

        assert await backup.perform_backup() is True
        filename, payload = drive.upsert_json.call_args.args
        assert filename == "auto.json"
        assert payload["auto"] is True
        assert payload["bought"] == [{"id": "a"}]
        assert not backup.dirty
        assert backup.health()["total_backups"] == 1
        backup.detach()

    @pytest.mark.asyncio
    async def test_unchanged_collections_skip_upload(self, store) -> None:
        drive = _mock_drive()
        backup = AutoBackup(store, drive)
        backup.mark_dirty()
        await backup.perform_backup()
        backup.mark_dirty()
        assert await backup.perform_backup() is False
        assert drive.upsert_json.call_count == 1
        assert not backup.dirty

    @pytest.mark.asyncio
    async def test_not_signed_in_keeps_dirty(self, store) -> None:
        drive = _mock_drive(signed_in=False)
        backup = AutoBackup(store, drive)
        backup.mark_dirty()
        assert await backup.perform_backup() is False
        assert backup.dirty
        drive.upsert_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_restores_dirty(self, store) -> None:
        drive = _mock_drive(fail=DriveAuthError("expired", status_code=401))
        backup = AutoBackup(store, drive)
        backup.mark_dirty()
        assert await backup.perform_backup() is False
        assert backup.dirty
        assert backup.health()["failed_attempts"] == 1

    @pytest.mark.asyncio
    async def test_force_ignores_dirty_flag(self, store) -> None:
        drive = _mock_drive()
        backup = AutoBackup(store, drive)
        assert await backup.force_now() is True
        assert await backup.force_now() is True
        assert drive.upsert_json.call_count == 2

    @pytest.mark.asyncio
    async def test_single_flight(self, store) -> None:
        release = asyncio.Event()

        async def slow_upload(*args):
            await release.wait()
            return {}

        drive = _mock_drive()
        drive.upsert_json = AsyncMock(side_effect=slow_upload)
        backup = AutoBackup(store, drive)
        backup.mark_dirty()
        first = asyncio.create_task(backup.perform_backup())
        await asyncio.sleep(0)
        assert backup.running
        assert await backup.perform_backup(force=True) is False
        release.set()
        assert await first is True
        assert drive.upsert_json.call_count == 1

    def test_reset(self, store) -> None:
        backup = AutoBackup(store, _mock_drive())
        backup.mark_dirty()
        backup.reset()
        assert not backup.dirty
        assert backup.health()["seconds_since_change"] is None


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestScheduling:
    @pytest.mark.asyncio
    async def test_debounce_fires_after_quiet_period(self, store) -> None:
        drive = _mock_drive()
        backup = AutoBackup(store, drive, interval_secs=60, debounce_secs=0.05)
        backup.attach()
        await store.save("twicks_cash_v1", [])
        await asyncio.sleep(0.02)
        await store.save("twicks_cash_v1", [{"id": "c"}])
        await asyncio.sleep(0.2)
        assert drive.upsert_json.call_count == 1
        await backup.stop()

    @pytest.mark.asyncio
    async def test_interval_loop_uploads_when_dirty(self, store) -> None:
        drive = _mock_drive()
        backup = AutoBackup(store, drive, interval_secs=0.05, debounce_secs=60)
        await backup.start()
        assert backup.health()["loop_running"] is True
        await store.save("twicks_sold_v1", [{"id": "s"}])
        await asyncio.sleep(0.2)
        assert drive.upsert_json.call_count == 1
        await backup.stop()
        assert backup.health()["loop_running"] is False

    @pytest.mark.asyncio
    async def test_stop_flushes_dirty_state(self, store) -> None:
        drive = _mock_drive()
        backup = AutoBackup(store, drive, interval_secs=60, debounce_secs=60)
        await backup.start()
        await store.save("twicks_bought_v1", [{"id": "a"}])
        await backup.stop()
        assert drive.upsert_json.call_count == 1
        assert not backup.dirty

    @pytest.mark.asyncio
    async def test_detached_store_does_not_mark_dirty(self, store) -> None:
        backup = AutoBackup(store, _mock_drive())
        backup.attach()
        backup.detach()
        await store.save("twicks_bought_v1", [])
        assert not backup.dirty
