"""Tests for the result-dict ledger and backup tools."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from twicks.cloud_backup_client import CloudBackupClient, CloudBackupError
from twicks.config import TwicksConfig
from twicks.drive_client import DriveAuthError, DriveClient, DriveTokenProvider
from twicks.engine import LedgerEngine
from twicks.storage import KeyValueStore
from twicks.stores import JsonFileStore
from twicks.tools.backup import (
    auto_backup_now_tool,
    backup_to_cloud_tool,
    backup_to_drive_tool,
    export_snapshot_tool,
    import_snapshot_tool,
    manual_backup_filename,
    restore_from_cloud_tool,
    restore_from_drive_tool,
)
from twicks.tools.ledger import (
    add_buyer_to_cash_tool,
    add_cash_tool,
    add_item_tool,
    buyer_message_tool,
    cash_summary_tool,
    delete_party_tool,
    inventory_summary_tool,
    list_for_sale_tool,
    list_seller_for_sale_tool,
    mark_all_paid_tool,
    mark_paid_tool,
    mark_sold_tool,
    rename_party_tool,
    set_shipping_fee_tool,
    sold_summary_tool,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path) -> KeyValueStore:
    return KeyValueStore([JsonFileStore(tmp_path)])


@pytest.fixture
def engine(store) -> LedgerEngine:
    return LedgerEngine(store)


async def _sold_to(engine: LedgerEngine, buyer: str, price: float) -> str:
    item = await engine.add_item("Ana", price, 0, price)
    await engine.move_to_listing(item.id)
    listing = (await engine.load_listings())[0]
    record = await engine.mark_sold(listing.id, buyer)
    return record.id


# ---------------------------------------------------------------------------
# Ledger tools
# ---------------------------------------------------------------------------


class TestInventoryTools:
    @pytest.mark.asyncio
    async def test_add_item(self, engine) -> None:
        result = await add_item_tool(engine, "Ana", "100", "10")
        assert result["success"] is True
        assert result["item"]["buy"] == 100
        assert result["item"]["seller"] == "Ana"

    @pytest.mark.asyncio
    async def test_add_item_validation_error(self, engine) -> None:
        result = await add_item_tool(engine, "", 100)
        assert result == {"success": False, "error": "Please select a seller."}

    @pytest.mark.asyncio
    async def test_list_for_sale_unknown(self, engine) -> None:
        result = await list_for_sale_tool(engine, "missing")
        assert result["success"] is False
        assert "not found" in result["error"]

    @pytest.mark.asyncio
    async def test_list_seller_for_sale(self, engine) -> None:
        await engine.add_item("Ana", 10)
        await engine.add_item("Ana", 20)
        result = await list_seller_for_sale_tool(engine, "Ana")
        assert result["moved"] == 2
        assert result["message"] == "Moved 2 items to For Sale."

    @pytest.mark.asyncio
    async def test_inventory_summary(self, engine) -> None:
        await engine.add_item("Ana", 100, 10, 150)
        await engine.add_item("Ben", 50)
        summary = await inventory_summary_tool(engine)
        assert summary["count"] == 2
        assert summary["spent"] == 160
        assert summary["worth"] == 150
        assert [s["seller"] for s in summary["sellers"]] == ["Ben", "Ana"]


class TestSalesTools:
    @pytest.mark.asyncio
    async def test_mark_sold_vanished_listing(self, engine) -> None:
        result = await mark_sold_tool(engine, "gone", "X")
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_mark_sold_and_paid(self, engine) -> None:
        listing = await engine.add_listing(300, "Mew")
        sold = await mark_sold_tool(engine, listing.id, "X")
        assert sold["success"] is True
        assert sold["sold"]["status"] == "Pending"
        paid = await mark_paid_tool(engine, sold["sold"]["id"])
        assert paid["success"] is True

    @pytest.mark.asyncio
    async def test_mark_all_paid_nothing_to_do(self, engine) -> None:
        result = await mark_all_paid_tool(engine, "Nobody")
        assert result["changed"] == 0
        assert result["message"] == "Nothing to mark as paid."

    @pytest.mark.asyncio
    async def test_shipping_fee_bad_number(self, engine) -> None:
        result = await set_shipping_fee_tool(engine, "X", "abc")
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_sold_summary_orders_paid_last(self, engine) -> None:
        paid_id = await _sold_to(engine, "Paid", 100)
        await engine.mark_paid(paid_id)
        await _sold_to(engine, "Pending", 50)
        await set_shipping_fee_tool(engine, "Paid", 20)

        summary = await sold_summary_tool(engine)
        assert [b["buyer"] for b in summary["buyers"]] == ["Pending", "Paid"]
        paid = summary["buyers"][1]
        assert paid["net"] == 80
        assert paid["all_paid"] is True
        assert summary["paid_revenue"] == 100
        assert summary["pending_revenue"] == 50


class TestCashTools:
    @pytest.mark.asyncio
    async def test_add_cash_and_summary(self, engine) -> None:
        await add_cash_tool(engine, "SeaBank", 200)
        paid_id = await _sold_to(engine, "X", 100)
        await mark_paid_tool(engine, paid_id)
        summary = await cash_summary_tool(engine)
        assert summary["on_hand"] == 200
        assert summary["grand_total"] == 300

    @pytest.mark.asyncio
    async def test_cash_summary_shows_signed_amounts(self, engine) -> None:
        await add_cash_tool(engine, "GCash", 500)
        await engine.deduct_cash("GCash", 300, "fare")
        summary = await cash_summary_tool(engine)
        displays = [e["display"] for e in summary["entries"]]
        assert sorted(displays) == ["-₱300.00", "₱500.00"]

    @pytest.mark.asyncio
    async def test_add_buyer_to_cash_requires_paid(self, engine) -> None:
        await _sold_to(engine, "X", 100)
        result = await add_buyer_to_cash_tool(engine, "X", "GCash")
        assert result == {"success": False, "error": "This buyer is not fully paid yet."}


class TestPartyTools:
    @pytest.mark.asyncio
    async def test_rename_and_delete(self, engine) -> None:
        await engine.add_item("A", 10)
        renamed = await rename_party_tool(engine, "seller", "A", "B")
        assert renamed["changed"] == 1
        assert renamed["message"] == "Seller renamed."
        deleted = await delete_party_tool(engine, "seller", "B", reassign_to="C")
        assert deleted["changed"] == 1
        assert (await engine.load_bought())[0].seller == "C"


class TestBuyerMessageTool:
    @pytest.mark.asyncio
    async def test_total_invoice(self, engine) -> None:
        await engine.set_greeting("morning")
        await _sold_to(engine, "X", 100)
        await _sold_to(engine, "X", 250)
        config = TwicksConfig(payment_number="0917", payee_name="J. D.")
        result = await buyer_message_tool(engine, "X", "total_invoice", config)
        assert result["success"] is True
        assert result["text"].startswith("Good Morning brother")
        assert "₱350.00" in result["text"]
        assert "GCash: 0917" in result["text"]

    @pytest.mark.asyncio
    async def test_shipping_needs_tracking_number(self, engine) -> None:
        result = await buyer_message_tool(engine, "X", "shipping")
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_unknown_kind(self, engine) -> None:
        result = await buyer_message_tool(engine, "X", "poem")
        assert result["success"] is False


# ---------------------------------------------------------------------------
# Backup tools
# ---------------------------------------------------------------------------


class TestManualBackupFilename:
    def test_file_safe_timestamp(self) -> None:
        now = datetime(2026, 3, 4, 5, 6, 7, 890000, tzinfo=timezone.utc)
        assert manual_backup_filename(now) == "twicks_backup_2026-03-04T05-06-07-890Z.json"


class TestDriveTools:
    @pytest.mark.asyncio
    async def test_backup_to_drive(self, store) -> None:
        drive = MagicMock()
        drive.create_json = AsyncMock(return_value={"id": "f9"})
        result = await backup_to_drive_tool(store, drive)
        assert result["success"] is True
        assert result["file_id"] == "f9"
        filename, snapshot = drive.create_json.call_args.args
        assert filename.startswith("twicks_backup_")
        assert snapshot["version"] == 3

    @pytest.mark.asyncio
    async def test_backup_to_drive_auth_error(self, store) -> None:
        drive = MagicMock()
        drive.create_json = AsyncMock(side_effect=DriveAuthError("Not signed in to Google Drive."))
        result = await backup_to_drive_tool(store, drive)
        assert result == {"success": False, "error": "Not signed in to Google Drive."}

    @pytest.mark.asyncio
    async def test_restore_newest(self, store, engine) -> None:
        drive = MagicMock()
        drive.list_backups = AsyncMock(return_value=[{"id": "newest"}, {"id": "older"}])
        drive.download_json = AsyncMock(return_value={
            "bought": [{"id": "a", "seller": "Ana", "buy": 5}],
            "sellers": ["Ana"],
        })
        result = await restore_from_drive_tool(store, drive)
        assert result["file_id"] == "newest"
        assert result["restored"] == ["bought", "sellers"]
        drive.download_json.assert_called_once_with("newest")
        assert (await engine.load_bought())[0].seller == "Ana"

    @pytest.mark.asyncio
    async def test_restore_without_backups(self, store) -> None:
        drive = MagicMock()
        drive.list_backups = AsyncMock(return_value=[])
        result = await restore_from_drive_tool(store, drive)
        assert result == {"success": False, "error": "No backups found in Drive."}

    @pytest.mark.asyncio
    async def test_restore_non_json_download(self, store) -> None:
        drive = DriveClient(DriveTokenProvider(access_token="tok"))
        request = httpx.Request("GET", "https://www.googleapis.com")
        drive._client.request = AsyncMock(side_effect=[
            httpx.Response(200, json={"files": [{"id": "f1"}]}, request=request),
            httpx.Response(200, content=b"<html>oops</html>", request=request),
        ])
        result = await restore_from_drive_tool(store, drive)
        assert result["success"] is False
        assert "not JSON" in result["error"]


class TestFileTools:
    @pytest.mark.asyncio
    async def test_export_then_import(self, store, engine, tmp_path) -> None:
        await engine.add_item("Ana", 10)
        exported = await export_snapshot_tool(store)

        other = KeyValueStore([JsonFileStore(tmp_path / "other")])
        result = await import_snapshot_tool(other, exported["content"])
        assert result["success"] is True
        assert len(await LedgerEngine(other).load_bought()) == 1

    @pytest.mark.asyncio
    async def test_import_garbage(self, store) -> None:
        result = await import_snapshot_tool(store, "not json")
        assert result["success"] is False


class TestCloudTools:
    @pytest.mark.asyncio
    async def test_backup_to_cloud(self, store, engine) -> None:
        await engine.add_item("Ana", 10)
        cloud = MagicMock()
        cloud.save_backup = AsyncMock(return_value={"id": 1, "created_at": "t"})
        result = await backup_to_cloud_tool(store, cloud)
        assert result["success"] is True
        payload = cloud.save_backup.call_args.args[0]
        assert "twicks_bought_v1" in payload["localStorage"]
        assert cloud.save_backup.call_args.kwargs["label"] == "manual"

    @pytest.mark.asyncio
    async def test_backup_to_cloud_failure(self, store) -> None:
        cloud = MagicMock()
        cloud.save_backup = AsyncMock(side_effect=CloudBackupError("db down", status_code=500))
        result = await backup_to_cloud_tool(store, cloud)
        assert result == {"success": False, "error": "db down"}

    @pytest.mark.asyncio
    async def test_restore_from_cloud(self, store) -> None:
        cloud = MagicMock()
        cloud.fetch_latest = AsyncMock(return_value={
            "id": 4,
            "payload": {"localStorage": {"twicks_greet_pref": "evening"}},
        })
        result = await restore_from_cloud_tool(store, cloud)
        assert result["keys"] == 1
        assert await store.read_raw("twicks_greet_pref") == "evening"

    @pytest.mark.asyncio
    async def test_restore_from_cloud_invalid(self, store) -> None:
        cloud = MagicMock()
        cloud.fetch_latest = AsyncMock(return_value={"id": 4, "payload": {"bought": []}})
        result = await restore_from_cloud_tool(store, cloud)
        assert result == {"success": False, "error": "Cloud backup format invalid."}

    @pytest.mark.asyncio
    async def test_restore_from_cloud_empty(self, store) -> None:
        cloud = MagicMock()
        cloud.fetch_latest = AsyncMock(return_value=None)
        result = await restore_from_cloud_tool(store, cloud)
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_restore_from_cloud_connection_reset(self, store) -> None:
        cloud = CloudBackupClient("https://backup.example.com/api/backup")
        cloud._client.request = AsyncMock(side_effect=httpx.ReadError("reset"))
        result = await restore_from_cloud_tool(store, cloud)
        assert result["success"] is False
        assert "reset" in result["error"]


class TestAutoBackupNowTool:
    @pytest.mark.asyncio
    async def test_reports_health(self) -> None:
        auto = MagicMock()
        auto.force_now = AsyncMock(return_value=True)
        auto.health.return_value = {"total_backups": 1}
        result = await auto_backup_now_tool(auto)
        assert result == {"success": True, "total_backups": 1}
