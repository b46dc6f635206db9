"""Backup and restore tools: manual Drive backups, the remote backup
endpoint, and the on-demand auto-backup trigger.

Like the ledger tools these return result dicts and never raise for
remote or storage failures.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from twicks.auto_backup import AutoBackup
from twicks.cloud_backup_client import CloudBackupClient
from twicks.constants import MANUAL_BACKUP_PREFIX
from twicks.drive_client import DriveClient
from twicks.errors import TwicksError
from twicks.snapshot import (
    build_snapshot,
    export_namespace,
    parse_snapshot,
    restore_namespace,
    restore_snapshot,
)
from twicks.storage import KeyValueStore

logger = logging.getLogger(__name__)


def manual_backup_filename(now: datetime | None = None) -> str:
    """``twicks_backup_<timestamp>.json`` with ``:`` and ``.`` made file-safe."""
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    stamp = stamp.replace(":", "-").replace(".", "-")
    return f"{MANUAL_BACKUP_PREFIX}{stamp}.json"


# ---------------------------------------------------------------------------
# Google Drive
# ---------------------------------------------------------------------------


async def backup_to_drive_tool(store: KeyValueStore, drive: DriveClient) -> dict[str, Any]:
    """Upload a new timestamped snapshot file to Drive.

    Returns dict with:
        - success: bool
        - filename: name of the created file
        - file_id: Drive id of the created file, when reported
    """
    filename = manual_backup_filename()
    try:
        snapshot = await build_snapshot(store)
        created = await drive.create_json(filename, snapshot)
    except TwicksError as e:
        logger.warning("Drive backup failed: %s", e)
        return {"success": False, "error": str(e)}
    return {
        "success": True,
        "filename": filename,
        "file_id": created.get("id"),
        "message": "Backup saved to Google Drive.",
    }


async def list_drive_backups_tool(drive: DriveClient) -> dict[str, Any]:
    """List the 20 newest manual backups in Drive."""
    try:
        files = await drive.list_backups()
    except TwicksError as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "files": files}


async def restore_from_drive_tool(
    store: KeyValueStore, drive: DriveClient, file_id: str | None = None,
) -> dict[str, Any]:
    """Restore collections from a Drive backup (newest when ``file_id`` is omitted).

    Collections absent from the backup are left as they are.

    Returns dict with:
        - success: bool
        - file_id: the backup restored
        - restored: list of collection names written
    """
    try:
        if file_id is None:
            files = await drive.list_backups()
            if not files:
                return {"success": False, "error": "No backups found in Drive."}
            file_id = files[0]["id"]
        snapshot = await drive.download_json(file_id)
        restored = await restore_snapshot(store, snapshot)
    except TwicksError as e:
        return {"success": False, "error": str(e)}
    return {
        "success": True,
        "file_id": file_id,
        "restored": restored,
        "message": "Data restored from Google Drive.",
    }


async def export_snapshot_tool(store: KeyValueStore) -> dict[str, Any]:
    """Return the current snapshot as a pretty-printed JSON document."""
    snapshot = await build_snapshot(store)
    return {
        "success": True,
        "filename": manual_backup_filename(),
        "content": json.dumps(snapshot, indent=2),
    }


async def import_snapshot_tool(store: KeyValueStore, raw: str | bytes) -> dict[str, Any]:
    """Restore collections from the contents of a snapshot file."""
    try:
        restored = await restore_snapshot(store, parse_snapshot(raw))
    except TwicksError as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "restored": restored, "message": "Backup imported."}


# ---------------------------------------------------------------------------
# Remote backup endpoint
# ---------------------------------------------------------------------------


async def backup_to_cloud_tool(
    store: KeyValueStore, cloud: CloudBackupClient, label: str = "manual",
) -> dict[str, Any]:
    """Send every stored key, verbatim, to the backup endpoint."""
    try:
        payload = await export_namespace(store)
        backup = await cloud.save_backup(payload, label=label)
    except TwicksError as e:
        logger.warning("Cloud backup failed: %s", e)
        return {"success": False, "error": str(e)}
    return {
        "success": True,
        "backup_id": backup.get("id"),
        "created_at": backup.get("created_at"),
        "keys": len(payload.get("localStorage", {})),
        "message": "Cloud backup saved.",
    }


async def restore_from_cloud_tool(store: KeyValueStore, cloud: CloudBackupClient) -> dict[str, Any]:
    """Write back every key of the newest remote backup."""
    try:
        backup = await cloud.fetch_latest()
        if backup is None:
            return {"success": False, "error": "No cloud backup found."}
        count = await restore_namespace(store, backup.get("payload"))
    except TwicksError as e:
        return {"success": False, "error": str(e)}
    return {
        "success": True,
        "backup_id": backup.get("id"),
        "keys": count,
        "message": "Cloud backup restored.",
    }


# ---------------------------------------------------------------------------
# Auto backup
# ---------------------------------------------------------------------------


async def auto_backup_now_tool(auto_backup: AutoBackup) -> dict[str, Any]:
    """Run the auto-backup immediately, regardless of the dirty flag."""
    uploaded = await auto_backup.force_now()
    result: dict[str, Any] = {"success": uploaded, **auto_backup.health()}
    if not uploaded:
        result["error"] = "Auto backup did not run (not signed in, busy, or upload failed)."
    return result
