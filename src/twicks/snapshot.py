"""Backup snapshots of every collection, and verbatim restore.

Snapshot shape (version 3)::

    {bought, forsale, sold, cash, sellers, shipping, buyers, exportedAt, version}

with ``auto: true`` added for automatic backups. The raw-namespace variant
``{"localStorage": {key: raw string}}`` carries every stored key as-is.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from twicks.constants import SNAPSHOT_VERSION, StorageKey
from twicks.errors import SerializationError
from twicks.storage import KeyValueStore

logger = logging.getLogger(__name__)

# Snapshot field -> storage key, in export order.
SNAPSHOT_FIELDS: dict[str, StorageKey] = {
    "bought": StorageKey.BOUGHT,
    "forsale": StorageKey.FORSALE,
    "sold": StorageKey.SOLD,
    "cash": StorageKey.CASH,
    "sellers": StorageKey.SELLERS,
    "shipping": StorageKey.SHIPPING,
    "buyers": StorageKey.BUYERS,
}

RAW_NAMESPACE_FIELD = "localStorage"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def collect_collections(store: KeyValueStore) -> dict[str, Any]:
    """Current value of every snapshot field, without metadata."""
    collections: dict[str, Any] = {}
    for name, key in SNAPSHOT_FIELDS.items():
        fallback = {} if key is StorageKey.SHIPPING else []
        collections[name] = await store.load(key, fallback)
    return collections


async def build_snapshot(store: KeyValueStore, *, auto: bool = False) -> dict[str, Any]:
    """Return the full exportable state plus ``exportedAt`` and ``version``."""
    snapshot = await collect_collections(store)
    snapshot["exportedAt"] = _iso_now()
    snapshot["version"] = SNAPSHOT_VERSION
    if auto:
        snapshot["auto"] = True
    return snapshot


def collections_fingerprint(snapshot: dict[str, Any]) -> str:
    """Stable serialization of the collections only (metadata ignored)."""
    return json.dumps(
        {name: snapshot.get(name) for name in SNAPSHOT_FIELDS},
        sort_keys=True,
        separators=(",", ":"),
    )


def parse_snapshot(raw: str | bytes) -> dict[str, Any]:
    """Decode a snapshot file's contents. Raises SerializationError."""
    try:
        snapshot = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SerializationError(f"Backup file is not valid JSON: {exc}") from exc
    if not isinstance(snapshot, dict):
        raise SerializationError("Snapshot must be a JSON object.")
    return snapshot


async def restore_snapshot(store: KeyValueStore, snapshot: dict[str, Any]) -> list[str]:
    """Overwrite each collection present in ``snapshot`` verbatim.

    Absent (or null) fields leave the live collection untouched. Writes are
    not transactional: a failure part-way leaves earlier fields restored.
    Returns the restored field names.
    """
    if not isinstance(snapshot, dict):
        raise SerializationError("Snapshot must be a JSON object.")
    restored: list[str] = []
    for name, key in SNAPSHOT_FIELDS.items():
        if snapshot.get(name) is None:
            continue
        await store.save(key, snapshot[name])
        restored.append(name)
    logger.info("Restored %d collection(s) from snapshot.", len(restored))
    return restored


async def export_namespace(store: KeyValueStore) -> dict[str, Any]:
    """Raw-namespace snapshot: every stored key with its raw string value."""
    return {RAW_NAMESPACE_FIELD: await store.dump_raw()}


async def restore_namespace(store: KeyValueStore, payload: dict[str, Any]) -> int:
    """Write every raw value of a namespace snapshot back. Returns key count.

    Raises SerializationError when the payload carries no namespace object.
    """
    entries = payload.get(RAW_NAMESPACE_FIELD) if isinstance(payload, dict) else None
    if not isinstance(entries, dict):
        raise SerializationError("Cloud backup format invalid.")
    for key, raw in entries.items():
        await store.write_raw(str(key), raw if isinstance(raw, str) else json.dumps(raw))
    return len(entries)
