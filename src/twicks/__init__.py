"""Twicks: inventory and sales ledger for small-lot card reselling.

Tracks bought stock, for-sale listings, sold records and cash on hand, with
tiered local persistence and Drive / remote-endpoint backups.
"""

__version__ = "0.1.0"

from twicks.config import TwicksConfig
from twicks.constants import CashSource, PartyKind, SoldStatus, StorageKey
from twicks.errors import (
    ExternalServiceError,
    NotFoundError,
    StorageWriteError,
    TwicksError,
    ValidationError,
)
from twicks.ledger import CashEntry, InventoryItem, LedgerState, Listing, SoldRecord
from twicks.storage import KeyValueStore
from twicks.storage_backend import StorageBackend
from twicks.stores import JsonFileStore, SqliteStore
from twicks.engine import LedgerEngine
from twicks.auto_backup import AutoBackup
from twicks.drive_client import DriveClient, DriveError, DriveTokenProvider
from twicks.cloud_backup_client import CloudBackupClient, CloudBackupError

__all__ = [
    "TwicksConfig",
    "CashSource",
    "PartyKind",
    "SoldStatus",
    "StorageKey",
    "TwicksError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "StorageWriteError",
    "InventoryItem",
    "Listing",
    "SoldRecord",
    "CashEntry",
    "LedgerState",
    "KeyValueStore",
    "StorageBackend",
    "JsonFileStore",
    "SqliteStore",
    "LedgerEngine",
    "AutoBackup",
    "DriveClient",
    "DriveError",
    "DriveTokenProvider",
    "CloudBackupClient",
    "CloudBackupError",
]
