"""Twicks configuration: plain frozen dataclass, no pydantic.

The host application constructs this from its own settings (env vars,
a settings file, etc.) and passes it to the stores, clients and tools.
"""

from dataclasses import dataclass

from twicks.constants import (
    AUTO_BACKUP_DEBOUNCE_SECS,
    AUTO_BACKUP_FILENAME,
    AUTO_BACKUP_INTERVAL_SECS,
    TOKEN_WAIT_CEILING_SECS,
)


@dataclass(frozen=True)
class TwicksConfig:
    data_dir: str = "twicks_data"
    sqlite_path: str = "twicks.db"
    fast_store_quota_bytes: int | None = 5 * 1024 * 1024
    cloud_backup_url: str | None = None
    drive_access_token: str | None = None
    drive_client_id: str | None = None
    drive_client_secret: str | None = None
    drive_refresh_token: str | None = None
    token_timeout_secs: float = TOKEN_WAIT_CEILING_SECS
    auto_backup_interval_secs: float = AUTO_BACKUP_INTERVAL_SECS
    auto_backup_debounce_secs: float = AUTO_BACKUP_DEBOUNCE_SECS
    auto_backup_filename: str = AUTO_BACKUP_FILENAME
    payment_number: str | None = None
    payee_name: str | None = None
