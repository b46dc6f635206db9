from twicks.stores.jsonfile import JsonFileStore
from twicks.stores.sqlite import SqliteStore

__all__ = ["JsonFileStore", "SqliteStore"]
