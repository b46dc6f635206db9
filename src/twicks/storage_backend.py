"""Abstract persistence interface for one storage tier.

Defines the StorageBackend Protocol that KeyValueStore depends on.
Concrete implementations live in ``twicks.stores``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class StorageBackend(Protocol):
    """Async key/value tier holding raw (already serialized) strings.

    ``read`` returns None for a missing key and raises on failure
    (quota, corruption, unsupported). ``write`` raises on failure.
    """

    async def read(self, key: str) -> str | None: ...

    async def write(self, key: str, raw: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self) -> list[str]: ...
