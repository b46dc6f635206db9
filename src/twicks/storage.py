"""Key-value persistence over an ordered list of storage tiers.

Every collection the engine owns is read and written through
``KeyValueStore``; nothing else talks to a tier directly.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from twicks.constants import StorageKey
from twicks.errors import StorageWriteError

if TYPE_CHECKING:
    from twicks.storage_backend import StorageBackend

logger = logging.getLogger(__name__)

SaveObserver = Callable[[str], None]


def key_name(key: StorageKey | str) -> str:
    """Return the raw storage key for an enum member or plain string."""
    return key.value if isinstance(key, StorageKey) else key


class KeyValueStore:
    """JSON documents keyed by name, stored in the first tier that works.

    - ``load()`` tries each tier in priority order. A tier that raises, has
      no value, or holds corrupt JSON is skipped. When every tier comes up
      empty the caller's fallback is returned; ``load()`` never raises.
    - ``save()`` writes to the first tier that accepts the write, removes
      the key from any higher-priority tier that rejected it, and then
      notifies every observer exactly once. If all tiers reject it,
      ``StorageWriteError`` is raised and observers are not notified.
    - ``get_raw()``/``set_raw()`` handle scalar preferences as plain strings
      in the primary tier only and never notify observers.
    """

    def __init__(self, backends: Sequence[StorageBackend]) -> None:
        if not backends:
            raise ValueError("KeyValueStore needs at least one storage backend")
        self._backends = list(backends)
        self._observers: list[SaveObserver] = []

    @property
    def primary(self) -> StorageBackend:
        return self._backends[0]

    # -- observers ------------------------------------------------------------

    def add_observer(self, observer: SaveObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: SaveObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, key: str) -> None:
        for observer in list(self._observers):
            try:
                observer(key)
            except Exception:
                logger.warning("Save observer %r failed for %s.", observer, key)

    # -- JSON documents -------------------------------------------------------

    async def load(self, key: StorageKey | str, fallback: Any = None) -> Any:
        """Return the stored value for ``key`` or a copy of ``fallback``.

        A ``fallback`` of None means an empty list.
        """
        name = key_name(key)
        for index, backend in enumerate(self._backends):
            try:
                raw = await backend.read(name)
            except Exception:
                logger.warning("Storage tier %d failed to read %s.", index, name)
                continue
            if raw is None:
                continue
            try:
                value = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                logger.warning("Stored value for %s in tier %d is corrupt; skipping.", name, index)
                continue
            if value is None:
                continue
            return value
        return [] if fallback is None else copy.deepcopy(fallback)

    async def save(self, key: StorageKey | str, value: Any) -> None:
        """Serialize ``value`` (None is stored as an empty list) and persist it."""
        name = key_name(key)
        raw = json.dumps([] if value is None else value)
        await self.write_raw(name, raw)
        self._notify(name)

    # -- raw strings ----------------------------------------------------------

    async def write_raw(self, key: StorageKey | str, raw: str) -> None:
        """Store an already-serialized value in the first tier that accepts it."""
        name = key_name(key)
        last_error: Exception | None = None
        for index, backend in enumerate(self._backends):
            try:
                await backend.write(name, raw)
            except Exception as exc:
                last_error = exc
                logger.warning("Storage tier %d failed to write %s: %s", index, name, exc)
                continue
            # Earlier tiers are read first; drop their stale copies.
            await self._evict(name, self._backends[:index])
            return
        logger.error("Every storage tier rejected the write of %s.", name)
        raise StorageWriteError(f"Could not persist {name}: {last_error}")

    async def _evict(self, name: str, backends: Sequence[StorageBackend]) -> None:
        for index, backend in enumerate(backends):
            try:
                await backend.delete(name)
            except Exception as exc:
                logger.warning(
                    "Storage tier %d kept a stale copy of %s: %s", index, name, exc,
                )

    async def read_raw(self, key: StorageKey | str) -> str | None:
        """Return the raw string for ``key`` from the first tier holding one."""
        name = key_name(key)
        for index, backend in enumerate(self._backends):
            try:
                raw = await backend.read(name)
            except Exception:
                logger.warning("Storage tier %d failed to read %s.", index, name)
                continue
            if raw is not None:
                return raw
        return None

    async def get_raw(self, key: StorageKey | str) -> str | None:
        """Read a scalar preference from the primary tier. None on miss or error."""
        try:
            return await self.primary.read(key_name(key))
        except Exception:
            logger.warning("Failed to read preference %s.", key_name(key))
            return None

    async def set_raw(self, key: StorageKey | str, raw: str) -> bool:
        """Write a scalar preference to the primary tier. Returns False on error."""
        try:
            await self.primary.write(key_name(key), raw)
            return True
        except Exception:
            logger.warning("Failed to write preference %s.", key_name(key))
            return False

    async def delete_raw(self, key: StorageKey | str) -> None:
        """Remove ``key`` from the primary tier, ignoring failures."""
        try:
            await self.primary.delete(key_name(key))
        except Exception:
            logger.warning("Failed to delete %s.", key_name(key))

    async def all_keys(self) -> list[str]:
        """Union of the keys held by every readable tier, sorted."""
        names: set[str] = set()
        for index, backend in enumerate(self._backends):
            try:
                names.update(await backend.keys())
            except Exception:
                logger.warning("Storage tier %d failed to list keys.", index)
        return sorted(names)

    async def dump_raw(self, keys: Sequence[StorageKey | str] | None = None) -> dict[str, str]:
        """Return ``{key: raw string}`` for ``keys`` (default: every stored key)."""
        if keys is None:
            names = await self.all_keys()
        else:
            names = [key_name(k) for k in keys]
        dumped: dict[str, str] = {}
        for name in names:
            raw = await self.read_raw(name)
            if raw is not None:
                dumped[name] = raw
        return dumped
