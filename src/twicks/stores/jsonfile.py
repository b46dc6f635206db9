"""JsonFileStore: fast storage tier backed by one file per key.

Writes go to a temporary file and are swapped in with ``Path.replace``
so a crash never leaves a half-written document behind. An optional
byte quota makes the tier fail the way a full browser store does, which
is what pushes writes down to the secondary tier.
"""

from __future__ import annotations

import re
from pathlib import Path

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")
_SUFFIX = ".json"


class QuotaExceededError(OSError):
    """The write would push the store past its byte quota."""


class JsonFileStore:
    """Storage tier keeping each key in ``<root>/<key>.json``.

    Implements the ``StorageBackend`` protocol. File I/O is done inline:
    documents are small and this tier is meant to be the cheap one.
    """

    def __init__(self, root: str | Path, quota_bytes: int | None = None) -> None:
        self._root = Path(root)
        self._quota = quota_bytes

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Unsupported storage key: {key!r}")
        return self._root / f"{key}{_SUFFIX}"

    def _used_bytes(self, excluding: Path) -> int:
        if not self._root.exists():
            return 0
        return sum(
            p.stat().st_size
            for p in self._root.glob(f"*{_SUFFIX}")
            if p != excluding
        )

    async def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    async def write(self, key: str, raw: str) -> None:
        path = self._path(key)
        data = raw.encode("utf-8")
        if self._quota is not None:
            used = self._used_bytes(excluding=path)
            if used + len(data) > self._quota:
                raise QuotaExceededError(
                    f"Writing {key} ({len(data)} bytes) exceeds quota of {self._quota} bytes"
                )
        self._root.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def keys(self) -> list[str]:
        if not self._root.exists():
            return []
        return sorted(p.name[: -len(_SUFFIX)] for p in self._root.glob(f"*{_SUFFIX}"))
