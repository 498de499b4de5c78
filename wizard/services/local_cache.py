from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from wizard.core.errors import LocalCacheError


log = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class LocalDraftCache:
    """
    Synchronous, size-limited key/value store on the local filesystem.

    One JSON file per key under `base_dir`. Writes go through a temp file and
    a rename so a crash never leaves a half-written value behind.
    """

    def __init__(self, base_dir: str | Path, *, max_bytes: int = 5 * 1024 * 1024):
        self.base = Path(base_dir)
        self.max_bytes = max_bytes

    def _path(self, key: str) -> Path:
        if not key:
            raise ValueError("cache key must not be empty")
        return self.base / f"{_SAFE_KEY.sub('_', key)}.json"

    def put(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise LocalCacheError(f"value for {key!r} is not serializable: {e}") from e

        if len(raw) > self.max_bytes:
            raise LocalCacheError(f"value for {key!r} exceeds quota ({len(raw)} > {self.max_bytes} bytes)")

        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(raw)
            tmp.replace(path)
        except OSError as e:
            raise LocalCacheError(f"could not write {key!r}: {e}") from e

    def get(self, key: str) -> Any | None:
        """
        Returns the stored value, or None when the key is absent or the
        stored bytes are not valid JSON.
        """
        path = self._path(key)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError:
            log.warning("local cache: could not read key=%s", key, exc_info=True)
            return None

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            log.warning("local cache: corrupt value for key=%s, ignoring", key)
            return None

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise LocalCacheError(f"could not remove {key!r}: {e}") from e
