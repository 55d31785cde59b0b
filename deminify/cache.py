"""On-disk cache of rendered text and position maps."""

import errno
import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from deminify.core.position_map import PositionMap
from deminify.errors import PositionMapError

logger = logging.getLogger(__name__)

CACHE_FORMAT = 1

# Default cache directory
_CACHE_DIR = Path(tempfile.gettempdir()) / "deminify-cache"


@dataclass(frozen=True)
class CacheKey:
    """Identity of a rendered artifact: absolute source path plus its mtime."""
    path: str
    mtime_ms: float

    @classmethod
    def for_file(cls, file_path: Path) -> "CacheKey":
        resolved = file_path.resolve()
        return cls(path=str(resolved), mtime_ms=resolved.stat().st_mtime_ns / 1_000_000)


@dataclass
class CacheEntry:
    """A cached rendering."""
    text: str
    position_map: PositionMap
    mtime_ms: float


class CacheStore:
    """Last-writer-wins store of renderings keyed by ``(path, mtime)``.

    An entry is only served while its recorded mtime is at least the
    requested one; a newer source file therefore invalidates it. Writes go to
    a temporary file that is atomically renamed into place, and any entry
    that fails to decode is treated as a miss.
    """

    def __init__(self, cache_dir: Optional[Path] = None):
        self.cache_dir = Path(cache_dir) if cache_dir is not None else _CACHE_DIR

    def _entry_file(self, key: CacheKey) -> Path:
        """Get cache file path for a source path."""
        path_hash = hashlib.md5(key.path.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{Path(key.path).stem}.{path_hash}.json"

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the cached rendering for ``key`` or None on any miss."""
        entry_file = self._entry_file(key)
        try:
            payload = json.loads(entry_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug("Ignoring unreadable cache entry %s: %s", entry_file, e)
            return None

        if not isinstance(payload, dict) or payload.get("format") != CACHE_FORMAT:
            return None
        if payload.get("path") != key.path:
            return None
        stored_mtime = payload.get("mtime_ms")
        if not isinstance(stored_mtime, (int, float)) or stored_mtime < key.mtime_ms:
            return None
        text = payload.get("text")
        raw_map = payload.get("map")
        if not isinstance(text, str) or not isinstance(raw_map, dict):
            return None

        try:
            position_map = PositionMap.from_dict(raw_map)
        except PositionMapError as e:
            logger.debug("Ignoring cache entry %s with bad map: %s", entry_file, e)
            return None
        return CacheEntry(text=text, position_map=position_map, mtime_ms=stored_mtime)

    def put(self, key: CacheKey, text: str, position_map: PositionMap) -> Optional[str]:
        """Store a rendering.

        Returns:
            None on success, otherwise a warning describing the failure
        """
        payload = {
            "format": CACHE_FORMAT,
            "path": key.path,
            "mtime_ms": key.mtime_ms,
            "text": text,
            "map": position_map.to_dict(),
        }
        entry_file = self._entry_file(key)
        temp_path: Optional[str] = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.cache_dir, prefix=f".{entry_file.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(temp_path, entry_file)
            temp_path = None
        except OSError as e:
            logger.debug("Cache write failed for %s", key.path, exc_info=True)
            return describe_write_error(e, self.cache_dir, "Failed to write cache")
        finally:
            if temp_path is not None:
                Path(temp_path).unlink(missing_ok=True)
        return None

    def clear(self) -> int:
        """Remove every cache entry. Returns the number of files removed."""
        removed = 0
        if not self.cache_dir.exists():
            return removed
        for entry_file in self.cache_dir.glob("*.json"):
            entry_file.unlink(missing_ok=True)
            removed += 1
        return removed


def describe_write_error(error: OSError, directory: Path, fallback: str) -> str:
    """Describe a failed write for reporting instead of raising."""
    if isinstance(error, PermissionError):
        return f"Permission denied: Cannot write to {directory}"
    if error.errno == errno.ENOSPC:
        return f"Insufficient disk space: Cannot write to {directory}"
    return f"{fallback}: {error.strerror or error}"


_default_cache: Optional[CacheStore] = None


def get_default_cache(cache_dir: Optional[Path] = None) -> CacheStore:
    """Return the process-wide cache store, creating it on first use."""
    global _default_cache
    if _default_cache is None or (cache_dir is not None and _default_cache.cache_dir != Path(cache_dir)):
        _default_cache = CacheStore(cache_dir)
    return _default_cache
