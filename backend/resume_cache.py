import asyncio
import hashlib
import json
import os
import time
from pathlib import Path
from typing import Optional

DEFAULT_MAX_AGE_DAYS = 30


def resume_hash(resume_text: str) -> str:
    return hashlib.sha256(resume_text.encode("utf-8")).hexdigest()


class ResumeCache:
    """File-backed cache of resume analyses, one `<sha256>.json` per entry."""

    def __init__(self, cache_dir: str):
        self.cache_dir = Path(cache_dir)

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _read(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as fh:
            entry = json.load(fh)
        if not isinstance(entry, dict) or entry.get("hash") != key:
            print(f"[CACHE] Ignoring corrupt entry {key[:12]}")
            return None
        data = entry.get("data")
        return data if isinstance(data, dict) else None

    def _write(self, key: str, data: dict) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        tmp = self._path(key).with_suffix(".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump({"hash": key, "data": data, "timestamp": time.time()}, fh)
        os.replace(tmp, self._path(key))

    async def get(self, key: str) -> Optional[dict]:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValueError) as e:
            print(f"[CACHE] Read failed for {key[:12]}: {e}")
            return None

    async def set(self, key: str, data: dict) -> bool:
        try:
            await asyncio.to_thread(self._write, key, data)
            return True
        except (OSError, TypeError, ValueError) as e:
            print(f"[CACHE] Write failed for {key[:12]}: {e}")
            return False

    def _clear_old(self, max_age_seconds: float) -> int:
        if not self.cache_dir.exists():
            return 0
        cutoff = time.time() - max_age_seconds
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            try:
                with path.open("r", encoding="utf-8") as fh:
                    timestamp = float(json.load(fh).get("timestamp", 0))
            except (OSError, ValueError, AttributeError, TypeError):
                try:
                    timestamp = path.stat().st_mtime
                except OSError:
                    continue
            if timestamp < cutoff:
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    print(f"[CACHE] Could not evict {path.name}: {e}")
                    continue
                removed += 1
        return removed

    async def clear_old(self, max_age_days: int = DEFAULT_MAX_AGE_DAYS) -> int:
        try:
            removed = await asyncio.to_thread(self._clear_old, max_age_days * 86400)
        except OSError as e:
            print(f"[CACHE] Eviction sweep failed: {e}")
            return 0
        if removed:
            print(f"[CACHE] Evicted {removed} entries older than {max_age_days} days")
        return removed
