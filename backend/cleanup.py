import asyncio
import traceback

from resume_cache import ResumeCache
from session_manager import SessionManager


class CleanupService:
    """Periodic housekeeping: old cache entries and expired sessions. Never raises."""

    def __init__(self, cache: ResumeCache, sessions: SessionManager, cache_max_age_days: int, interval_minutes: int):
        self.cache = cache
        self.sessions = sessions
        self.cache_max_age_days = cache_max_age_days
        self.interval_seconds = max(60, interval_minutes * 60)
        self._task: asyncio.Task | None = None

    async def run_cleanup(self) -> dict:
        summary = {"cache_entries": 0, "sessions": 0}
        try:
            summary["cache_entries"] = await self.cache.clear_old(self.cache_max_age_days)
        except Exception as e:
            print(f"[CLEANUP] Cache sweep failed: {e}")
        try:
            summary["sessions"] = await self.sessions.cleanup_expired()
        except Exception as e:
            traceback.print_exc()
            print(f"[CLEANUP] Session sweep failed: {e}")
        return summary

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            summary = await self.run_cleanup()
            print(f"[CLEANUP] Sweep done: {summary}")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
