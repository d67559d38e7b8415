import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.services.tokens import sweep_expired

logger = logging.getLogger(__name__)


class TokenSweeper:
    """Background worker deleting expired refresh tokens on a fixed interval."""

    def __init__(self, session_factory: async_sessionmaker, interval_seconds: int = 3600):
        """
        Args:
            session_factory: Factory used to open one session per cycle
            interval_seconds: Pause between two sweeps
        """
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Run a single sweep. Errors are logged, never raised."""
        try:
            async with self.session_factory() as db:
                removed = await sweep_expired(db)
            if removed:
                logger.info(f"Removed {removed} expired refresh tokens")
            return removed
        except Exception as e:
            logger.error(f"Error sweeping expired refresh tokens: {str(e)}")
            return 0

    async def _loop(self):
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self):
        if self.running:
            return
        logger.info(f"Starting token sweeper (every {self.interval_seconds}s)")
        self._task = asyncio.create_task(self._loop())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Token sweeper stopped")
