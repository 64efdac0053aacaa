"""Token cleanup service - periodically evicts expired revocation records."""

import asyncio
from datetime import timedelta

from portal_auth.core.logging import get_logger
from portal_auth.services.issuer import Clock, utcnow
from portal_auth.services.revocation import RevocationStore

logger = get_logger("token_cleanup")

# How often to run cleanup (in seconds)
CLEANUP_INTERVAL_SECONDS = 3600  # 1 hour

# How long a record is kept after its credential expired
DEFAULT_RETENTION = timedelta(hours=24)

# Delay before the first sweep so startup is not slowed down
STARTUP_DELAY_SECONDS = 60


class TokenCleanupService:
    """Background service that keeps the revocation store bounded.

    This is the only component that removes revocation records. Sweeps run
    on the event loop as a separate task, never on the request path, and a
    failed sweep is logged and retried on the next tick.
    """

    def __init__(
        self,
        store: RevocationStore,
        interval_seconds: int = CLEANUP_INTERVAL_SECONDS,
        retention: timedelta = DEFAULT_RETENTION,
        startup_delay_seconds: float = STARTUP_DELAY_SECONDS,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._running = False
        self._task: asyncio.Task | None = None
        self._interval_seconds = max(1, interval_seconds)
        self._retention = max(retention, timedelta(0))
        self._startup_delay_seconds = startup_delay_seconds
        self._clock = clock
        self.last_removed: int | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def interval_seconds(self) -> int:
        """Get sweep interval in seconds."""
        return self._interval_seconds

    @interval_seconds.setter
    def interval_seconds(self, value: int) -> None:
        """Set sweep interval in seconds (minimum 1 second)."""
        self._interval_seconds = max(1, value)
        logger.info(f"Token cleanup interval set to {self._interval_seconds}s")

    @property
    def retention(self) -> timedelta:
        """Get retention margin applied after a credential's expiry."""
        return self._retention

    @retention.setter
    def retention(self, value: timedelta) -> None:
        """Set retention margin (negative values are clamped to zero)."""
        self._retention = max(value, timedelta(0))
        logger.info(f"Revocation retention set to {self._retention}")

    async def start(self):
        """Start the background cleanup task."""
        if self._running:
            logger.warning("Token cleanup service is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop(), name="token-cleanup")
        logger.info(
            f"Token cleanup service started (retention: {self._retention}, "
            f"interval: {self._interval_seconds}s)"
        )

    async def stop(self):
        """Stop the background cleanup task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Token cleanup service stopped")

    async def _cleanup_loop(self):
        """Main loop that periodically evicts expired records."""
        await asyncio.sleep(self._startup_delay_seconds)

        while self._running:
            try:
                await self._run_cleanup()
            except Exception as e:
                logger.error(f"Error in token cleanup: {e}")

            # Wait before next cleanup
            await asyncio.sleep(self._interval_seconds)

    async def _run_cleanup(self) -> int:
        """Execute a single sweep."""
        try:
            removed = await self._store.evict_expired(self._clock(), self._retention)
        except Exception as e:
            logger.exception(f"Error during revocation store sweep: {e}")
            raise  # Propagate to _cleanup_loop which handles logging

        self.last_removed = removed
        if removed > 0:
            logger.info(
                f"Token cleanup: removed {removed} expired revocation records",
                extra={"event": "revocation_sweep", "removed": removed},
            )
        return removed

    async def run_cleanup_now(self) -> int:
        """Manually trigger a sweep.

        Returns:
            Number of revocation records removed
        """
        return await self._run_cleanup()
