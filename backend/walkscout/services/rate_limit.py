import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforce a minimum interval between outbound calls to one service.

    Each client owns its own instance so the last-call timestamp is never
    shared between unrelated services.
    """

    def __init__(self, min_interval_s: float, name: str = "upstream"):
        self.min_interval_s = min_interval_s
        self.name = name
        self.last_call: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            if self.last_call is not None:
                remaining = self.min_interval_s - (time.monotonic() - self.last_call)
                if remaining > 0:
                    logger.debug("Throttling %s for %.2fs", self.name, remaining)
                    await asyncio.sleep(remaining)
            self.last_call = time.monotonic()
