"""
Minimum-spacing rate limiter for outbound requests to one source
"""

import asyncio
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Keeps at least `min_delay` seconds between consecutive wait() calls"""

    def __init__(self, min_delay: Optional[float]):
        self.min_delay = min_delay or 0
        self.last_request_at: Optional[float] = None

    async def wait(self):
        if not self.min_delay:
            return

        if self.last_request_at is not None:
            remaining = self.min_delay - (time.monotonic() - self.last_request_at)
            if remaining > 0:
                logger.debug(f"Rate limiting: sleeping {remaining:.2f}s")
                await asyncio.sleep(remaining)

        self.last_request_at = time.monotonic()
