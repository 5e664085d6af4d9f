import asyncio, logging
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


class ListingSource(Protocol):
    async def fetch(self) -> List[Dict[str, Any]]:
        """Raw candidates: {title, price, description, location, link, image_urls}."""
        ...


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_delay: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_delay < 0:
            raise ValueError("backoff_delay must not be negative")


async def fetch_with_retry(source: ListingSource, policy: RetryPolicy = RetryPolicy()) -> List[Dict[str, Any]]:
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await source.fetch()
        except Exception as e:
            logger.warning("[HARVEST] attempt %d/%d failed: %s: %s",
                           attempt, policy.max_attempts, type(e).__name__, e)
            if attempt == policy.max_attempts:
                raise
            await asyncio.sleep(policy.backoff_delay * attempt)
