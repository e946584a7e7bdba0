import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from batch_pricing.config import settings

logger = logging.getLogger(__name__)

class OrderCache:
    """
    In-process TTL cache keyed by purchase order id. Owned by whoever reads
    through it and handed to the propagation service, which invalidates the
    order after every run.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = settings.ORDER_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[float, Any]] = {}

    def get(self, order_id: str, kind: str = "order") -> Optional[Any]:
        entry = self._entries.get((order_id, kind))
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[(order_id, kind)]
            return None
        return value

    def set(self, order_id: str, value: Any, kind: str = "order") -> None:
        self._entries[(order_id, kind)] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, order_id: str) -> int:
        """Drop every entry cached for the order. Returns how many were dropped."""
        keys = [key for key in self._entries if key[0] == order_id]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries for PO {order_id}")
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

order_cache = OrderCache()
