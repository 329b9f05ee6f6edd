"""
In-Process TTL Cache

String-keyed cache with per-entry expiry and literal key-prefix invalidation.
Used for menu listings (one key per canteen/category/availability filter),
the canteen listing, login sessions and users' recent orders.

Expired entries are removed lazily on read and by a periodic sweep so keys
that are never read again do not accumulate. The cache lives in one process;
separate API workers hold independent copies.

Key layout:
    menu:<canteen_id>:<category>:<available>   300s
    canteens                                   1800s
    session:<user_id>                          1800s
    recent_orders:<user_id>                    900s
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Union

logger = logging.getLogger(__name__)

MENU_PREFIX = "menu:"
CANTEENS_KEY = "canteens"


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheManager:
    """
    TTL cache with prefix invalidation and domain-specific helpers.

    Args:
        default_ttl: Seconds an entry lives when ``set`` gets no TTL
        check_period: Seconds between background sweeps of expired entries
        menu_ttl / canteens_ttl / session_ttl / recent_orders_ttl:
            TTLs used by the matching helper methods
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        default_ttl: int = 600,
        check_period: int = 120,
        menu_ttl: int = 300,
        canteens_ttl: int = 1800,
        session_ttl: int = 1800,
        recent_orders_ttl: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.check_period = check_period
        self.menu_ttl = menu_ttl
        self.canteens_ttl = canteens_ttl
        self.session_ttl = session_ttl
        self.recent_orders_ttl = recent_orders_ttl

        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._sweeper: Optional[asyncio.Task] = None

    # =========================================================================
    # GENERIC OPERATIONS
    # =========================================================================

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        ttl = ttl or self.default_ttl
        with self._lock:
            self._entries[key] = CacheEntry(key, value, self._clock() + ttl)
        return True

    def delete(self, keys: Union[str, Iterable[str]]) -> int:
        """Remove one key or several; returns how many were present."""
        if isinstance(keys, str):
            keys = [keys]
        removed = 0
        with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
        return removed

    def delete_by_prefix(self, prefix: str) -> int:
        """Remove every key that starts with the literal ``prefix``."""
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cache entries with prefix '{prefix}'")
        return len(doomed)

    def keys(self) -> list[str]:
        """Keys of live (unexpired) entries."""
        now = self._clock()
        with self._lock:
            return [k for k, e in self._entries.items() if not e.is_expired(now)]

    def sweep(self) -> int:
        """Drop expired entries; returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def flush_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "keys": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }

    # =========================================================================
    # BACKGROUND SWEEP
    # =========================================================================

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            removed = self.sweep()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries")

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    # =========================================================================
    # MENU LISTINGS
    # =========================================================================

    @staticmethod
    def menu_key(canteen_id: str, category: str, available: str) -> str:
        return f"{MENU_PREFIX}{canteen_id}:{category}:{available}"

    def get_menu_items(self, canteen_id: str, category: str, available: str) -> Optional[list]:
        return self.get(self.menu_key(canteen_id, category, available))

    def set_menu_items(
        self,
        canteen_id: str,
        category: str,
        available: str,
        items: list,
        ttl: Optional[int] = None,
    ) -> bool:
        return self.set(
            self.menu_key(canteen_id, category, available),
            items,
            ttl or self.menu_ttl,
        )

    def invalidate_menu_cache(self, canteen_id: Optional[str] = None) -> int:
        """Drop cached listings for one canteen, or for every canteen."""
        prefix = f"{MENU_PREFIX}{canteen_id}:" if canteen_id else MENU_PREFIX
        removed = self.delete_by_prefix(prefix)
        if removed:
            scope = f"canteen {canteen_id}" if canteen_id else "all canteens"
            logger.info(f"Invalidated {removed} menu cache entries for {scope}")
        return removed

    # =========================================================================
    # SESSIONS, RECENT ORDERS, CANTEENS
    # =========================================================================

    def get_user_session(self, user_id: str) -> Optional[dict]:
        return self.get(f"session:{user_id}")

    def set_user_session(self, user_id: str, session: dict, ttl: Optional[int] = None) -> bool:
        return self.set(f"session:{user_id}", session, ttl or self.session_ttl)

    def invalidate_user_session(self, user_id: str) -> int:
        return self.delete(f"session:{user_id}")

    def get_user_recent_orders(self, user_id: str) -> Optional[list]:
        return self.get(f"recent_orders:{user_id}")

    def set_user_recent_orders(self, user_id: str, orders: list, ttl: Optional[int] = None) -> bool:
        return self.set(
            f"recent_orders:{user_id}",
            orders,
            ttl or self.recent_orders_ttl,
        )

    def invalidate_user_order_cache(self, user_id: str) -> int:
        return self.delete(f"recent_orders:{user_id}")

    def get_canteens(self) -> Optional[list]:
        return self.get(CANTEENS_KEY)

    def set_canteens(self, canteens: list, ttl: Optional[int] = None) -> bool:
        return self.set(CANTEENS_KEY, canteens, ttl or self.canteens_ttl)

    def invalidate_canteen_cache(self) -> int:
        return self.delete(CANTEENS_KEY)
