"""
Client List Cache

Process-local read-through cache of the active client list.

Staleness policy: a cached list is served for at most ttl_seconds, and every
write made through the API invalidates it, so a reader in this process never
sees a list older than its own last write. Writes made by other processes
become visible once the TTL expires or refresh() is called.
"""

import os
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60

Loader = Callable[[], List[Dict[str, Any]]]


class ClientListCache:
    def __init__(
        self,
        loader: Loader,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._clients: Optional[List[Dict[str, Any]]] = None
        self._loaded_at: Optional[float] = None

    def is_fresh(self) -> bool:
        if self._clients is None or self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < self.ttl_seconds

    def get(self) -> List[Dict[str, Any]]:
        """Return the cached list, reloading when empty or expired."""
        with self._lock:
            if self.is_fresh():
                return list(self._clients)
        return self.refresh()

    def refresh(self) -> List[Dict[str, Any]]:
        """
        Reload unconditionally. If the loader raises, the previous contents
        are kept and the error propagates.
        """
        clients = self.loader()
        with self._lock:
            self._clients = list(clients)
            self._loaded_at = self._clock()
            logger.debug(f"Client cache refreshed with {len(self._clients)} clients")
            return list(self._clients)

    def invalidate(self):
        with self._lock:
            self._clients = None
            self._loaded_at = None


def _load_active_clients() -> List[Dict[str, Any]]:
    from taxengine.data import ClientCompanyRepository
    return ClientCompanyRepository().list_active()


_cache: Optional[ClientListCache] = None


def get_client_cache() -> ClientListCache:
    """Get the global client list cache."""
    global _cache
    if _cache is None:
        ttl = float(os.environ.get("CLIENT_CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS))
        _cache = ClientListCache(_load_active_clients, ttl_seconds=ttl)
    return _cache
