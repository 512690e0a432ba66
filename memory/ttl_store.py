"""Key-value stores with per-key expiry."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class TTLStore(ABC):
    """Abstract TTL-capable key-value store holding string values."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a value, or None if absent or expired."""
        pass

    @abstractmethod
    async def setex(self, key: str, ttl: int, value: str) -> None:
        """Set a value that expires after ttl seconds."""
        pass

    @abstractmethod
    async def expire(self, key: str, ttl: int) -> bool:
        """Reset the expiry of an existing key. Returns False if the key is absent."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        pass

    async def close(self) -> None:
        """Release any underlying connection."""
        return None


class InMemoryTTLStore(TTLStore):
    """In-process store with TTL support, for tests and single-process runs."""

    def __init__(self):
        self.cache: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._live_entry(key)
            return entry["value"] if entry else None

    async def setex(self, key: str, ttl: int, value: str) -> None:
        async with self._lock:
            self.cache[key] = {
                "value": value,
                "expires_at": datetime.now(timezone.utc) + timedelta(seconds=ttl),
            }

    async def expire(self, key: str, ttl: int) -> bool:
        async with self._lock:
            entry = self._live_entry(key)
            if not entry:
                return False
            entry["expires_at"] = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self.cache.pop(key, None) is not None

    async def clear_expired(self) -> int:
        """Clear expired entries and return count"""
        async with self._lock:
            now = datetime.now(timezone.utc)
            expired_keys = [
                key for key, entry in self.cache.items()
                if now > entry["expires_at"]
            ]
            for key in expired_keys:
                del self.cache[key]
            return len(expired_keys)

    def _live_entry(self, key: str) -> Optional[Dict[str, Any]]:
        # Caller holds the lock
        entry = self.cache.get(key)
        if entry is None:
            return None
        if datetime.now(timezone.utc) > entry["expires_at"]:
            del self.cache[key]
            return None
        return entry


class RedisTTLStore(TTLStore):
    """Redis-backed TTL store."""

    def __init__(self, host: str = "localhost", port: int = 6379, client=None):
        """
        Initialize Redis store.

        Args:
            host: Redis host
            port: Redis port
            client: Optional pre-built redis.asyncio client
        """
        if client is None:
            import redis.asyncio as redis
            client = redis.Redis(host=host, port=port, decode_responses=True)
            logger.info(f"Redis store configured for {host}:{port}")
        self.redis = client

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        await self.redis.setex(key, ttl, value)

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self.redis.expire(key, ttl))

    async def delete(self, key: str) -> bool:
        return bool(await self.redis.delete(key))

    async def close(self) -> None:
        await self.redis.aclose()
