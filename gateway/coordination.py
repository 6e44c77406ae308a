"""Shared key-value/set store used by the location directory and node registry.

Only single-key atomic operations are exposed. Implementations raise
``CoordinationUnavailable`` for any backend failure; callers higher up
decide how to degrade.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Dict, Optional, Set

import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import RedisError

from gateway.errors import CoordinationUnavailable

logger = logging.getLogger(__name__)


class CoordinationStore(ABC):
    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def set_add(self, name: str, member: str) -> None: ...

    @abstractmethod
    async def set_members(self, name: str) -> Set[str]: ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryCoordinationStore(CoordinationStore):
    """Process-local store.

    Used for single-node mode and in tests, where several apps can share
    one instance to behave like nodes behind one Redis.
    """

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)

    async def set_add(self, name: str, member: str) -> None:
        self.sets.setdefault(name, set()).add(member)

    async def set_members(self, name: str) -> Set[str]:
        return set(self.sets.get(name, set()))


class RedisCoordinationStore(CoordinationStore):
    """Coordination store backed by a Redis server.

    Every call is bounded by the connect/socket timeout and is never
    retried, so an unreachable server costs at most one timeout per call.
    Each call also has a hard deadline of twice the timeout.
    """

    def __init__(self, url: str, timeout: float = 0.5, client: Optional[aioredis.Redis] = None):
        self.url = url
        self.deadline = 2 * timeout
        if client is None:
            client = aioredis.Redis.from_url(
                url,
                decode_responses=True,
                encoding="utf-8",
                socket_connect_timeout=timeout,
                socket_timeout=timeout,
                retry_on_timeout=False,
                retry=Retry(NoBackoff(), 0),
            )
        self._client = client

    async def _call(self, operation: str, pending: Awaitable):
        try:
            return await asyncio.wait_for(pending, self.deadline)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise CoordinationUnavailable(operation, e) from e

    async def set(self, key: str, value: str) -> None:
        await self._call("set", self._client.set(key, value))

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", self._client.get(key))

    async def delete(self, key: str) -> None:
        await self._call("delete", self._client.delete(key))

    async def set_add(self, name: str, member: str) -> None:
        await self._call("sadd", self._client.sadd(name, member))

    async def set_members(self, name: str) -> Set[str]:
        return set(await self._call("smembers", self._client.smembers(name)))

    async def ping(self) -> bool:
        try:
            return bool(await self._call("ping", self._client.ping()))
        except CoordinationUnavailable as e:
            logger.warning("Redis ping failed: %s", e.cause)
            return False

    async def close(self) -> None:
        await self._client.aclose()
