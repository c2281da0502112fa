"""Pass lock: at most one recurring invoice pass runs at a time.

Two layers:
  - an in-process asyncio.Lock (one event loop, one pass)
  - a Redis key set with NX + EX, shared by every replica

Usage:
    async with pass_lock.hold() as acquired:
        if not acquired:
            return  # another pass is running
        ...

If Redis cannot be reached the pass still runs under the in-process lock;
the TTL bounds how long a crashed holder can block other replicas.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.utils.redis_client import get_redis

logger = logging.getLogger(__name__)

# Delete the key only if we still own it (the TTL may have handed it on).
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


@dataclass
class PassLock:
    key: str = "billflow:recurring:lock"
    ttl_seconds: int = 3600
    distributed: bool = True
    redis_factory: Callable[[], Awaitable[redis.Redis]] = get_redis
    _local: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Yield True while holding the lock, False if someone else has it."""
        if self._local.locked():
            yield False
            return

        async with self._local:
            token: str | None = None
            if self.distributed:
                acquired, token = await self._acquire_remote()
                if not acquired:
                    yield False
                    return
            try:
                yield True
            finally:
                if token:
                    await self._release_remote(token)

    async def _acquire_remote(self) -> tuple[bool, str | None]:
        token = uuid.uuid4().hex
        try:
            client = await self.redis_factory()
            ok = await client.set(self.key, token, nx=True, ex=self.ttl_seconds)
        except (RedisError, OSError) as e:
            logger.warning(
                "Redis unavailable for pass lock %s, continuing with local lock: %s",
                self.key, e,
            )
            return True, None
        return bool(ok), token if ok else None

    async def _release_remote(self, token: str) -> None:
        try:
            client = await self.redis_factory()
            await client.eval(_RELEASE_SCRIPT, 1, self.key, token)
        except (RedisError, OSError) as e:
            logger.warning("Failed to release pass lock %s: %s", self.key, e)
