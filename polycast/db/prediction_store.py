"""
Prediction Store
================
Key/value + index operations the ledger needs, behind one async interface.

Implementations:
- RedisPredictionStore: redis-py asyncio client (production)
- InMemoryPredictionStore: dict-backed, for tests and local runs

Composite operations (save_indexed, settle_atomically) are single
transactions so a record and its indices can never disagree.
"""
import asyncio
import logging
import time
from collections import defaultdict
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple, Union

import redis.asyncio as redis
from redis.exceptions import WatchError

from polycast.config.settings import Settings
from polycast.services.errors import SettlementConflictError

logger = logging.getLogger(__name__)

Score = Union[float, str]


class PredictionStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def mget(self, keys: Sequence[str]) -> List[Optional[str]]: ...

    async def zadd(self, key: str, score: float, member: str) -> None: ...

    async def zrangebyscore(self, key: str, min_score: Score, max_score: Score) -> List[str]: ...

    async def zcount(self, key: str, min_score: Score, max_score: Score) -> int: ...

    async def zscore(self, key: str, member: str) -> Optional[float]: ...

    async def zrem(self, key: str, member: str) -> None: ...

    async def sadd(self, key: str, member: str) -> None: ...

    async def srem(self, key: str, member: str) -> None: ...

    async def scard(self, key: str) -> int: ...

    async def smembers(self, key: str) -> Set[str]: ...

    async def sismember(self, key: str, member: str) -> bool: ...

    async def save_indexed(
        self,
        record_key: str,
        value: str,
        ttl_seconds: int,
        timeline_key: str,
        pending_key: str,
        member: str,
        score: float,
    ) -> None: ...

    async def settle_atomically(
        self,
        record_key: str,
        expected: str,
        value: str,
        ttl_seconds: int,
        pending_key: str,
        settled_key: str,
        member: str,
        score: float,
    ) -> None: ...


def _to_bound(value: Score) -> float:
    if isinstance(value, str):
        if value in ("+inf", "inf"):
            return float("inf")
        if value == "-inf":
            return float("-inf")
        return float(value)
    return float(value)


class RedisPredictionStore:
    """
    Redis-backed store

    Uses MULTI/EXEC pipelines for composite writes and WATCH on the record
    key for the settlement compare-and-swap.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = ""):
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str, key_prefix: str = "", socket_timeout: float = 5.0) -> "RedisPredictionStore":
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=socket_timeout,
        )
        logger.info(f"✅ Prediction store configured for {redis_url}")
        return cls(client, key_prefix=key_prefix)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisPredictionStore":
        return cls.from_url(settings.redis_url, settings.redis_key_prefix, settings.redis_socket_timeout)

    def _k(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def close(self) -> None:
        await self.client.aclose()

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(self._k(key))

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self.client.set(self._k(key), value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._k(key))

    async def mget(self, keys: Sequence[str]) -> List[Optional[str]]:
        if not keys:
            return []
        async with self.client.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.get(self._k(key))
            return await pipe.execute()

    async def zadd(self, key: str, score: float, member: str) -> None:
        await self.client.zadd(self._k(key), {member: score})

    async def zrangebyscore(self, key: str, min_score: Score, max_score: Score) -> List[str]:
        return await self.client.zrangebyscore(self._k(key), min_score, max_score)

    async def zcount(self, key: str, min_score: Score, max_score: Score) -> int:
        return await self.client.zcount(self._k(key), min_score, max_score)

    async def zscore(self, key: str, member: str) -> Optional[float]:
        return await self.client.zscore(self._k(key), member)

    async def zrem(self, key: str, member: str) -> None:
        await self.client.zrem(self._k(key), member)

    async def sadd(self, key: str, member: str) -> None:
        await self.client.sadd(self._k(key), member)

    async def srem(self, key: str, member: str) -> None:
        await self.client.srem(self._k(key), member)

    async def scard(self, key: str) -> int:
        return await self.client.scard(self._k(key))

    async def smembers(self, key: str) -> Set[str]:
        return set(await self.client.smembers(self._k(key)))

    async def sismember(self, key: str, member: str) -> bool:
        return bool(await self.client.sismember(self._k(key), member))

    async def save_indexed(self, record_key, value, ttl_seconds, timeline_key, pending_key, member, score) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(self._k(record_key), value, ex=ttl_seconds)
            pipe.zadd(self._k(timeline_key), {member: score})
            pipe.sadd(self._k(pending_key), member)
            await pipe.execute()

    async def settle_atomically(
        self, record_key, expected, value, ttl_seconds, pending_key, settled_key, member, score
    ) -> None:
        """
        Write the settled record and move it pending -> settled in one
        transaction, only if the stored record still equals `expected`.

        Raises:
            SettlementConflictError: record changed since it was read
        """
        key = self._k(record_key)
        async with self.client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current != expected:
                    await pipe.unwatch()
                    raise SettlementConflictError(f"{record_key} changed before settlement")
                pipe.multi()
                pipe.set(key, value, ex=ttl_seconds)
                pipe.srem(self._k(pending_key), member)
                pipe.zadd(self._k(settled_key), {member: score})
                await pipe.execute()
            except WatchError as e:
                raise SettlementConflictError(f"Concurrent write on {record_key}") from e


class InMemoryPredictionStore:
    """
    Dict-backed store with the same semantics as RedisPredictionStore.
    TTL is enforced lazily on read.
    """

    def __init__(self):
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        self._sets: Dict[str, Set[str]] = defaultdict(set)
        self._zsets: Dict[str, Dict[str, float]] = defaultdict(dict)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _live(self, key: str) -> Optional[str]:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.time() >= expires_at:
            del self._values[key]
            return None
        return value

    def _set(self, key: str, value: str, ttl_seconds: Optional[int]) -> None:
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        self._values[key] = (value, expires_at)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until expiry, None when persistent or missing"""
        entry = self._values.get(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - time.time()

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._set(key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    async def mget(self, keys: Sequence[str]) -> List[Optional[str]]:
        return [self._live(k) for k in keys]

    async def zadd(self, key: str, score: float, member: str) -> None:
        self._zsets[key][member] = float(score)

    async def zrangebyscore(self, key: str, min_score: Score, max_score: Score) -> List[str]:
        low, high = _to_bound(min_score), _to_bound(max_score)
        members = [(s, m) for m, s in self._zsets.get(key, {}).items() if low <= s <= high]
        return [m for s, m in sorted(members)]

    async def zcount(self, key: str, min_score: Score, max_score: Score) -> int:
        return len(await self.zrangebyscore(key, min_score, max_score))

    async def zscore(self, key: str, member: str) -> Optional[float]:
        return self._zsets.get(key, {}).get(member)

    async def zrem(self, key: str, member: str) -> None:
        self._zsets.get(key, {}).pop(member, None)

    async def sadd(self, key: str, member: str) -> None:
        self._sets[key].add(member)

    async def srem(self, key: str, member: str) -> None:
        self._sets.get(key, set()).discard(member)

    async def scard(self, key: str) -> int:
        return len(self._sets.get(key, set()))

    async def smembers(self, key: str) -> Set[str]:
        return set(self._sets.get(key, set()))

    async def sismember(self, key: str, member: str) -> bool:
        return member in self._sets.get(key, set())

    async def save_indexed(self, record_key, value, ttl_seconds, timeline_key, pending_key, member, score) -> None:
        async with self._locks[record_key]:
            self._set(record_key, value, ttl_seconds)
            self._zsets[timeline_key][member] = float(score)
            self._sets[pending_key].add(member)

    async def settle_atomically(
        self, record_key, expected, value, ttl_seconds, pending_key, settled_key, member, score
    ) -> None:
        async with self._locks[record_key]:
            if self._live(record_key) != expected:
                raise SettlementConflictError(f"{record_key} changed before settlement")
            self._set(record_key, value, ttl_seconds)
            self._sets[pending_key].discard(member)
            self._zsets[settled_key][member] = float(score)
