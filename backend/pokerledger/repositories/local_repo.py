# pokerledger/repositories/local_repo.py

from typing import List, Optional

import redis.asyncio as redis

from pokerledger.config import LOCAL_MAX_BYTES, LOCAL_NAMESPACE
from pokerledger.errors import StorageQuotaError


class LocalKeyValueRepository:
    """Namespaced key/value slots on the device.

    No transactions across keys: callers that need to survive a half-written
    key keep their own backups.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        namespace: str = LOCAL_NAMESPACE,
        max_value_bytes: int = LOCAL_MAX_BYTES,
    ):
        self.redis = redis_client
        self.namespace = namespace
        self.max_value_bytes = max_value_bytes

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        size = len(value.encode("utf-8"))
        if size > self.max_value_bytes:
            raise StorageQuotaError(key, size, self.max_value_bytes)
        await self.redis.set(self._key(key), value)

    async def remove(self, key: str) -> None:
        await self.redis.delete(self._key(key))

    async def keys(self) -> List[str]:
        prefix = self._key("")
        return [k[len(prefix):] async for k in self.redis.scan_iter(f"{prefix}*")]

    async def clear(self) -> None:
        # 名前空間内のキーだけ削除
        keys = [k async for k in self.redis.scan_iter(self._key("*"))]
        if keys:
            await self.redis.delete(*keys)
