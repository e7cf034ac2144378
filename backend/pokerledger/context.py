# pokerledger/context.py
"""Client-side wiring: local store, remote client, sync coordinator and timers."""

import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import redis.asyncio as redis

from pokerledger.config import API_BASE_URL, LOCAL_NAMESPACE, REDIS_URI, SYNC_TIMEOUT_POOR_SECONDS
from pokerledger.repositories.local_repo import LocalKeyValueRepository
from pokerledger.repositories.remote_repo import RemoteSessionRepository
from pokerledger.services.autosave import AutoSaver
from pokerledger.services.local_store import LocalStore
from pokerledger.services.sync_scheduler import SyncScheduler
from pokerledger.services.sync_service import SyncCoordinator
from pokerledger.services.sync_state import SyncPolicy


@dataclass
class ClientContext:
    redis: redis.Redis
    http: httpx.AsyncClient
    store: LocalStore
    remote: RemoteSessionRepository
    coordinator: SyncCoordinator
    autosaver: AutoSaver
    scheduler: SyncScheduler

    async def aclose(self):
        await self.scheduler.shutdown()
        await self.http.aclose()
        await self.redis.aclose()


def build_client_context(
    get_user_id: Callable[[], Optional[str]],
    get_token: Callable[[], Optional[str]],
    redis_client: Optional[redis.Redis] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    namespace: str = LOCAL_NAMESPACE,
    policy: SyncPolicy = SyncPolicy(),
    clock: Callable[[], float] = time.time,
) -> ClientContext:
    redis_client = redis_client or redis.from_url(REDIS_URI, decode_responses=True)
    # 個々の同期はコーディネーター側のタイムアウトで打ち切る
    http_client = http_client or httpx.AsyncClient(base_url=API_BASE_URL, timeout=SYNC_TIMEOUT_POOR_SECONDS)

    store = LocalStore(LocalKeyValueRepository(redis_client, namespace=namespace), clock=clock)
    remote = RemoteSessionRepository(http_client, get_token)
    coordinator = SyncCoordinator(store, remote, get_user_id, policy=policy, clock=clock)
    autosaver = AutoSaver(store, lambda: coordinator.sessions)
    scheduler = SyncScheduler(coordinator, autosaver)
    return ClientContext(
        redis=redis_client,
        http=http_client,
        store=store,
        remote=remote,
        coordinator=coordinator,
        autosaver=autosaver,
        scheduler=scheduler,
    )
