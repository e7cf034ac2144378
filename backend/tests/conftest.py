from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fakeredis import aioredis

from pokerledger.errors import TransientNetworkError
from pokerledger.models import ContributionRecord, Participant, Session
from pokerledger.repositories.local_repo import LocalKeyValueRepository
from pokerledger.services.local_store import LocalStore

T0 = datetime(2024, 5, 1, 19, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRemote:
    """In-memory stand-in for RemoteSessionRepository."""

    def __init__(self):
        self.owned = []
        self.granted = []
        self.fetches = 0
        self.calls = []
        self.fail_with = None
        self.on_fetch = None

    async def list_owned(self):
        self.fetches += 1
        if self.on_fetch:
            self.on_fetch()
        if self.fail_with:
            raise self.fail_with
        return [dict(s) for s in self.owned]

    async def list_granted(self):
        if self.fail_with:
            raise self.fail_with
        return [dict(s) for s in self.granted]

    async def create(self, session):
        if self.fail_with:
            raise self.fail_with
        self.calls.append(("create", session.id))
        if any(s["id"] == session.id for s in self.owned):
            return False
        self.owned.append(session.model_dump(mode="json", exclude={"is_owner"}))
        return True

    async def update(self, session):
        if self.fail_with:
            raise self.fail_with
        self.calls.append(("update", session.id))
        for i, s in enumerate(self.owned):
            if s["id"] == session.id:
                self.owned[i] = session.model_dump(mode="json", exclude={"is_owner"})
                return True
        return False

    async def delete(self, session_id):
        if self.fail_with:
            raise self.fail_with
        self.calls.append(("delete", session_id))
        before = len(self.owned)
        self.owned = [s for s in self.owned if s["id"] != session_id]
        return len(self.owned) != before

    async def revoke_access(self, session_id):
        if self.fail_with:
            raise self.fail_with
        self.calls.append(("revoke", session_id))
        before = len(self.granted)
        self.granted = [s for s in self.granted if s["id"] != session_id]
        return len(self.granted) != before


def make_participant(pid="p1", name="Alice", stack=250, buy_in=2500, **kw) -> Participant:
    return Participant(
        id=pid,
        name=name,
        point_stack=stack,
        contributions=[ContributionRecord(log_id=f"log-{pid}", amount=buy_in, time=T0)],
        **kw,
    )


def make_session(sid="s1", name="Friday Game", participants=None, **kw) -> Session:
    fields = dict(
        id=sid,
        name=name,
        start_time=T0,
        point_to_cash_rate=Decimal("0.10"),
        standard_buy_in=2500,
        participants=participants if participants is not None else [make_participant()],
    )
    fields.update(kw)
    return Session(**fields)


def remote_doc(session: Session, **overrides) -> dict:
    doc = session.model_dump(mode="json", exclude={"is_owner"})
    doc.update(overrides)
    return doc


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis_client():
    return aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def local_repo(redis_client):
    return LocalKeyValueRepository(redis_client, namespace="test-ledger")


@pytest.fixture
def store(local_repo, clock):
    return LocalStore(local_repo, clock=clock)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def network_down():
    return TransientNetworkError("connection refused")
