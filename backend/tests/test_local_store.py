import json

from datetime import timedelta
from decimal import Decimal

from conftest import T0, make_session
from pokerledger.errors import StorageQuotaError
from pokerledger.repositories.local_repo import LocalKeyValueRepository
from pokerledger.services import game_service
from pokerledger.services.local_store import BACKUP_KEY, PRIMARY_KEY, STATE_VERSION, LocalStore


async def test_save_then_load_round_trip(store):
    sessions = [make_session("a"), make_session("b", name="Saturday")]
    assert await store.save(sessions) is True
    loaded = await store.load()
    assert [s.id for s in loaded] == ["a", "b"]
    assert loaded[1].name == "Saturday"
    assert loaded[0].physical_points_on_table == 250


async def test_load_empty_store(store):
    assert await store.load() == []


async def test_envelope_shape(store, local_repo, clock):
    await store.save([make_session()])
    envelope = json.loads(await local_repo.get(PRIMARY_KEY))
    assert envelope["version"] == STATE_VERSION
    assert envelope["timestamp"] == int(clock.now * 1000)
    assert envelope["sessions"][0]["id"] == "s1"


async def test_backups_rotate_newest_first(store, local_repo):
    for name in ["one", "two", "three", "four", "five"]:
        await store.save([make_session(name=name)])

    names = []
    for i in range(3):
        envelope = json.loads(await local_repo.get(BACKUP_KEY.format(i)))
        names.append(envelope["sessions"][0]["name"])
    assert names == ["four", "three", "two"]


async def test_identical_save_does_not_push_duplicate_backup(store, local_repo):
    await store.save([make_session(name="one")])
    await store.save([make_session(name="two")])
    await store.save([make_session(name="two")])
    await store.save([make_session(name="two")])
    backup0 = json.loads(await local_repo.get(BACKUP_KEY.format(0)))
    backup1 = json.loads(await local_repo.get(BACKUP_KEY.format(1)))
    assert backup0["sessions"][0]["name"] == "two"
    assert backup1["sessions"][0]["name"] == "one"


async def test_corrupt_primary_falls_back_to_backup(store, local_repo):
    await store.save([make_session(name="good")])
    await store.save([make_session(name="newer")])
    await local_repo.set(PRIMARY_KEY, "{not json")
    loaded = await store.load()
    assert [s.name for s in loaded] == ["good"]


async def test_everything_corrupt_loads_empty(store, local_repo):
    await local_repo.set(PRIMARY_KEY, "[]")
    await local_repo.set(BACKUP_KEY.format(0), "garbage")
    assert await store.load() == []


async def test_unknown_version_is_migrated_without_raising(store, local_repo):
    legacy = {
        "version": "2.1",
        "timestamp": 1,
        "sessions": [
            {
                "id": "old",
                "name": "Old",
                "pointToCashRate": 0.25,
                "standardBuyInAmount": 20,
                "playersInGame": [{"playerId": "p1", "name": "Ann", "pointStack": 80, "buyIns": [], "cashOutAmount": 0}],
            },
            {"no": "id"},
            "junk",
        ],
    }
    await local_repo.set(PRIMARY_KEY, json.dumps(legacy))
    loaded = await store.load()
    assert [s.id for s in loaded] == ["old"]
    assert loaded[0].standard_buy_in == 2000
    assert loaded[0].participants[0].point_stack == 80

    # migrated data is written back in the current format
    envelope = json.loads(await local_repo.get(PRIMARY_KEY))
    assert envelope["version"] == STATE_VERSION


async def test_unknown_version_with_unusable_sessions(store, local_repo):
    await local_repo.set(PRIMARY_KEY, json.dumps({"version": "9.9", "sessions": "nope"}))
    assert await store.load() == []


async def test_quota_failure_keeps_previous_state(redis_client, clock):
    small = LocalStore(LocalKeyValueRepository(redis_client, namespace="tiny", max_value_bytes=1500), clock=clock)
    assert await small.save([make_session(name="fits")]) is True

    many = [make_session(f"s{i}", name="x" * 40) for i in range(20)]
    assert await small.save(many) is False

    loaded = await small.load()
    assert [s.name for s in loaded] == ["fits"]


async def test_repo_raises_quota_error(redis_client):
    repo = LocalKeyValueRepository(redis_client, namespace="q", max_value_bytes=4)
    try:
        await repo.set("k", "too long")
    except StorageQuotaError as e:
        assert e.limit == 4
    else:
        raise AssertionError("expected StorageQuotaError")


async def test_outbox_round_trip(store):
    ops = [{"op": "create", "session_id": "a"}, {"op": "delete", "session_id": "b"}]
    assert await store.save_outbox(ops) is True
    assert await store.load_outbox() == ops


async def test_outbox_garbage_is_ignored(store, local_repo):
    await local_repo.set("outbox", json.dumps([{"op": "create"}, "x", {"op": "update", "session_id": "a"}]))
    assert await store.load_outbox() == [{"op": "update", "session_id": "a"}]


async def test_clear_only_touches_namespace(store, redis_client):
    await redis_client.set("other:key", "keep")
    await store.save([make_session()])
    await store.clear()
    assert await store.load() == []
    assert await redis_client.get("other:key") == "keep"


async def test_prune_old_backups(store, clock):
    await store.save([make_session(name="old")])
    clock.advance(2 * 24 * 3600)
    await store.save([make_session(name="new")])
    clock.advance(60)
    await store.save([make_session(name="newest")])

    removed = await store.prune_backups()
    assert removed == 1
    diag = await store.diagnostics()
    assert diag["backup_count"] == 1


async def test_diagnostics(store):
    await store.save([make_session()])
    diag = await store.diagnostics()
    assert diag["has_primary"] is True
    assert diag["primary_version"] == STATE_VERSION
    assert diag["backup_count"] == 0
    assert diag["has_outbox"] is False


def rich_sessions():
    s = game_service.new_session("Home Game", Decimal("0.25"), 4000, owner_id="u1", now=T0)
    s = game_service.add_participant(s, "Ann", participant_id="p1", now=T0)
    s = game_service.add_participant(s, "Ben", participant_id="p2", now=T0)
    s = game_service.add_participant(s, "Cat", participant_id="p3", now=T0)
    s = game_service.buy_in(s, "p2", 2000, now=T0 + timedelta(minutes=30))
    s = game_service.cash_out(s, "p1", 60, now=T0 + timedelta(hours=1))
    s = game_service.cash_out(s, "p3", 100, leave_table=True, now=T0 + timedelta(hours=2))
    active = s.model_copy(update={"invited_users": ["u2"]})

    done = game_service.new_session("Last Week", Decimal("0.10"), 2500, owner_id="u2", now=T0 - timedelta(days=7))
    done = game_service.add_participant(done, "Dee", participant_id="d1", now=T0 - timedelta(days=7))
    done = game_service.add_participant(done, "Eve", participant_id="d2", now=T0 - timedelta(days=7))
    done = game_service.finalize(done, {"d1": 400, "d2": 100}, now=T0 - timedelta(days=6))
    shared = done.model_copy(update={"is_owner": False})
    return [active, shared]


async def test_rich_sessions_round_trip_structurally(store):
    sessions = rich_sessions()
    assert sessions[0].participants[2].points_left_on_table == 60
    assert sessions[1].end_time is not None
    assert await store.save(sessions) is True
    assert await store.load() == sessions


async def test_bad_legacy_session_does_not_sink_migration(store, local_repo):
    legacy = {
        "version": "2.1",
        "sessions": [
            {
                "id": "good",
                "name": "Good",
                "pointToCashRate": 0.1,
                "standardBuyInAmount": 25,
                "playersInGame": [{"playerId": "p1", "name": "Ann", "pointStack": 250, "buyIns": []}],
            },
            {
                "id": "bad",
                "name": "Bad",
                "pointToCashRate": 0.1,
                "standardBuyInAmount": 25,
                "playersInGame": [{"playerId": "p1", "name": "Ann", "buyIns": 5, "cashOutLog": True}],
            },
            {"id": "worse", "playersInGame": 7},
        ],
    }
    await local_repo.set(PRIMARY_KEY, json.dumps(legacy))
    loaded = await store.load()
    assert [s.id for s in loaded] == ["good", "bad", "worse"]
    assert loaded[1].participants[0].contributions == []
    assert loaded[1].participants[0].cash_out_log == []
    assert loaded[2].participants == []


async def test_huge_stored_points_do_not_sink_the_load(store, local_repo):
    good = make_session("good").model_dump(mode="json")
    huge = make_session("huge").model_dump(mode="json")
    huge["physical_points_on_table"] = 10**400
    envelope = {"version": STATE_VERSION, "timestamp": 1, "sessions": [good, huge]}
    await local_repo.set(PRIMARY_KEY, json.dumps(envelope))
    loaded = await store.load()
    assert [s.id for s in loaded] == ["good", "huge"]
    assert loaded[1].physical_points_on_table == 250
