from decimal import Decimal

from conftest import make_participant, make_session
from pokerledger import validation
from pokerledger.validation import (
    audit_session,
    compute_physical_points,
    recompute_derived,
    repair_session,
    repair_sessions,
    salvage_session,
)


def raw_session(**overrides):
    raw = make_session().model_dump(mode="json")
    raw.update(overrides)
    return raw


def test_valid_session_passes_without_warnings():
    session, warnings = repair_session(raw_session(physical_points_on_table=250))
    assert session is not None
    assert warnings == []
    assert session.physical_points_on_table == 250


def test_missing_fields_get_defaults():
    session, warnings = repair_session({"participants": []})
    assert session.id.startswith("session-")
    assert session.name == "Unnamed Game"
    assert session.status == "active"
    assert session.point_to_cash_rate == Decimal("0.10")
    assert session.standard_buy_in == 2500
    assert session.is_owner is True
    assert any("without id" in w for w in warnings)


def test_negative_and_non_numeric_values_are_clamped():
    raw = raw_session()
    raw["participants"][0]["point_stack"] = -40
    raw["participants"][0]["cash_out_amount"] = "lots"
    raw["point_to_cash_rate"] = "NaN"
    session, warnings = repair_session(raw)
    p = session.participants[0]
    assert p.point_stack == 0
    assert p.cash_out_amount == 0
    assert session.point_to_cash_rate == Decimal("0.10")
    assert len(warnings) == 3


def test_cashed_out_early_stack_reset():
    raw = raw_session()
    raw["participants"][0].update(status="cashed_out_early", point_stack=75, points_left_on_table=30)
    session, warnings = repair_session(raw)
    p = session.participants[0]
    assert p.point_stack == 0
    assert session.physical_points_on_table == 30
    assert any("reset to 0" in w for w in warnings)


def test_physical_points_recomputed_and_mismatch_warned():
    session, warnings = repair_session(raw_session(physical_points_on_table=999))
    assert session.physical_points_on_table == 250
    assert any("mismatch" in w for w in warnings)


def test_completed_session_has_no_points_on_table():
    session = recompute_derived(make_session(status="completed"))
    assert session.physical_points_on_table == 0


def test_physical_points_counts_active_stacks_and_left_points():
    players = [
        make_participant("p1", stack=100),
        make_participant("p2", "Bob", stack=0, status="cashed_out_early", points_left_on_table=40),
    ]
    assert compute_physical_points(players) == 140


def test_one_bad_session_does_not_sink_the_batch():
    sessions = repair_sessions([raw_session(id="good"), "garbage", 7, raw_session(id="also-good")])
    assert [s.id for s in sessions] == ["good", "also-good"]


def test_malformed_participants_dropped():
    raw = raw_session()
    raw["participants"].append("not a player")
    session, warnings = repair_session(raw)
    assert len(session.participants) == 1
    assert any("malformed participant" in w for w in warnings)


def test_salvage_legacy_layout():
    legacy = {
        "id": "old-1",
        "name": "Old Game",
        "startTime": "2023-01-01T20:00:00+00:00",
        "pointToCashRate": 0.1,
        "standardBuyInAmount": 25.0,
        "status": "active",
        "playersInGame": [{
            "playerId": "p1",
            "name": "Alice",
            "pointStack": 250,
            "cashOutAmount": 12.5,
            "buyIns": [{"logId": "b1", "amount": 25, "time": "2023-01-01T20:00:00+00:00"}],
            "cashOutLog": [],
            "status": "active",
        }],
    }
    session, _ = repair_session(salvage_session(legacy))
    assert session.id == "old-1"
    assert session.standard_buy_in == 2500
    p = session.participants[0]
    assert p.id == "p1"
    assert p.cash_out_amount == 1250
    assert p.contributions[0].amount == 2500


def test_salvage_ignores_non_list_fields():
    legacy = {
        "id": "old-2",
        "pointToCashRate": 0.1,
        "playersInGame": [{"playerId": "p1", "name": "Ann", "buyIns": 5, "cashOutLog": "x"}],
    }
    salvaged = salvage_session(legacy)
    assert salvaged["participants"][0]["contributions"] == []
    assert salvaged["participants"][0]["cash_out_log"] == []
    assert salvage_session({"id": "old-3", "playersInGame": 3})["participants"] == []


def test_huge_stored_points_are_recomputed():
    session, warnings = repair_session(raw_session(physical_points_on_table=10**400))
    assert session.physical_points_on_table == 250
    assert any("mismatch" in w for w in warnings)


def test_session_that_fails_repair_is_dropped_alone(monkeypatch):
    real = validation.recompute_derived

    def explode_on_bad(session):
        if session.id == "bad":
            raise RuntimeError("boom")
        return real(session)

    monkeypatch.setattr(validation, "recompute_derived", explode_on_bad)
    sessions = repair_sessions([raw_session(id="good"), raw_session(id="bad"), raw_session(id="last")])
    assert [s.id for s in sessions] == ["good", "last"]


def test_salvage_leaves_current_layout_alone():
    raw = raw_session()
    assert salvage_session(raw) is raw


def test_audit_flags_duplicate_names_and_missing_buy_ins():
    players = [make_participant("p1", "Alice"), make_participant("p2", "alice ")]
    players.append(make_participant("p3", "Bob").model_copy(update={"contributions": [], "point_stack": 0}))
    report = audit_session(recompute_derived(make_session(participants=players)))
    assert not report.is_valid
    assert any("Duplicate" in e for e in report.errors)
    assert any("no buy-ins" in e for e in report.errors)


def test_audit_clean_session():
    report = audit_session(recompute_derived(make_session()))
    assert report.is_valid
    assert report.warnings == []
