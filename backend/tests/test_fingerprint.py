from datetime import timedelta
from decimal import Decimal

from conftest import T0, make_participant, make_session
from pokerledger.fingerprint import fingerprint
from pokerledger.services import game_service


def test_list_order_does_not_matter():
    a = make_session("a")
    b = make_session("b")
    assert fingerprint([a, b]) == fingerprint([b, a])


def test_participant_order_matters():
    p1 = make_participant("p1", "Alice")
    p2 = make_participant("p2", "Bob")
    assert fingerprint([make_session(participants=[p1, p2])]) != fingerprint([make_session(participants=[p2, p1])])


def test_meaningful_changes_change_fingerprint():
    base = make_session()
    fp = fingerprint([base])
    assert fingerprint([base.model_copy(update={"name": "Other"})]) != fp
    assert fingerprint([base.model_copy(update={"end_time": T0 + timedelta(hours=3)})]) != fp
    assert fingerprint([base.model_copy(update={"standard_buy_in": 5000})]) != fp
    assert fingerprint([base.model_copy(update={"is_owner": False})]) != fp
    stack = base.participants[0].model_copy(update={"point_stack": 100})
    assert fingerprint([base.model_copy(update={"participants": [stack]})]) != fp


def test_equal_content_equal_fingerprint():
    assert fingerprint([make_session()]) == fingerprint([make_session()])
    assert fingerprint([]) == fingerprint([])


def test_same_edits_in_either_order_same_fingerprint():
    base = game_service.new_session("Friday", Decimal("0.10"), 2500, now=T0)
    base = game_service.add_participant(base, "Alice", participant_id="p1", now=T0)
    base = game_service.add_participant(base, "Bob", participant_id="p2", now=T0)

    first = game_service.buy_in(base, "p1", 2000, now=T0 + timedelta(minutes=10))
    first = game_service.buy_in(first, "p2", 1000, now=T0 + timedelta(minutes=20))
    first = game_service.cash_out(first, "p1", 50, now=T0 + timedelta(minutes=30))

    second = game_service.cash_out(base, "p1", 50, now=T0 + timedelta(minutes=5))
    second = game_service.buy_in(second, "p2", 1000, now=T0 + timedelta(minutes=6))
    second = game_service.buy_in(second, "p1", 2000, now=T0 + timedelta(minutes=7))

    assert first != second
    assert fingerprint([first]) == fingerprint([second])
