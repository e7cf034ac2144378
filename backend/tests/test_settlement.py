import itertools
import random

import pytest

from pokerledger.settlement import NetBalance, Transfer, apply_transfers, compute_settlements


def pairs(result):
    return [(t.from_id, t.to_id, t.amount) for t in result.transfers]


def test_single_creditor_collects_from_each_debtor():
    result = compute_settlements([("A", 30), ("B", -10), ("C", -20)])
    assert pairs(result) == [("B", "A", 10), ("C", "A", 20)]
    assert result.warning is None


def test_single_debtor_pays_each_creditor():
    result = compute_settlements([("A", 15), ("B", 5), ("C", -20)])
    assert pairs(result) == [("C", "A", 15), ("C", "B", 5)]
    assert result.warning is None


def test_all_even_needs_no_transfers():
    result = compute_settlements([("A", 0), ("B", 0)])
    assert result.transfers == []
    assert result.warning is None


def test_imbalanced_ledger_still_settles_and_warns():
    result = compute_settlements([("A", 10), ("B", -5)])
    assert pairs(result) == [("B", "A", 5)]
    assert result.warning is not None
    assert result.warning.residual == 5


def test_tolerance_suppresses_small_residual():
    result = compute_settlements([("A", 10), ("B", -9)], tolerance=1)
    assert result.warning is None


def test_empty_input():
    result = compute_settlements([])
    assert result.transfers == []
    assert result.warning is None


def test_accepts_models_and_dicts():
    result = compute_settlements([
        NetBalance(participant_id="A", net_balance=700),
        {"participant_id": "B", "net_balance": -300},
        {"participantId": "C", "netBalance": -400},
    ])
    assert pairs(result) == [("B", "A", 300), ("C", "A", 400)]


def test_duplicate_participant_rejected():
    with pytest.raises(ValueError):
        compute_settlements([("A", 10), ("A", -10)])


def test_float_balance_rejected():
    with pytest.raises(ValueError):
        compute_settlements([("A", 10.5), ("B", -10.5)])


def test_result_is_deterministic():
    balances = [("A", 500), ("B", -200), ("C", 100), ("D", -400), ("E", 0)]
    first = compute_settlements(balances)
    for _ in range(5):
        assert compute_settlements(balances) == first


def test_tied_amounts_follow_input_order():
    result = compute_settlements([("A", 10), ("B", 10), ("C", -10), ("D", -10)])
    assert pairs(result) == [("C", "A", 10), ("D", "B", 10)]


@pytest.mark.parametrize("seed", range(25))
def test_random_balanced_ledgers_settle_exactly(seed):
    rng = random.Random(seed)
    n = rng.randint(2, 9)
    amounts = [rng.randint(-50_000, 50_000) for _ in range(n - 1)]
    amounts.append(-sum(amounts))
    balances = [(f"p{i}", a) for i, a in enumerate(amounts)]

    result = compute_settlements(balances)

    remaining = apply_transfers(balances, result.transfers)
    assert all(v == 0 for v in remaining.values())
    assert all(t.amount > 0 for t in result.transfers)
    assert all(t.from_id != t.to_id for t in result.transfers)
    nonzero = sum(1 for a in amounts if a != 0)
    assert len(result.transfers) <= max(0, nonzero - 1)
    assert result.warning is None


def test_nobody_pays_and_receives():
    balances = [("A", 900), ("B", -100), ("C", -300), ("D", 200), ("E", -700)]
    result = compute_settlements(balances)
    payers = {t.from_id for t in result.transfers}
    payees = {t.to_id for t in result.transfers}
    assert payers.isdisjoint(payees)
    assert payers == {"B", "C", "E"}
    assert payees == {"A", "D"}


def test_apply_transfers():
    remaining = apply_transfers([("A", 10), ("B", -10)], [Transfer(from_id="B", to_id="A", amount=4)])
    assert remaining == {"A": 6, "B": -6}


def test_transfer_count_small_for_permutations():
    base = [("A", 60), ("B", -20), ("C", -40), ("D", 0)]
    for perm in itertools.permutations(base):
        result = compute_settlements(list(perm))
        assert len(result.transfers) == 2
