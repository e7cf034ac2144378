# pokerledger/settlement.py
"""Settlement engine.

Turns per-participant net balances (integer minor units) into a short list
of debtor -> creditor transfers. Pure: no storage, no network, no clock.
"""

from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, StrictInt


class NetBalance(BaseModel):
    participant_id: str
    net_balance: StrictInt


class Transfer(BaseModel):
    from_id: str
    to_id: str
    amount: int


class SettlementImbalance(BaseModel):
    residual: int
    message: str


class SettlementResult(BaseModel):
    transfers: List[Transfer] = []
    warning: Optional[SettlementImbalance] = None


BalanceInput = Union[NetBalance, dict, tuple]


class _Party:
    __slots__ = ("index", "participant_id", "remaining")

    def __init__(self, index: int, participant_id: str, remaining: int):
        self.index = index
        self.participant_id = participant_id
        self.remaining = remaining


def _coerce(item: BalanceInput) -> NetBalance:
    if isinstance(item, NetBalance):
        return item
    if isinstance(item, tuple):
        participant_id, net_balance = item
        return NetBalance(participant_id=participant_id, net_balance=net_balance)
    if isinstance(item, dict):
        return NetBalance(
            participant_id=item.get("participant_id", item.get("participantId")),
            net_balance=item.get("net_balance", item.get("netBalance")),
        )
    raise TypeError(f"unsupported balance entry: {item!r}")


def _largest(parties: List[_Party]) -> _Party:
    # ties go to whoever came first in the input
    return max(parties, key=lambda p: (p.remaining, -p.index))


def compute_settlements(balances: Iterable[BalanceInput], tolerance: int = 0) -> SettlementResult:
    """Greedy largest-debtor / largest-creditor matching.

    Transfers are listed grouped by payer, payers in input order, and each
    payer's payees in input order. If the balances don't sum to zero (beyond
    ``tolerance``) the transfers are still computed and ``warning`` carries
    the residual.
    """
    entries = [_coerce(b) for b in balances]
    seen = set()
    for e in entries:
        if e.participant_id in seen:
            raise ValueError(f"duplicate participant id: {e.participant_id}")
        seen.add(e.participant_id)

    creditors = [_Party(i, e.participant_id, e.net_balance) for i, e in enumerate(entries) if e.net_balance > 0]
    debtors = [_Party(i, e.participant_id, -e.net_balance) for i, e in enumerate(entries) if e.net_balance < 0]

    emitted = []
    while creditors and debtors:
        creditor = _largest(creditors)
        debtor = _largest(debtors)
        amount = min(creditor.remaining, debtor.remaining)
        emitted.append((debtor.index, creditor.index, amount))
        creditor.remaining -= amount
        debtor.remaining -= amount
        if creditor.remaining == 0:
            creditors.remove(creditor)
        if debtor.remaining == 0:
            debtors.remove(debtor)

    emitted.sort(key=lambda t: (t[0], t[1]))
    transfers = [
        Transfer(from_id=entries[d].participant_id, to_id=entries[c].participant_id, amount=amount)
        for d, c, amount in emitted
    ]

    residual = sum(e.net_balance for e in entries)
    warning = None
    if abs(residual) > tolerance:
        warning = SettlementImbalance(
            residual=residual,
            message=f"Balances do not sum to zero (residual {residual}); bookkeeping needs review",
        )
    return SettlementResult(transfers=transfers, warning=warning)


def apply_transfers(balances: Iterable[BalanceInput], transfers: Iterable[Transfer]) -> Dict[str, int]:
    """Remaining balance per participant after paying ``transfers``."""
    remaining = {}
    for b in balances:
        e = _coerce(b)
        remaining[e.participant_id] = e.net_balance
    for t in transfers:
        remaining[t.from_id] += t.amount
        remaining[t.to_id] -= t.amount
    return remaining
