# pokerledger/services/game_service.py
"""Game operations on a single session.

Every function takes a ``Session`` and returns a new one; nothing here
touches storage. The results go through ``SyncCoordinator.update`` like any
other edit.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

from pokerledger.errors import GameRuleError
from pokerledger.models import CashOutRecord, ContributionRecord, Participant, PlayerResult, Session
from pokerledger.money import format_minor, points_for_amount, points_to_minor, to_decimal
from pokerledger.settlement import NetBalance, SettlementResult, compute_settlements
from pokerledger.validation import recompute_derived


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _log_id() -> str:
    return uuid.uuid4().hex


def _require_open(session: Session):
    if session.status == "completed":
        raise GameRuleError(f"Session {session.id} is already completed")


def _require_participant(session: Session, participant_id: str) -> Participant:
    p = session.get_participant(participant_id)
    if p is None:
        raise GameRuleError(f"Participant {participant_id} not in session {session.id}")
    return p


def _replace_participant(session: Session, updated: Participant) -> Session:
    participants = [updated if p.id == updated.id else p for p in session.participants]
    return recompute_derived(session.model_copy(update={"participants": participants}))


def new_session(
    name: str,
    point_to_cash_rate,
    standard_buy_in: int,
    owner_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Session:
    """Create a session with an optimistic id, ready to be queued for creation."""
    name = (name or "").strip()
    if not name:
        raise GameRuleError("Session name cannot be empty")
    rate = to_decimal(point_to_cash_rate)
    if rate <= 0:
        raise GameRuleError("Point to cash rate must be positive")
    if standard_buy_in <= 0:
        raise GameRuleError("Standard buy-in must be positive")
    return Session(
        id=str(uuid.uuid4()),
        name=name,
        start_time=now or _now(),
        status="active",
        point_to_cash_rate=rate,
        standard_buy_in=standard_buy_in,
        owner_id=owner_id,
        is_owner=True,
    )


def add_participant(
    session: Session,
    name: str,
    participant_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Session:
    """Seat a player with the session's standard buy-in."""
    if session.status != "active":
        raise GameRuleError("This game is no longer accepting new players")
    name = (name or "").strip()
    if not name:
        raise GameRuleError("Player name cannot be empty")
    if any(p.name.strip().lower() == name.lower() for p in session.participants):
        raise GameRuleError(f'A player named "{name}" is already in this game')
    participant_id = participant_id or str(uuid.uuid4())
    if session.get_participant(participant_id) is not None:
        raise GameRuleError(f"Participant id {participant_id} already used")

    now = now or _now()
    participant = Participant(
        id=participant_id,
        name=name,
        point_stack=points_for_amount(session.standard_buy_in, session.point_to_cash_rate),
        contributions=[ContributionRecord(log_id=_log_id(), amount=session.standard_buy_in, time=now)],
    )
    return recompute_derived(session.model_copy(update={"participants": session.participants + [participant]}))


def buy_in(session: Session, participant_id: str, amount: int, now: Optional[datetime] = None) -> Session:
    _require_open(session)
    p = _require_participant(session, participant_id)
    if p.status != "active":
        raise GameRuleError(f"{p.name} has left the table")
    if amount <= 0:
        raise GameRuleError("Buy-in amount must be positive")
    record = ContributionRecord(log_id=_log_id(), amount=amount, time=now or _now())
    updated = p.model_copy(update={
        "contributions": p.contributions + [record],
        "point_stack": p.point_stack + points_for_amount(amount, session.point_to_cash_rate),
    })
    return _replace_participant(session, updated)


def cash_out(
    session: Session,
    participant_id: str,
    points: int,
    leave_table: bool = False,
    now: Optional[datetime] = None,
) -> Session:
    """Convert ``points`` of a player's stack to cash.

    With ``leave_table`` the player is marked as cashed out early and
    whatever is left of their stack stays on the table.
    """
    _require_open(session)
    p = _require_participant(session, participant_id)
    if p.status != "active":
        raise GameRuleError(f"{p.name} has already cashed out")
    if points < 0 or (points == 0 and not leave_table):
        raise GameRuleError("Cash-out points must be positive")
    if points > p.point_stack:
        raise GameRuleError(f"{p.name} only has {p.point_stack} points")

    value = points_to_minor(points, session.point_to_cash_rate)
    update = {
        "point_stack": p.point_stack - points,
        "cash_out_amount": p.cash_out_amount + value,
        "cash_out_log": p.cash_out_log + [
            CashOutRecord(log_id=_log_id(), points_cashed_out=points, cash_value=value, time=now or _now())
        ],
    }
    if leave_table:
        update["status"] = "cashed_out_early"
        update["points_left_on_table"] = p.point_stack - points
        update["point_stack"] = 0
    return _replace_participant(session, p.model_copy(update=update))


def request_close(session: Session) -> Session:
    if session.status != "active":
        raise GameRuleError(f"Cannot close a session that is {session.status}")
    return recompute_derived(session.model_copy(update={"status": "pending_close"}))


def reopen(session: Session) -> Session:
    if session.status != "pending_close":
        raise GameRuleError(f"Cannot reopen a session that is {session.status}")
    return recompute_derived(session.model_copy(update={"status": "active"}))


def finalize(session: Session, final_stacks: Mapping[str, int], now: Optional[datetime] = None) -> Session:
    """Cash out every seated player's final stack and complete the session."""
    _require_open(session)
    now = now or _now()
    participants = []
    for p in session.participants:
        if p.status != "active":
            participants.append(p)
            continue
        if p.id not in final_stacks:
            raise GameRuleError(f"Missing final chip count for {p.name}")
        final = final_stacks[p.id]
        if final < 0:
            raise GameRuleError(f"Final chip count for {p.name} must be >= 0")
        value = points_to_minor(final, session.point_to_cash_rate)
        log = p.cash_out_log
        if final:
            log = log + [CashOutRecord(log_id=_log_id(), points_cashed_out=final, cash_value=value, time=now)]
        participants.append(p.model_copy(update={
            "point_stack": 0,
            "cash_out_amount": p.cash_out_amount + value,
            "cash_out_log": log,
        }))
    return session.model_copy(update={
        "participants": participants,
        "status": "completed",
        "end_time": session.end_time or now,
        "physical_points_on_table": 0,
    })


def player_results(session: Session) -> List[PlayerResult]:
    return [
        PlayerResult(
            participant_id=p.id,
            name=p.name,
            total_buy_in=p.total_contributions,
            total_cash_out=p.cash_out_amount,
            net_profit_loss=p.net_balance,
        )
        for p in session.participants
    ]


def net_balances(session: Session) -> List[NetBalance]:
    return [NetBalance(participant_id=p.id, net_balance=p.net_balance) for p in session.participants]


def settle(session: Session, tolerance: int = 0) -> SettlementResult:
    if session.status != "completed":
        raise GameRuleError("Settlement is only available for completed sessions")
    return compute_settlements(net_balances(session), tolerance=tolerance)


def payment_summary(session: Session, result: SettlementResult) -> str:
    names: Dict[str, str] = {p.id: p.name for p in session.participants}
    lines = []
    if not result.transfers:
        lines.append("No payments needed - all players broke even!")
    else:
        lines.append("Payment Summary:")
        lines.append("")
        for i, t in enumerate(result.transfers, start=1):
            lines.append(
                f"{i}. {names.get(t.from_id, t.from_id)} pays {names.get(t.to_id, t.to_id)}: {format_minor(t.amount)}"
            )
    if result.warning is not None:
        lines.append("")
        lines.append(f"Warning: ledger is off by {format_minor(result.warning.residual)}")
    return "\n".join(lines)
