# pokerledger/validation.py
"""Validation and repair of session payloads.

Anything read back from the local store or the remote store goes through
``repair_session`` before it becomes a ``Session``. Missing fields get
defaults, negative numbers are clamped, and ``physical_points_on_table`` is
recomputed from participant state. One bad session never sinks the batch:
it is repaired or dropped on its own.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError

from pokerledger.config import DEFAULT_BUY_IN_MINOR, DEFAULT_POINT_TO_CASH_RATE
from pokerledger.models import Participant, Session
from pokerledger.money import points_for_amount, points_to_minor, to_decimal, to_minor

logger = logging.getLogger(__name__)

SESSION_STATUSES = ("active", "pending_close", "completed")
PARTICIPANT_STATUSES = ("active", "cashed_out_early")
PHYSICAL_POINTS_TOLERANCE = 0.01

# camelCase layout written by the 2.x clients; money there was float dollars
LEGACY_SESSION_KEYS = {
    "playersInGame": "participants",
    "startTime": "start_time",
    "endTime": "end_time",
    "pointToCashRate": "point_to_cash_rate",
    "currentPhysicalPointsOnTable": "physical_points_on_table",
    "isOwner": "is_owner",
    "invitedUsers": "invited_users",
}
LEGACY_PARTICIPANT_KEYS = {
    "playerId": "id",
    "pointStack": "point_stack",
    "cashOutLog": "cash_out_log",
    "pointsLeftOnTable": "points_left_on_table",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def compute_physical_points(participants: Iterable[Participant]) -> int:
    total = 0
    for p in participants:
        if p.status == "active":
            total += p.point_stack
        elif p.status == "cashed_out_early":
            total += p.points_left_on_table
    return total


def recompute_derived(session: Session) -> Session:
    """Return ``session`` with every derived field rebuilt from raw data."""
    if session.status == "completed":
        points = 0
    else:
        points = compute_physical_points(session.participants)
    if points == session.physical_points_on_table:
        return session
    return session.model_copy(update={"physical_points_on_table": points})


# ─── coercion helpers ───

def _is_number(value) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _non_negative_int(value, what: str, warnings: List[str], default: int = 0) -> int:
    if isinstance(value, str):
        try:
            value = to_decimal(value)
        except ValueError:
            pass
    if not _is_number(value):
        if value is not None:
            warnings.append(f"{what}: non-numeric value {value!r} replaced with {default}")
        return default
    try:
        number = int(round(value))
    except (ValueError, OverflowError):
        warnings.append(f"{what}: non-finite value {value!r} replaced with {default}")
        return default
    if number < 0:
        warnings.append(f"{what}: negative value {number} clamped to 0")
        return 0
    return number


def _coerce_datetime(value, default: Optional[datetime]) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return default
    return default


def _clean_str(value, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


# ─── participant ───

def _repair_contributions(raw, pid: str, warnings: List[str]) -> list:
    if not isinstance(raw, list):
        if raw is not None:
            warnings.append(f"participant {pid}: contributions were not a list")
        return []
    cleaned = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            warnings.append(f"participant {pid}: dropped malformed contribution #{i}")
            continue
        cleaned.append({
            "log_id": _clean_str(entry.get("log_id"), _new_id("log")),
            "amount": _non_negative_int(entry.get("amount"), f"participant {pid} contribution #{i}", warnings),
            "time": _coerce_datetime(entry.get("time"), _now()),
            "edited_at": _coerce_datetime(entry.get("edited_at"), None),
        })
    return cleaned


def _repair_cash_out_log(raw, pid: str, warnings: List[str]) -> list:
    if not isinstance(raw, list):
        return []
    cleaned = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            warnings.append(f"participant {pid}: dropped malformed cash-out record #{i}")
            continue
        what = f"participant {pid} cash-out #{i}"
        cleaned.append({
            "log_id": _clean_str(entry.get("log_id"), _new_id("log")),
            "points_cashed_out": _non_negative_int(entry.get("points_cashed_out"), what, warnings),
            "cash_value": _non_negative_int(entry.get("cash_value"), what, warnings),
            "time": _coerce_datetime(entry.get("time"), _now()),
            "edited_at": _coerce_datetime(entry.get("edited_at"), None),
        })
    return cleaned


def _repair_participant(raw: dict, warnings: List[str]) -> dict:
    pid = _clean_str(raw.get("id"), "")
    if not pid:
        pid = _new_id("player")
        warnings.append(f"participant without id assigned {pid}")

    status = raw.get("status")
    if status not in PARTICIPANT_STATUSES:
        if status is not None:
            warnings.append(f"participant {pid}: unknown status {status!r}, using 'active'")
        status = "active"

    point_stack = _non_negative_int(raw.get("point_stack"), f"participant {pid} stack", warnings)
    if status == "cashed_out_early" and point_stack != 0:
        warnings.append(f"participant {pid}: cashed out early with stack {point_stack}, reset to 0")
        point_stack = 0

    return {
        "id": pid,
        "name": _clean_str(raw.get("name"), "Unknown Player"),
        "point_stack": point_stack,
        "contributions": _repair_contributions(raw.get("contributions"), pid, warnings),
        "cash_out_amount": _non_negative_int(raw.get("cash_out_amount"), f"participant {pid} cash-out", warnings),
        "cash_out_log": _repair_cash_out_log(raw.get("cash_out_log"), pid, warnings),
        "status": status,
        "points_left_on_table": _non_negative_int(
            raw.get("points_left_on_table"), f"participant {pid} points left", warnings
        ),
    }


# ─── session ───

def repair_session(raw, source: str = "storage") -> Tuple[Optional[Session], List[str]]:
    """Repair one raw session dict.

    Returns ``(session, warnings)``; ``session`` is None when ``raw`` is not
    something we can salvage at all.
    """
    warnings: List[str] = []
    if not isinstance(raw, dict):
        warnings.append(f"dropped non-object session from {source}: {type(raw).__name__}")
        return None, warnings

    sid = _clean_str(raw.get("id"), "")
    if not sid:
        sid = _new_id("session")
        warnings.append(f"session without id assigned {sid}")

    status = raw.get("status")
    if status not in SESSION_STATUSES:
        if status is not None:
            warnings.append(f"session {sid}: unknown status {status!r}, using 'active'")
        status = "active"

    try:
        rate = to_decimal(raw.get("point_to_cash_rate"))
        if not rate.is_finite() or rate <= 0:
            raise ValueError("non-positive rate")
    except (ValueError, TypeError):
        warnings.append(f"session {sid}: invalid point_to_cash_rate {raw.get('point_to_cash_rate')!r}")
        rate = to_decimal(DEFAULT_POINT_TO_CASH_RATE)

    raw_participants = raw.get("participants")
    if not isinstance(raw_participants, list):
        if raw_participants is not None:
            warnings.append(f"session {sid}: participants were not a list")
        raw_participants = []
    participants = []
    for i, p in enumerate(raw_participants):
        if not isinstance(p, dict):
            warnings.append(f"session {sid}: dropped malformed participant #{i}")
            continue
        participants.append(_repair_participant(p, warnings))

    invited = raw.get("invited_users")
    if not isinstance(invited, list):
        invited = []

    cleaned = {
        "id": sid,
        "name": _clean_str(raw.get("name"), "Unnamed Game"),
        "start_time": _coerce_datetime(raw.get("start_time"), _now()),
        "end_time": _coerce_datetime(raw.get("end_time"), None),
        "status": status,
        "point_to_cash_rate": rate,
        "standard_buy_in": _non_negative_int(
            raw.get("standard_buy_in"), f"session {sid} buy-in", warnings, DEFAULT_BUY_IN_MINOR
        ),
        "participants": participants,
        "physical_points_on_table": 0,
        "is_owner": raw.get("is_owner") is not False,
        "owner_id": raw.get("owner_id") if isinstance(raw.get("owner_id"), str) else None,
        "invited_users": [u for u in invited if isinstance(u, str)],
    }

    try:
        session = Session.model_validate(cleaned)
    except ValidationError as e:
        warnings.append(f"session {sid}: unrecoverable shape ({e.error_count()} errors), dropped")
        return None, warnings

    session = recompute_derived(session)
    stored = raw.get("physical_points_on_table")
    if status != "completed" and _is_number(stored):
        try:
            drift = abs(float(stored) - session.physical_points_on_table)
        except OverflowError:
            drift = float("inf")
        if drift > PHYSICAL_POINTS_TOLERANCE:
            warnings.append(
                f"session {sid}: physical points mismatch, stored {stored}, "
                f"calculated {session.physical_points_on_table}"
            )
    return session, warnings


def repair_sessions(raws, source: str = "storage") -> List[Session]:
    if not isinstance(raws, list):
        logger.warning("Expected a list of sessions from %s, got %s", source, type(raws).__name__)
        return []
    sessions = []
    for i, raw in enumerate(raws):
        try:
            session, warnings = repair_session(raw, source)
        except Exception as e:
            logger.warning("Repair (%s): dropped session #%d: %s", source, i, e)
            continue
        for w in warnings:
            logger.warning("Repair (%s): %s", source, w)
        if session is not None:
            sessions.append(session)
    return sessions


# ─── migration ───

def _legacy_money(value) -> Optional[int]:
    if _is_number(value) or isinstance(value, str):
        try:
            return to_minor(value)
        except (ValueError, ArithmeticError):
            return None
    return None


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def salvage_session(raw):
    """Map a session written by an older client onto the current field names.

    Unknown shapes come back unchanged so the repair pass can decide.
    """
    if not isinstance(raw, dict):
        return raw
    if "participants" in raw or "playersInGame" not in raw:
        return raw

    out = {new: raw[old] for old, new in LEGACY_SESSION_KEYS.items() if old in raw}
    for key in ("id", "name", "status", "owner_id"):
        if key in raw:
            out[key] = raw[key]
    if "standardBuyInAmount" in raw:
        out["standard_buy_in"] = _legacy_money(raw["standardBuyInAmount"])

    participants = []
    for p in _as_list(raw.get("playersInGame")):
        if not isinstance(p, dict):
            participants.append(p)
            continue
        np = {new: p[old] for old, new in LEGACY_PARTICIPANT_KEYS.items() if old in p}
        for key in ("name", "status"):
            if key in p:
                np[key] = p[key]
        np["cash_out_amount"] = _legacy_money(p.get("cashOutAmount"))
        np["contributions"] = [
            {"log_id": b.get("logId"), "amount": _legacy_money(b.get("amount")), "time": b.get("time")}
            for b in _as_list(p.get("buyIns")) if isinstance(b, dict)
        ]
        np["cash_out_log"] = [
            {
                "log_id": c.get("logId"),
                "points_cashed_out": c.get("pointsCashedOut"),
                "cash_value": _legacy_money(c.get("cashValue")),
                "time": c.get("time"),
            }
            for c in _as_list(p.get("cashOutLog")) if isinstance(c, dict)
        ]
        participants.append(np)
    out["participants"] = participants
    return out


# ─── audit (non-repairing checks for display) ───

@dataclass
class AuditReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def audit_session(session: Session) -> AuditReport:
    """Bookkeeping checks that are reported, never auto-fixed."""
    report = AuditReport()
    if not session.name.strip():
        report.errors.append("Session missing or empty name")
    if session.standard_buy_in <= 0:
        report.errors.append("Invalid standard buy-in amount")

    seen = set()
    for p in session.participants:
        key = p.name.strip().lower()
        if key in seen:
            report.errors.append(f"Duplicate player name: {p.name}")
        seen.add(key)

        if not p.contributions:
            report.errors.append(f"Player {p.name}: no buy-ins")
        bought = sum(points_for_amount(c.amount, session.point_to_cash_rate) for c in p.contributions)
        cashed = sum(c.points_cashed_out for c in p.cash_out_log)
        expected = bought - cashed
        if p.status == "active" and session.status != "completed" and abs(p.point_stack - expected) > 1:
            report.warnings.append(
                f"Player {p.name}: point stack mismatch, expected {expected}, actual {p.point_stack}"
            )

    total_in = sum(p.total_contributions for p in session.participants)
    total_out = sum(p.cash_out_amount for p in session.participants)
    on_table = points_to_minor(session.physical_points_on_table, session.point_to_cash_rate)
    difference = total_in - (total_out + on_table)
    if abs(difference) > 1:
        report.warnings.append(
            f"Financial inconsistency: buy-ins {total_in}, cash-outs + points value "
            f"{total_out + on_table}, difference {difference}"
        )
    return report
