# pokerledger/fingerprint.py

import hashlib
import json
from typing import Iterable

from pokerledger.models import Session


def _participant_view(p) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "stack": p.point_stack,
        "cash_out": p.cash_out_amount,
        "status": p.status,
        "left_on_table": p.points_left_on_table,
        "contributed": p.total_contributions,
        "contributions": len(p.contributions),
        "cash_outs": len(p.cash_out_log),
    }


def _session_view(s: Session) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "status": s.status,
        "end_time": s.end_time.isoformat() if s.end_time else None,
        "rate": str(s.point_to_cash_rate.normalize()),
        "buy_in": s.standard_buy_in,
        "on_table": s.physical_points_on_table,
        "is_owner": s.is_owner,
        # seating order is meaningful, so participants keep list order
        "participants": [_participant_view(p) for p in s.participants],
    }


def fingerprint(sessions: Iterable[Session]) -> str:
    """Canonical hash of the logically meaningful parts of a session list.

    Sessions are keyed by id, so list order does not matter; dict key order
    never does.
    """
    views = sorted((_session_view(s) for s in sessions), key=lambda v: v["id"])
    canonical = json.dumps(views, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
