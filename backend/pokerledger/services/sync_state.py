# pokerledger/services/sync_state.py
"""Sync state machine as data.

``SyncState`` is frozen; each transition takes the current record and
returns the next one, so retry and cooldown rules can be tested without a
coordinator, timers, or a network.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from pokerledger.config import (
    SYNC_BACKOFF_BASE_SECONDS,
    SYNC_BACKOFF_CAP_SECONDS,
    SYNC_COOLDOWN_SECONDS,
    SYNC_MAX_ATTEMPTS,
)


class SyncPhase(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    COOLDOWN = "cooldown"
    ERROR = "error"


class Trigger(str, Enum):
    MOUNT = "mount"
    REQUEST = "request"
    ONLINE = "online"
    TIMER = "timer"
    VISIBILITY = "visibility"
    RETRY = "retry"
    FORCE = "force"          # user pressed refresh / retry


@dataclass(frozen=True)
class SyncPolicy:
    cooldown: float = SYNC_COOLDOWN_SECONDS
    max_attempts: int = SYNC_MAX_ATTEMPTS
    backoff_base: float = SYNC_BACKOFF_BASE_SECONDS
    backoff_cap: float = SYNC_BACKOFF_CAP_SECONDS


@dataclass(frozen=True)
class SyncState:
    phase: SyncPhase = SyncPhase.IDLE
    in_flight: bool = False
    attempts: int = 0                       # consecutive failures
    last_attempt_at: Optional[float] = None
    last_sync_at: Optional[float] = None
    next_retry_at: Optional[float] = None
    error: Optional[str] = None
    stalled: bool = False                   # retry budget used up
    auth_required: bool = False


def backoff_delay(attempts: int, policy: SyncPolicy) -> float:
    """Delay before retry number ``attempts`` (1-based): base, 2*base, 4*base... capped."""
    if attempts <= 0:
        return 0.0
    return min(policy.backoff_base * (2 ** (attempts - 1)), policy.backoff_cap)


def skip_reason(
    state: SyncState,
    now: float,
    trigger: Trigger,
    policy: SyncPolicy,
    has_user: bool,
) -> Optional[str]:
    """Why a sync started by ``trigger`` must not run now, or None if it may."""
    if not has_user:
        return "no authenticated user"
    if state.in_flight:
        return "sync already in flight"
    if trigger == Trigger.FORCE:
        return None
    if state.auth_required:
        return "re-authentication required"
    if state.stalled:
        return "loading stalled, waiting for manual retry"
    if trigger == Trigger.RETRY:
        if state.next_retry_at is None:
            return "no retry scheduled"
        if now < state.next_retry_at:
            return "backing off"
        return None
    if state.last_attempt_at is not None and now - state.last_attempt_at < policy.cooldown:
        return "cooling down"
    return None


def begin(state: SyncState, now: float, trigger: Trigger) -> SyncState:
    if trigger == Trigger.FORCE:
        state = replace(state, attempts=0, stalled=False, auth_required=False)
    return replace(
        state,
        phase=SyncPhase.SYNCING,
        in_flight=True,
        last_attempt_at=now,
        next_retry_at=None,
    )


def succeed(state: SyncState, now: float) -> SyncState:
    return replace(
        state,
        phase=SyncPhase.IDLE,
        in_flight=False,
        attempts=0,
        last_sync_at=now,
        next_retry_at=None,
        error=None,
        stalled=False,
        auth_required=False,
    )


def fail(state: SyncState, now: float, message: str, policy: SyncPolicy, retryable: bool = True) -> SyncState:
    if not retryable:
        return replace(
            state,
            phase=SyncPhase.ERROR,
            in_flight=False,
            error=message,
            next_retry_at=None,
            auth_required=True,
        )
    attempts = state.attempts + 1
    stalled = attempts >= policy.max_attempts
    return replace(
        state,
        phase=SyncPhase.ERROR,
        in_flight=False,
        attempts=attempts,
        error=message,
        stalled=stalled,
        next_retry_at=None if stalled else now + backoff_delay(attempts, policy),
    )


def abort(state: SyncState) -> SyncState:
    """The in-flight attempt was cancelled; it does not count as a failure."""
    return replace(state, phase=SyncPhase.IDLE if state.error is None else SyncPhase.ERROR, in_flight=False)


def dismiss_error(state: SyncState) -> SyncState:
    if state.phase != SyncPhase.ERROR:
        return state
    return replace(state, error=None)


def visible_phase(state: SyncState, now: float, policy: SyncPolicy) -> SyncPhase:
    """Phase as shown to the user: idle turns into cooldown inside the window."""
    if (
        state.phase == SyncPhase.IDLE
        and state.last_attempt_at is not None
        and now - state.last_attempt_at < policy.cooldown
    ):
        return SyncPhase.COOLDOWN
    return state.phase
