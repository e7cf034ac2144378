# pokerledger/services/sync_service.py

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from pokerledger.config import SYNC_TIMEOUT_GOOD_SECONDS, SYNC_TIMEOUT_POOR_SECONDS
from pokerledger.errors import (
    AuthenticationError,
    GameRuleError,
    LedgerError,
    PermissionDeniedError,
    SessionValidationError,
    TransientNetworkError,
)
from pokerledger.events import CallbackRegistry
from pokerledger.fingerprint import fingerprint
from pokerledger.models import Session
from pokerledger.repositories.remote_repo import RemoteSessionRepository
from pokerledger.services.local_store import LocalStore
from pokerledger.services.sync_state import (
    SyncPhase,
    SyncPolicy,
    SyncState,
    Trigger,
    abort,
    begin,
    dismiss_error,
    fail,
    skip_reason,
    succeed,
    visible_phase,
)
from pokerledger.validation import recompute_derived, repair_sessions

logger = logging.getLogger(__name__)


class NetworkQuality(str, Enum):
    GOOD = "good"
    POOR = "poor"


class SyncStatus(BaseModel):
    """What the UI shows about syncing. Errors here are dismissable."""
    phase: SyncPhase
    message: Optional[str] = None
    is_stale: bool = False
    stalled: bool = False
    auth_required: bool = False
    load_failed: bool = False
    can_retry: bool = False
    attempts: int = 0
    last_sync_time: Optional[float] = None
    next_retry_at: Optional[float] = None
    pending_writes: int = 0


class SyncResult(BaseModel):
    ran: bool
    ok: bool = False
    skipped_reason: Optional[str] = None
    error: Optional[str] = None
    sessions: List[Session] = []
    stale: bool = False
    discarded: bool = False


class SyncCoordinator:
    """Owner of the in-memory session list.

    All edits go through ``add``/``update``/``remove``/``replace_all``; a
    sync replaces the list with the merged remote state unless an edit
    landed while the sync was in flight.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteSessionRepository,
        get_user_id: Callable[[], Optional[str]],
        policy: SyncPolicy = SyncPolicy(),
        clock: Callable[[], float] = time.time,
        timeouts: Optional[Dict[NetworkQuality, float]] = None,
    ):
        self.store = store
        self.remote = remote
        self.get_user_id = get_user_id
        self.policy = policy
        self.clock = clock
        self.timeouts = timeouts or {
            NetworkQuality.GOOD: SYNC_TIMEOUT_GOOD_SECONDS,
            NetworkQuality.POOR: SYNC_TIMEOUT_POOR_SECONDS,
        }
        self.state = SyncState()
        self.online = True
        self.network_quality = NetworkQuality.GOOD
        self.outbox: List[dict] = []
        self.status_changed: CallbackRegistry[SyncStatus] = CallbackRegistry("sync status")
        self.sessions_changed: CallbackRegistry[List[Session]] = CallbackRegistry("sessions")
        self.saved: CallbackRegistry[List[Session]] = CallbackRegistry("saved")
        self._sessions: List[Session] = []
        self._mutated_at: Optional[float] = None
        self._is_stale = False
        self._load_failed = False
        self._persisted_fingerprint: Optional[str] = None

    # ─── read side ───

    @property
    def sessions(self) -> List[Session]:
        return list(self._sessions)

    def get(self, session_id: str) -> Optional[Session]:
        for s in self._sessions:
            if s.id == session_id:
                return s
        return None

    @property
    def status(self) -> SyncStatus:
        s = self.state
        message = s.error
        if s.auth_required:
            message = f"{s.error} - please sign in again"
        elif self._load_failed:
            message = "Loading cannot complete while offline. Retry when you're back online."
        elif s.stalled:
            message = f"{s.error} - sync stopped after {s.attempts} attempts"
        return SyncStatus(
            phase=visible_phase(s, self.clock(), self.policy),
            message=message,
            is_stale=self._is_stale,
            stalled=s.stalled,
            auth_required=s.auth_required,
            load_failed=self._load_failed,
            can_retry=s.stalled or s.auth_required or self._load_failed,
            attempts=s.attempts,
            last_sync_time=s.last_sync_at,
            next_retry_at=s.next_retry_at,
            pending_writes=len(self.outbox),
        )

    def _set_state(self, state: SyncState):
        self.state = state
        self.status_changed.emit(self.status)

    def dismiss_error(self):
        self._set_state(dismiss_error(self.state))

    @property
    def timeout(self) -> float:
        return self.timeouts[self.network_quality]

    def set_network(self, online: bool, quality: Optional[NetworkQuality] = None):
        self.online = online
        if quality is not None:
            self.network_quality = quality
        self.status_changed.emit(self.status)

    # ─── write side ───

    def _apply(self, sessions: List[Session]):
        self._sessions = [recompute_derived(s) for s in sessions]
        self.sessions_changed.emit(self.sessions)

    def _touch(self):
        self._mutated_at = self.clock()
        self._persisted_fingerprint = None

    def _index(self, session_id: str) -> int:
        for i, s in enumerate(self._sessions):
            if s.id == session_id:
                return i
        return -1

    async def _enqueue(self, op: str, session_id: str):
        ops = [o for o in self.outbox if o["session_id"] == session_id]
        if op == "update" and any(o["op"] in ("create", "update") for o in ops):
            return
        if op in ("delete", "revoke"):
            never_pushed = any(o["op"] == "create" for o in ops)
            self.outbox = [o for o in self.outbox if o["session_id"] != session_id]
            if never_pushed:
                await self.store.save_outbox(self.outbox)
                return
        self.outbox.append({"op": op, "session_id": session_id, "queued_at": self.clock()})
        await self.store.save_outbox(self.outbox)

    async def add(self, session: Session):
        if self._index(session.id) >= 0:
            raise GameRuleError(f"Session {session.id} already exists")
        self._touch()
        self._apply(self._sessions + [session])
        await self._enqueue("create", session.id)

    async def update(self, session: Session):
        i = self._index(session.id)
        if i < 0:
            raise GameRuleError(f"Session {session.id} not found")
        self._touch()
        sessions = list(self._sessions)
        sessions[i] = session
        self._apply(sessions)
        if session.is_owner:
            await self._enqueue("update", session.id)
        else:
            logger.info("Session %s is shared with us; edit stays local", session.id)

    async def remove(self, session_id: str):
        i = self._index(session_id)
        if i < 0:
            return
        session = self._sessions[i]
        self._touch()
        self._apply(self._sessions[:i] + self._sessions[i + 1:])
        await self._enqueue("delete" if session.is_owner else "revoke", session_id)

    def replace_all(self, sessions: List[Session]):
        self._touch()
        self._apply(list(sessions))

    # ─── sync ───

    async def mount(self) -> SyncResult:
        """Show whatever the device has, then try the remote store."""
        local = await self.store.load()
        self.outbox = await self.store.load_outbox()
        if local:
            self._apply(local)
            logger.info("Loaded %d sessions from local store", len(local))
        return await self.sync(Trigger.MOUNT)

    async def force_refresh(self) -> SyncResult:
        return await self.sync(Trigger.FORCE)

    async def sync(self, trigger: Trigger = Trigger.REQUEST) -> SyncResult:
        now = self.clock()
        reason = skip_reason(self.state, now, trigger, self.policy, bool(self.get_user_id()))
        if reason:
            logger.debug("Sync (%s) skipped: %s", trigger.value, reason)
            return SyncResult(ran=False, skipped_reason=reason, sessions=self.sessions)

        started_at = now
        self._set_state(begin(self.state, now, trigger))
        try:
            merged = await asyncio.wait_for(self._pull_and_merge(), timeout=self.timeout)
        except asyncio.TimeoutError:
            return await self._handle_failure(f"Sync timed out after {self.timeout:g}s", True)
        except AuthenticationError as e:
            return await self._handle_failure(f"Authentication failed: {e}", False)
        except LedgerError as e:
            return await self._handle_failure(f"Sync failed: {e}", True)
        except asyncio.CancelledError:
            self._set_state(abort(self.state))
            raise
        except Exception as e:
            logger.exception("Unexpected sync error")
            return await self._handle_failure(f"Sync failed: {type(e).__name__}: {e}", True)

        if self._mutated_at is not None and self._mutated_at > started_at:
            # 同期中にローカル編集が入った → 古い応答で上書きしない
            logger.warning("Discarding sync response started at %s; local state changed since", started_at)
            self._set_state(succeed(self.state, self.clock()))
            return SyncResult(ran=True, ok=True, discarded=True, sessions=self.sessions)

        self._apply(merged)
        current = fingerprint(self._sessions)
        if current == self._persisted_fingerprint:
            logger.debug("Merged state unchanged; skipping local write")
        elif await self.store.save(self._sessions):
            self._persisted_fingerprint = current
            self.saved.emit(self.sessions)
        self._is_stale = False
        self._load_failed = False
        self._set_state(succeed(self.state, self.clock()))
        logger.info("Sync completed: %d sessions", len(merged))
        return SyncResult(ran=True, ok=True, sessions=self.sessions)

    async def _handle_failure(self, message: str, retryable: bool) -> SyncResult:
        logger.error("%s", message)
        self._set_state(fail(self.state, self.clock(), message, self.policy, retryable))

        local = await self.store.load()
        if local:
            if not self._sessions:
                self._apply(local)
            self._is_stale = True
        elif not self._sessions and self.state.stalled and not self.online:
            self._load_failed = True
        self.status_changed.emit(self.status)
        return SyncResult(
            ran=True,
            ok=False,
            error=message,
            sessions=self.sessions,
            stale=bool(local),
        )

    async def _pull_and_merge(self) -> List[Session]:
        if not self.online:
            raise TransientNetworkError("offline")
        await self._push_outbox()
        fetches = [
            asyncio.ensure_future(self.remote.list_owned()),
            asyncio.ensure_future(self.remote.list_granted()),
        ]
        try:
            owned, granted = await asyncio.gather(*fetches)
        except BaseException:
            for task in fetches:
                task.cancel()
            raise
        return self._merge(owned, granted)

    async def _push_outbox(self):
        while self.outbox:
            op = self.outbox[0]
            sid = op["session_id"]
            session = self.get(sid)
            try:
                if op["op"] == "create" and session is not None:
                    if not await self.remote.create(session):
                        await self.remote.update(session)
                elif op["op"] == "update" and session is not None:
                    if not await self.remote.update(session):
                        logger.warning("Session %s no longer exists remotely", sid)
                elif op["op"] == "delete":
                    await self.remote.delete(sid)
                elif op["op"] == "revoke":
                    await self.remote.revoke_access(sid)
            except (PermissionDeniedError, SessionValidationError) as e:
                logger.warning("Dropping queued %s for session %s: %s", op["op"], sid, e)
            self.outbox.pop(0)
            await self.store.save_outbox(self.outbox)

    def _merge(self, owned: list, granted: list) -> List[Session]:
        by_id: Dict[str, dict] = {}
        for raw in owned or []:
            if isinstance(raw, dict) and isinstance(raw.get("id"), str):
                by_id.setdefault(raw["id"], {**raw, "is_owner": True})
        for raw in granted or []:
            if isinstance(raw, dict) and isinstance(raw.get("id"), str) and raw["id"] not in by_id:
                by_id[raw["id"]] = {**raw, "is_owner": False}
        remote = repair_sessions(list(by_id.values()), source="remote")

        # last writer wins, except for local edits that haven't been pushed yet
        pending = {o["session_id"]: o["op"] for o in self.outbox}
        merged = []
        for s in remote:
            op = pending.get(s.id)
            if op in ("delete", "revoke"):
                continue
            if op in ("create", "update") and self.get(s.id) is not None:
                merged.append(self.get(s.id))
            else:
                merged.append(s)
        known = {s.id for s in merged}
        for sid, op in pending.items():
            if op == "create" and sid not in known and self.get(sid) is not None:
                merged.append(self.get(sid))
        return merged
