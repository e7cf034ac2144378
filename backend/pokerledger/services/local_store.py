# pokerledger/services/local_store.py

import json
import logging
import time
from typing import Callable, List, Optional

from pokerledger.config import LOCAL_BACKUP_COUNT, LOCAL_BACKUP_MAX_AGE_SECONDS
from pokerledger.errors import StorageCorruptionError
from pokerledger.models import Session
from pokerledger.repositories.local_repo import LocalKeyValueRepository
from pokerledger.validation import repair_session, repair_sessions, salvage_session

logger = logging.getLogger(__name__)

STATE_VERSION = "3.0"
PRIMARY_KEY = "state"
BACKUP_KEY = "state:backup:{}"
OUTBOX_KEY = "outbox"


def _parse_envelope(raw: str) -> dict:
    try:
        envelope = json.loads(raw)
    except ValueError as e:
        raise StorageCorruptionError(f"not JSON: {e}")
    if not isinstance(envelope, dict):
        raise StorageCorruptionError(f"envelope is a {type(envelope).__name__}")
    if envelope.get("version") == STATE_VERSION and not isinstance(envelope.get("sessions"), list):
        raise StorageCorruptionError("envelope has no session list")
    return envelope


class LocalStore:
    """Versioned session snapshot with a newest-first ring of backups.

    ``save`` and ``load`` never raise: a failed write restores the newest
    backup, a bad primary falls through to the backups and then to an empty
    list.
    """

    def __init__(
        self,
        repo: LocalKeyValueRepository,
        backup_count: int = LOCAL_BACKUP_COUNT,
        clock: Callable[[], float] = time.time,
    ):
        self.repo = repo
        self.backup_count = backup_count
        self.clock = clock

    def _backup_keys(self) -> List[str]:
        return [BACKUP_KEY.format(i) for i in range(self.backup_count)]

    # ─── save ───

    async def save(self, sessions) -> bool:
        try:
            await self._rotate_backups()
            normalized = self._normalize(sessions)
            envelope = {
                "version": STATE_VERSION,
                "timestamp": int(self.clock() * 1000),
                "sessions": [s.model_dump(mode="json") for s in normalized],
            }
            await self.repo.set(PRIMARY_KEY, json.dumps(envelope))
            logger.debug("Local state saved: %d sessions", len(normalized))
            return True
        except Exception as e:
            logger.error("Failed to save local state: %s", e)
            await self._restore_from_backup()
            return False

    def _normalize(self, sessions) -> List[Session]:
        normalized = []
        for s in sessions:
            raw = s.model_dump() if isinstance(s, Session) else s
            session, warnings = repair_session(raw, source="save")
            for w in warnings:
                logger.warning("Repair (save): %s", w)
            if session is not None:
                normalized.append(session)
        return normalized

    async def _rotate_backups(self) -> None:
        if self.backup_count <= 0:
            return
        current = await self.repo.get(PRIMARY_KEY)
        if current is None:
            return
        keys = self._backup_keys()
        if await self.repo.get(keys[0]) == current:
            return
        # shift newest-first: n-2 -> n-1, ..., 0 -> 1
        for i in range(len(keys) - 1, 0, -1):
            older = await self.repo.get(keys[i - 1])
            if older is not None:
                await self.repo.set(keys[i], older)
        await self.repo.set(keys[0], current)

    async def _restore_from_backup(self) -> None:
        try:
            for key in self._backup_keys():
                raw = await self.repo.get(key)
                if raw is None:
                    continue
                try:
                    _parse_envelope(raw)
                except StorageCorruptionError:
                    continue
                await self.repo.set(PRIMARY_KEY, raw)
                logger.warning("Primary local state restored from %s", key)
                return
            logger.warning("No usable backup to restore after failed save")
        except Exception as e:
            logger.error("Restore from backup failed: %s", e)

    # ─── load ───

    async def load(self) -> List[Session]:
        try:
            return await self._load()
        except Exception as e:
            logger.error("Failed to load local state: %s", e)
            return []

    async def _load(self) -> List[Session]:
        foreign: Optional[dict] = None
        for key in [PRIMARY_KEY] + self._backup_keys():
            raw = await self.repo.get(key)
            if raw is None:
                continue
            try:
                envelope = _parse_envelope(raw)
            except StorageCorruptionError as e:
                logger.warning("Local slot %s unusable: %s", key, e)
                continue
            if envelope.get("version") != STATE_VERSION:
                logger.warning(
                    "Local slot %s has version %s, expected %s",
                    key, envelope.get("version"), STATE_VERSION,
                )
                if foreign is None:
                    foreign = envelope
                continue
            if key != PRIMARY_KEY:
                logger.warning("Local state restored from %s", key)
            return repair_sessions(envelope["sessions"], source=f"local {key}")

        if foreign is not None:
            return await self._migrate(foreign)
        return []

    async def _migrate(self, envelope: dict) -> List[Session]:
        raws = envelope.get("sessions")
        if not isinstance(raws, list):
            raws = []
        kept = []
        for raw in raws:
            try:
                salvaged = salvage_session(raw)
            except Exception as e:
                logger.warning("Migration dropped session that could not be salvaged: %s", e)
                continue
            if (
                isinstance(salvaged, dict)
                and isinstance(salvaged.get("id"), str)
                and isinstance(salvaged.get("participants"), list)
            ):
                kept.append(salvaged)
            else:
                logger.warning("Migration dropped unrecognized session shape")
        sessions = repair_sessions(kept, source="migration")
        logger.info(
            "Local state migrated from %s to %s (%d of %d sessions kept)",
            envelope.get("version", "unknown"), STATE_VERSION, len(sessions), len(raws),
        )
        await self.save(sessions)
        return sessions

    # ─── outbox ───

    async def save_outbox(self, ops: List[dict]) -> bool:
        try:
            await self.repo.set(OUTBOX_KEY, json.dumps(ops))
            return True
        except Exception as e:
            logger.error("Failed to save outbox: %s", e)
            return False

    async def load_outbox(self) -> List[dict]:
        try:
            raw = await self.repo.get(OUTBOX_KEY)
            if raw is None:
                return []
            ops = json.loads(raw)
        except Exception as e:
            logger.warning("Outbox unreadable, starting empty: %s", e)
            return []
        if not isinstance(ops, list):
            return []
        return [op for op in ops if isinstance(op, dict) and isinstance(op.get("session_id"), str)]

    # ─── maintenance ───

    async def clear(self) -> None:
        await self.repo.clear()
        logger.info("Local state cleared")

    async def prune_backups(self, max_age_seconds: float = LOCAL_BACKUP_MAX_AGE_SECONDS) -> int:
        """Drop backups older than ``max_age_seconds``; returns how many went."""
        cutoff_ms = (self.clock() - max_age_seconds) * 1000
        keys = self._backup_keys()
        kept = []
        present = 0
        for key in keys:
            raw = await self.repo.get(key)
            if raw is None:
                continue
            present += 1
            try:
                ts = _parse_envelope(raw).get("timestamp")
            except StorageCorruptionError:
                ts = None
            if isinstance(ts, (int, float)) and ts < cutoff_ms:
                continue
            kept.append(raw)
        removed = present - len(kept)
        for i, key in enumerate(keys):
            if i < len(kept):
                await self.repo.set(key, kept[i])
            else:
                await self.repo.remove(key)
        if removed:
            logger.info("Pruned %d old backups", removed)
        return removed

    async def diagnostics(self) -> dict:
        primary = await self.repo.get(PRIMARY_KEY)
        version = timestamp = None
        if primary is not None:
            try:
                envelope = _parse_envelope(primary)
                version = envelope.get("version")
                timestamp = envelope.get("timestamp")
            except StorageCorruptionError:
                pass
        backup_sizes = []
        for key in self._backup_keys():
            raw = await self.repo.get(key)
            if raw is not None:
                backup_sizes.append(len(raw))
        return {
            "has_primary": primary is not None,
            "primary_size": len(primary) if primary else 0,
            "primary_version": version,
            "primary_timestamp": timestamp,
            "backup_count": len(backup_sizes),
            "backup_sizes": backup_sizes,
            "has_outbox": await self.repo.get(OUTBOX_KEY) is not None,
        }
