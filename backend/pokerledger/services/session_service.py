import logging
import uuid
from datetime import datetime, timezone
from typing import List

from fastapi import HTTPException
from pydantic import ValidationError

from pokerledger.errors import GameRuleError
from pokerledger.models import GameResultModel, Session
from pokerledger.repositories.session_repo import (
    GameResultRepository,
    InvitationRepository,
    SessionRepository,
)
from pokerledger.services.game_service import payment_summary, player_results, settle
from pokerledger.validation import recompute_derived

logger = logging.getLogger(__name__)


def _to_session(doc: dict) -> Session:
    fields = {k: v for k, v in doc.items() if k in Session.model_fields}
    return recompute_derived(Session.model_validate(fields))


def _present(doc: dict) -> dict:
    session = _to_session(doc)
    data = session.model_dump(mode="json", exclude={"is_owner"})
    data["owner_id"] = doc["owner_id"]
    data["updated_at"] = doc.get("updated_at")
    return data


class SessionService:
    def __init__(
        self,
        session_repo: SessionRepository,
        invitation_repo: InvitationRepository,
        result_repo: GameResultRepository,
    ):
        self.session_repo = session_repo
        self.invitation_repo = invitation_repo
        self.result_repo = result_repo

    async def _get_doc(self, session_id: str) -> dict:
        doc = await self.session_repo.get_by_id(session_id)
        if not doc:
            raise HTTPException(status_code=404, detail="Session not found")
        return doc

    async def _can_read(self, doc: dict, uid: str) -> bool:
        if doc["owner_id"] == uid:
            return True
        return doc["id"] in await self.invitation_repo.accepted_session_ids(uid)

    # --- listing ---

    async def list_owned(self, uid: str) -> List[dict]:
        return [_present(d) for d in await self.session_repo.list_owned(uid)]

    async def list_granted(self, uid: str) -> List[dict]:
        ids = await self.invitation_repo.accepted_session_ids(uid)
        docs = await self.session_repo.list_by_ids(ids)
        # 自分がオーナーのものは owned 側に出る
        return [_present(d) for d in docs if d["owner_id"] != uid]

    async def get_session(self, session_id: str, uid: str) -> dict:
        doc = await self._get_doc(session_id)
        if not await self._can_read(doc, uid):
            raise HTTPException(status_code=403, detail="No access to this session")
        return _present(doc)

    # --- write ---

    async def create_session(self, uid: str, data: dict) -> str:
        if await self.session_repo.exists(data["id"]):
            raise HTTPException(status_code=409, detail="Session already exists")
        try:
            session = recompute_derived(Session.model_validate({**data, "owner_id": uid}))
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        doc = session.model_dump(mode="json", exclude={"is_owner"})
        await self.session_repo.create(doc)
        logger.info("Session %s created by %s", session.id, uid)
        if session.status == "completed":
            await self._record_results(session)
        return session.id

    async def update_session(self, session_id: str, updates: dict, uid: str):
        doc = await self._get_doc(session_id)
        if doc["owner_id"] != uid:
            raise HTTPException(status_code=403, detail="Only the owner can update this session")

        before = _to_session(doc)
        try:
            after = recompute_derived(Session.model_validate({
                **before.model_dump(mode="json"),
                **updates,
                "id": session_id,
                "owner_id": doc["owner_id"],
            }))
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        stored = after.model_dump(mode="json", exclude={"is_owner", "id", "owner_id"})
        if not await self.session_repo.update(session_id, stored):
            raise HTTPException(status_code=404, detail="Session not found")

        # 初めて completed になったときだけ成績を記録
        if before.status != "completed" and after.status == "completed":
            await self._record_results(after)

    async def delete_session(self, session_id: str, uid: str):
        doc = await self._get_doc(session_id)
        if doc["owner_id"] == uid:
            await self.session_repo.delete(session_id)
            await self.invitation_repo.delete_for_session(session_id)
            logger.info("Session %s deleted by owner %s", session_id, uid)
            return
        if session_id in await self.invitation_repo.accepted_session_ids(uid):
            await self.revoke_access(session_id, uid)
            return
        raise HTTPException(status_code=403, detail="No access to this session")

    async def revoke_access(self, session_id: str, uid: str):
        """Drop the caller's own access; the session itself is untouched."""
        if not await self.invitation_repo.revoke(session_id, uid):
            raise HTTPException(status_code=404, detail="No access grant for this session")
        await self.session_repo.remove_invited_user(session_id, uid)
        logger.info("User %s left shared session %s", uid, session_id)

    async def _record_results(self, session: Session):
        result = GameResultModel(
            session_id=session.id,
            owner_id=session.owner_id,
            name=session.name,
            start_time=session.start_time,
            end_time=session.end_time,
            point_to_cash_rate=session.point_to_cash_rate,
            player_results=player_results(session),
            recorded_at=datetime.now(timezone.utc),
        )
        await self.result_repo.upsert(result.model_dump(mode="json"))
        logger.info("Recorded results for session %s (%d players)", session.id, len(session.participants))

    # --- invitations ---

    async def invite(self, session_id: str, uid: str, invitee_id: str) -> str:
        doc = await self._get_doc(session_id)
        if doc["owner_id"] != uid:
            raise HTTPException(status_code=403, detail="Only the owner can invite")
        if invitee_id == uid:
            raise HTTPException(status_code=400, detail="Cannot invite yourself")
        if await self.invitation_repo.find_open(session_id, invitee_id):
            raise HTTPException(status_code=409, detail="User already invited")

        invitation_id = str(uuid.uuid4())
        await self.invitation_repo.create({
            "invitation_id": invitation_id,
            "session_id": session_id,
            "session_name": doc["name"],
            "inviter_id": uid,
            "invitee_id": invitee_id,
        })
        await self.session_repo.add_invited_user(session_id, invitee_id)
        return invitation_id

    async def list_invitations(self, uid: str) -> List[dict]:
        return await self.invitation_repo.list_pending_for(uid)

    async def respond(self, invitation_id: str, uid: str, accept: bool):
        inv = await self.invitation_repo.get_by_id(invitation_id)
        if not inv:
            raise HTTPException(status_code=404, detail="Invitation not found")
        if inv["invitee_id"] != uid:
            raise HTTPException(status_code=403, detail="Not your invitation")
        if not await self.invitation_repo.respond(invitation_id, "accepted" if accept else "declined"):
            raise HTTPException(status_code=409, detail="Invitation already answered")
        if not accept:
            await self.session_repo.remove_invited_user(inv["session_id"], uid)

    # --- settlement ---

    async def settlement_for(self, session_id: str, uid: str) -> dict:
        doc = await self._get_doc(session_id)
        if not await self._can_read(doc, uid):
            raise HTTPException(status_code=403, detail="No access to this session")
        session = _to_session(doc)
        try:
            result = settle(session)
        except GameRuleError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {**result.model_dump(), "summary": payment_summary(session, result)}
