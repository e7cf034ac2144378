from fastapi import APIRouter, Depends
from pokerledger.services.session_service import SessionService
from pokerledger.repositories.session_repo import (
    GameResultRepository,
    InvitationRepository,
    SessionRepository,
)
from pokerledger.db import get_db
from pokerledger.schemas import (
    InvitationCreate,
    InvitationResponse,
    SessionCreate,
    SessionResponse,
    SessionUpdate,
)
from typing import List
from pokerledger.utils import get_current_uid

router = APIRouter()

def get_session_service(db=Depends(get_db)):
    return SessionService(SessionRepository(db), InvitationRepository(db), GameResultRepository(db))

@router.get("/sessions/owned", response_model=List[SessionResponse])
async def list_owned_sessions(
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    return await service.list_owned(current_uid)

@router.get("/sessions/granted", response_model=List[SessionResponse])
async def list_granted_sessions(
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    # 招待を承認したセッションのみ
    return await service.list_granted(current_uid)

@router.post("/sessions", response_model=dict, status_code=201)
async def create_session(
    data: SessionCreate,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    session_id = await service.create_session(current_uid, data.model_dump(mode="json"))
    return {"id": session_id}

@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    return await service.get_session(session_id, current_uid)

@router.put("/sessions/{session_id}")
async def update_session(
    session_id: str,
    updates: SessionUpdate,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    await service.update_session(session_id, updates.model_dump(mode="json", exclude_unset=True), current_uid)
    return {"ok": True}

@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    # オーナーなら削除、招待されたユーザーなら自分のアクセスだけ外す
    await service.delete_session(session_id, current_uid)
    return {"ok": True}

@router.delete("/sessions/{session_id}/access")
async def revoke_access(
    session_id: str,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    await service.revoke_access(session_id, current_uid)
    return {"ok": True}

@router.post("/sessions/{session_id}/invitations", response_model=dict, status_code=201)
async def invite_user(
    session_id: str,
    body: InvitationCreate,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    invitation_id = await service.invite(session_id, current_uid, body.invitee_id)
    return {"invitation_id": invitation_id}

@router.get("/invitations", response_model=List[InvitationResponse])
async def list_invitations(
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    return await service.list_invitations(current_uid)

@router.post("/invitations/{invitation_id}/accept")
async def accept_invitation(
    invitation_id: str,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    await service.respond(invitation_id, current_uid, accept=True)
    return {"ok": True}

@router.post("/invitations/{invitation_id}/decline")
async def decline_invitation(
    invitation_id: str,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    await service.respond(invitation_id, current_uid, accept=False)
    return {"ok": True}
