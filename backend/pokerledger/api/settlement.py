from fastapi import APIRouter, Depends, HTTPException
from pokerledger.api.session import get_session_service
from pokerledger.services.session_service import SessionService
from pokerledger.schemas import SettlementRequest, SettlementResponse
from pokerledger.settlement import compute_settlements
from pokerledger.utils import get_current_uid

router = APIRouter()

@router.post("/settlements", response_model=SettlementResponse)
async def calculate_settlement(
    body: SettlementRequest,
    current_uid: str = Depends(get_current_uid),
):
    try:
        result = compute_settlements(body.balances, tolerance=body.tolerance)
    except ValueError as e:
        # 参加者IDの重複など
        raise HTTPException(status_code=400, detail=str(e))
    return result.model_dump()

@router.get("/sessions/{session_id}/settlement", response_model=SettlementResponse)
async def get_session_settlement(
    session_id: str,
    current_uid: str = Depends(get_current_uid),
    service: SessionService = Depends(get_session_service),
):
    return await service.settlement_for(session_id, current_uid)
