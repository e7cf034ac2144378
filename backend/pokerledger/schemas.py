# pokerledger/schemas.py

from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from decimal import Decimal

from pokerledger.models import Participant, SessionStatus
from pokerledger.settlement import NetBalance, SettlementImbalance, Transfer

# --- Session ---
class SessionCreate(BaseModel):
    id: str
    name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SessionStatus = "active"
    point_to_cash_rate: Decimal = Field(gt=0)
    standard_buy_in: int = Field(ge=0)
    participants: List[Participant] = []
    owner_id: Optional[str] = None      # サーバー側で上書きする
    invited_users: List[str] = []

class SessionUpdate(BaseModel):
    name: Optional[str] = None
    end_time: Optional[datetime] = None
    status: Optional[SessionStatus] = None
    point_to_cash_rate: Optional[Decimal] = Field(default=None, gt=0)
    standard_buy_in: Optional[int] = Field(default=None, ge=0)
    participants: Optional[List[Participant]] = None
    invited_users: Optional[List[str]] = None

class SessionResponse(BaseModel):
    id: str
    name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SessionStatus
    point_to_cash_rate: Decimal
    standard_buy_in: int
    participants: List[Participant]
    physical_points_on_table: int = 0
    owner_id: str
    invited_users: List[str] = []
    updated_at: Optional[datetime] = None

# --- Invitation ---
class InvitationCreate(BaseModel):
    invitee_id: str

class InvitationResponse(BaseModel):
    invitation_id: str
    session_id: str
    session_name: str
    inviter_id: str
    invitee_id: str
    status: Literal["pending", "accepted", "declined"]
    created_at: datetime
    responded_at: Optional[datetime] = None

# --- Settlement ---
class SettlementRequest(BaseModel):
    balances: List[NetBalance]
    tolerance: int = Field(default=0, ge=0)

class SettlementResponse(BaseModel):
    transfers: List[Transfer]
    warning: Optional[SettlementImbalance] = None
    summary: Optional[str] = None
