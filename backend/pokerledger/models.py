from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime
from decimal import Decimal

SessionStatus = Literal["active", "pending_close", "completed"]
ParticipantStatus = Literal["active", "cashed_out_early"]

# 金額はすべて最小通貨単位（セント）の int


# --- Participant ---
class ContributionRecord(BaseModel):
    log_id: str
    amount: int = Field(ge=0)
    time: datetime
    edited_at: Optional[datetime] = None

class CashOutRecord(BaseModel):
    log_id: str
    points_cashed_out: int = Field(ge=0)
    cash_value: int = Field(ge=0)
    time: datetime
    edited_at: Optional[datetime] = None

class Participant(BaseModel):
    id: str
    name: str
    point_stack: int = Field(default=0, ge=0)
    contributions: List[ContributionRecord] = []
    cash_out_amount: int = Field(default=0, ge=0)
    cash_out_log: List[CashOutRecord] = []
    status: ParticipantStatus = "active"
    points_left_on_table: int = Field(default=0, ge=0)

    @property
    def total_contributions(self) -> int:
        return sum(c.amount for c in self.contributions)

    @property
    def net_balance(self) -> int:
        return self.cash_out_amount - self.total_contributions


# --- Session ---
class Session(BaseModel):
    id: str
    name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SessionStatus = "active"
    point_to_cash_rate: Decimal = Field(gt=0)   # 1ポイントあたりの金額（通貨単位）
    standard_buy_in: int = Field(ge=0)
    participants: List[Participant] = []
    physical_points_on_table: int = 0           # 派生値：常に再計算する
    is_owner: bool = True
    owner_id: Optional[str] = None
    invited_users: List[str] = []

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None


# --- Game result (statistics propagation) ---
class PlayerResult(BaseModel):
    participant_id: str
    name: str
    total_buy_in: int
    total_cash_out: int
    net_profit_loss: int

class GameResultModel(BaseModel):
    session_id: str
    owner_id: str
    name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    point_to_cash_rate: Decimal
    player_results: List[PlayerResult] = []
    recorded_at: datetime
