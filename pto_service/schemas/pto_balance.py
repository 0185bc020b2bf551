from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import List, Optional


class BalanceResponse(BaseModel):
    balance_id: int
    user_id: int
    pto_type_id: int
    year: int
    balance: float
    pending: float
    used: float
    available: float

    model_config = ConfigDict(from_attributes=True)


class BalanceKey(BaseModel):
    user_id: int
    pto_type_id: int
    year: int


class BalanceOpen(BalanceKey):
    amount: float = Field(..., ge=0)
    reason: str = "Opening balance"


class BalanceAdjust(BalanceKey):
    delta: float
    reason: str = Field(..., min_length=1)


class ResetForNewYear(BaseModel):
    year: int = Field(..., ge=2000, le=2100)


class PtoTransactionResponse(BaseModel):
    id: int
    transaction_number: str
    pto_request_id: Optional[int] = None
    year: int
    type: str
    amount: float
    balance_before: float
    balance_after: float
    pending_after: float
    used_after: float
    description: Optional[str] = None
    created_by_id: Optional[int] = None
    effective_date: date
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReconcileResponse(BaseModel):
    balance_id: int
    previous_pending: float
    expected_pending: float
    drift: float
    corrected: bool


class ResetResponse(BaseModel):
    year: int
    created: int
    skipped: int
    balances: List[BalanceResponse] = []
