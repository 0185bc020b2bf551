from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pto_service.models.pto_request import DayPart
from pto_service.schemas.pto_balance import BalanceResponse
from pto_service.schemas.pto_blackout import BlackoutCheckResponse


class PtoRequestCreate(BaseModel):
    pto_type_id: int
    start_date: date
    end_date: date
    start_time: DayPart = DayPart.FULL_DAY
    end_time: DayPart = DayPart.FULL_DAY
    reason: Optional[str] = Field(default=None, max_length=2000)
    emergency_override: bool = False
    acknowledge_warnings: bool = False


class PtoRequestUpdate(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[DayPart] = None
    end_time: Optional[DayPart] = None
    reason: Optional[str] = Field(default=None, max_length=2000)
    emergency_override: bool = False


class HistoricalPtoCreate(BaseModel):
    user_id: int
    pto_type_id: int
    start_date: date
    end_date: date
    reason: Optional[str] = None


class ApprovalAction(BaseModel):
    comments: Optional[str] = None


class CancelAction(BaseModel):
    reason: Optional[str] = None


class ApprovalTransfer(BaseModel):
    from_user_id: int
    to_user_id: int


class PtoApprovalResponse(BaseModel):
    id: int
    pto_request_id: int
    approver_id: int
    level: int
    sequence: int
    status: str
    comments: Optional[str] = None
    responded_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PtoRequestResponse(BaseModel):
    id: int
    request_number: str
    user_id: int
    pto_type_id: int
    start_date: date
    end_date: date
    start_time: str
    end_time: str
    total_days: float
    status: str
    reason: Optional[str] = None
    denial_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    is_historical: bool
    is_emergency_override: bool
    blackout_warnings: Optional[List[Dict[str, Any]]] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by_id: Optional[int] = None
    denied_at: Optional[datetime] = None
    denied_by_id: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[int] = None
    approvals: List[PtoApprovalResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PtoRequestResult(BaseModel):
    """A mutated request together with its blackout findings and resulting balance."""
    request: PtoRequestResponse
    blackout: BlackoutCheckResponse
    balance: Optional[BalanceResponse] = None

    model_config = ConfigDict(from_attributes=True)


class ManagerChange(BaseModel):
    user_id: int
    old_manager_id: Optional[int] = None
    new_manager_id: int


# Resolve forward references for Pydantic V2
PtoRequestResponse.model_rebuild()
PtoRequestResult.model_rebuild()
