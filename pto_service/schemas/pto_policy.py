from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Literal, Optional

from pto_service.schemas.pto_balance import BalanceResponse


class PtoPolicyCreate(BaseModel):
    user_id: int
    pto_type_id: int
    initial_days: float = Field(..., ge=0, le=999.5)
    annual_accrual_amount: float = Field(..., ge=0, le=999.5)
    bonus_days_per_year: float = Field(default=0, ge=0, le=999.5)
    years_for_bonus: int = Field(default=1, ge=1, le=50)
    rollover_enabled: bool = False
    max_rollover_days: Optional[float] = Field(default=None, ge=0, le=999.5)
    max_negative_balance: Optional[float] = Field(default=None, ge=0, le=999.5)
    accrual_frequency: Literal["annually", "monthly", "per_pay_period"] = "annually"
    effective_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True


class PtoPolicyResponse(BaseModel):
    id: int
    user_id: int
    pto_type_id: int
    initial_days: float
    annual_accrual_amount: float
    bonus_days_per_year: float
    years_for_bonus: int
    rollover_enabled: bool
    max_rollover_days: Optional[float] = None
    max_negative_balance: Optional[float] = None
    accrual_frequency: str
    effective_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PolicyCreated(BaseModel):
    policy: PtoPolicyResponse
    balance: Optional[BalanceResponse] = None


class ProjectionResponse(BaseModel):
    user_id: int
    pto_type_id: int
    from_year: int
    to_year: int
    projected_balance: float
