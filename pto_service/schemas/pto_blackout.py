from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pto_service.models.holiday import HolidayType
from pto_service.models.pto_blackout import RestrictionType


class PtoBlackoutCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: date
    end_date: date
    position_id: Optional[int] = None
    user_ids: Optional[List[int]] = None
    pto_type_ids: Optional[List[int]] = None
    is_company_wide: bool = False
    is_holiday: bool = False
    is_strict: bool = False
    allow_emergency_override: bool = False
    restriction_type: RestrictionType = RestrictionType.FULL_BLOCK
    max_requests_allowed: Optional[int] = Field(default=None, ge=0)
    is_recurring: bool = False
    recurring_days: Optional[List[int]] = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_consistency(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.restriction_type == RestrictionType.LIMIT_REQUESTS and self.max_requests_allowed is None:
            raise ValueError("max_requests_allowed is required for limit_requests blackouts")
        if self.is_recurring:
            if not self.recurring_days:
                raise ValueError("recurring_days is required for recurring blackouts")
            if any(d < 0 or d > 6 for d in self.recurring_days):
                raise ValueError("recurring_days must be weekday numbers 0 (Monday) to 6 (Sunday)")
        if not (self.is_company_wide or self.position_id or self.user_ids):
            raise ValueError("A blackout must be company wide or target a position or users")
        return self


class PtoBlackoutResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    position_id: Optional[int] = None
    user_ids: Optional[List[int]] = None
    pto_type_ids: Optional[List[int]] = None
    is_company_wide: bool
    is_holiday: bool
    is_strict: bool
    allow_emergency_override: bool
    restriction_type: str
    max_requests_allowed: Optional[int] = None
    is_recurring: bool
    recurring_days: Optional[List[int]] = None
    is_active: bool
    formatted_range: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BlackoutCheckRequest(BaseModel):
    pto_type_id: int
    start_date: date
    end_date: date
    user_id: Optional[int] = None  # defaults to the caller
    emergency_override: bool = False


class BlackoutCheckResponse(BaseModel):
    overlaps: bool
    strict: bool
    can_submit: bool
    blackout_ids: List[int] = []
    conflicts: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    emergency_override_used: bool = False

    model_config = ConfigDict(from_attributes=True)


class HolidayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    date: date
    description: Optional[str] = None
    type: HolidayType = HolidayType.PUBLIC
    is_recurring: bool = False


class HolidayResponse(BaseModel):
    id: int
    name: str
    date: date
    description: Optional[str] = None
    type: str
    is_recurring: bool

    model_config = ConfigDict(from_attributes=True)
