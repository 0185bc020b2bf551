from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional


class PtoTypeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=20)
    description: Optional[str] = None
    color: str = "#3b82f6"
    uses_balance: bool = True
    multi_level_approval: bool = False
    disable_hierarchy_approval: bool = False
    specific_approvers: Optional[List[int]] = None
    negative_allowed: bool = False
    carryover_allowed: bool = False
    is_active: bool = True
    sort_order: int = 0


class PtoTypeCreate(PtoTypeBase):
    pass


class PtoTypeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    color: Optional[str] = None
    uses_balance: Optional[bool] = None
    multi_level_approval: Optional[bool] = None
    disable_hierarchy_approval: Optional[bool] = None
    specific_approvers: Optional[List[int]] = None
    negative_allowed: Optional[bool] = None
    carryover_allowed: Optional[bool] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class PtoTypeResponse(PtoTypeBase):
    id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
