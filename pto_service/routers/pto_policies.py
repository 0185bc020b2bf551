from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pto_service.core.schemas import ApiResponse
from pto_service.database import get_db
from pto_service.models.user import User
from pto_service.routers.auth_deps import ensure_self_or_hr, get_current_user, require_admin
from pto_service.schemas.pto_balance import BalanceResponse
from pto_service.schemas.pto_policy import PolicyCreated, ProjectionResponse, PtoPolicyCreate, PtoPolicyResponse
from pto_service.services.policy_projector import PolicyProjector

router = APIRouter(prefix="/pto-policies", tags=["pto-policies"])


@router.post("", response_model=ApiResponse[PolicyCreated], status_code=status.HTTP_201_CREATED)
def create_pto_policy(
    payload: PtoPolicyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    policy, snapshot = PolicyProjector(db).create_policy(payload.model_dump(), actor=current_user)
    return ApiResponse.ok(PolicyCreated(
        policy=PtoPolicyResponse.model_validate(policy),
        balance=BalanceResponse.model_validate(snapshot) if snapshot else None,
    ))


@router.get("", response_model=ApiResponse[List[PtoPolicyResponse]])
def list_pto_policies(
    user_id: Optional[int] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if user_id is None and not current_user.is_hr:
        user_id = current_user.id
    if user_id is not None:
        ensure_self_or_hr(current_user, user_id)
    policies = PolicyProjector(db).list_policies(user_id=user_id, active_only=active_only)
    data = [PtoPolicyResponse.model_validate(p) for p in policies]
    return ApiResponse.ok(data, metadata={"count": len(data)})


@router.get("/project", response_model=ApiResponse[ProjectionResponse])
def project_pto_balance(
    user_id: int,
    pto_type_id: int,
    to_year: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Preview the balance the annual reset would open for `to_year`."""
    ensure_self_or_hr(current_user, user_id)
    amount = PolicyProjector(db).project_annual(user_id, pto_type_id, to_year - 1, to_year)
    return ApiResponse.ok(ProjectionResponse(
        user_id=user_id,
        pto_type_id=pto_type_id,
        from_year=to_year - 1,
        to_year=to_year,
        projected_balance=float(amount),
    ))
