from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from pto_service.core.limiter import limiter
from pto_service.core.schemas import ApiResponse
from pto_service.database import get_db
from pto_service.models.pto_request import RequestStatus
from pto_service.models.user import User
from pto_service.routers.auth_deps import ensure_self_or_hr, get_current_user, require_admin
from pto_service.schemas.pto_request import (
    ApprovalAction,
    CancelAction,
    HistoricalPtoCreate,
    PtoApprovalResponse,
    PtoRequestCreate,
    PtoRequestResponse,
    PtoRequestResult,
    PtoRequestUpdate,
)
from pto_service.services.request_lifecycle import LifecycleResult, RequestLifecycleEngine
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pto-requests", tags=["pto-requests"])


def _envelope(result: LifecycleResult) -> ApiResponse[PtoRequestResult]:
    return ApiResponse.ok(PtoRequestResult.model_validate(result))


@router.post("", response_model=ApiResponse[PtoRequestResult], status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def submit_pto_request(
    request: Request,
    payload: PtoRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    engine = RequestLifecycleEngine(db)
    result = engine.submit(
        current_user,
        payload.pto_type_id,
        payload.start_date,
        payload.end_date,
        payload.start_time.value,
        payload.end_time.value,
        payload.reason,
        emergency_override=payload.emergency_override,
        acknowledge_warnings=payload.acknowledge_warnings,
    )
    return _envelope(result)


@router.get("", response_model=ApiResponse[List[PtoRequestResponse]])
def list_pto_requests(
    user_id: Optional[int] = None,
    status_filter: Optional[RequestStatus] = Query(default=None, alias="status"),
    pto_type_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    # Non-HR users only ever see their own requests
    if user_id is None and not current_user.is_hr:
        user_id = current_user.id
    if user_id is not None:
        ensure_self_or_hr(current_user, user_id)

    requests = RequestLifecycleEngine(db).list_requests(
        user_id=user_id,
        status=status_filter.value if status_filter else None,
        pto_type_id=pto_type_id,
        start_date=start_date,
        end_date=end_date,
    )
    data = [PtoRequestResponse.model_validate(r) for r in requests]
    return ApiResponse.ok(data, metadata={"count": len(data)})


@router.post("/historical", response_model=ApiResponse[PtoRequestResult], status_code=status.HTTP_201_CREATED)
def submit_historical_pto(
    payload: HistoricalPtoCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    result = RequestLifecycleEngine(db).submit_historical(
        current_user, payload.user_id, payload.pto_type_id, payload.start_date, payload.end_date, payload.reason
    )
    return _envelope(result)


@router.get("/{request_id}", response_model=ApiResponse[PtoRequestResponse])
def get_pto_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    engine = RequestLifecycleEngine(db)
    pto_request = engine.get_request(request_id)
    if not engine.can_view(pto_request, current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this PTO request")
    return ApiResponse.ok(PtoRequestResponse.model_validate(pto_request))


@router.put("/{request_id}", response_model=ApiResponse[PtoRequestResult])
def update_pto_request(
    request_id: int,
    payload: PtoRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = RequestLifecycleEngine(db).update(
        request_id,
        current_user,
        start_date=payload.start_date,
        end_date=payload.end_date,
        start_time=payload.start_time.value if payload.start_time else None,
        end_time=payload.end_time.value if payload.end_time else None,
        reason=payload.reason,
        emergency_override=payload.emergency_override,
    )
    return _envelope(result)


@router.post("/{request_id}/approve", response_model=ApiResponse[PtoRequestResult])
def approve_pto_request(
    request_id: int,
    payload: Optional[ApprovalAction] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    comments = payload.comments if payload else None
    return _envelope(RequestLifecycleEngine(db).approve(request_id, current_user, comments))


@router.post("/{request_id}/deny", response_model=ApiResponse[PtoRequestResult])
def deny_pto_request(
    request_id: int,
    payload: ApprovalAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _envelope(RequestLifecycleEngine(db).deny(request_id, current_user, payload.comments))


@router.post("/{request_id}/cancel", response_model=ApiResponse[PtoRequestResult])
def cancel_pto_request(
    request_id: int,
    payload: Optional[CancelAction] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Owners cancel under the self-service rules; everyone else cancels as an approver."""
    engine = RequestLifecycleEngine(db)
    reason = payload.reason if payload else None
    pto_request = engine.get_request(request_id)
    if pto_request.user_id == current_user.id:
        result = engine.cancel_by_self(request_id, current_user, reason)
    else:
        result = engine.cancel_by_approver(request_id, current_user, reason)
    return _envelope(result)


@router.get("/{request_id}/approvals", response_model=ApiResponse[List[PtoApprovalResponse]])
def list_request_approvals(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    engine = RequestLifecycleEngine(db)
    pto_request = engine.get_request(request_id)
    if not engine.can_view(pto_request, current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this PTO request")
    return ApiResponse.ok([PtoApprovalResponse.model_validate(a) for a in pto_request.approvals])
