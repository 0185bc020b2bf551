from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pto_service.core.exceptions import NotFound
from pto_service.core.schemas import ApiResponse
from pto_service.database import get_db
from pto_service.models.holiday import Holiday
from pto_service.models.pto_blackout import PtoBlackout
from pto_service.models.user import User
from pto_service.routers.auth_deps import ensure_self_or_hr, get_current_user, require_hr
from pto_service.schemas.pto_blackout import (
    BlackoutCheckRequest,
    BlackoutCheckResponse,
    HolidayCreate,
    HolidayResponse,
    PtoBlackoutCreate,
    PtoBlackoutResponse,
)
from pto_service.services.audit import AuditService
from pto_service.services.blackout_validator import BlackoutValidator
from pto_service.services.identity import IdentityDirectory

router = APIRouter(prefix="/pto-blackouts", tags=["pto-blackouts"])


@router.get("", response_model=ApiResponse[List[PtoBlackoutResponse]])
def list_pto_blackouts(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = db.query(PtoBlackout)
    if not include_inactive:
        query = query.filter(PtoBlackout.is_active == True)
    if start_date is not None:
        query = query.filter(PtoBlackout.end_date >= start_date)
    if end_date is not None:
        query = query.filter(PtoBlackout.start_date <= end_date)
    blackouts = query.order_by(PtoBlackout.start_date, PtoBlackout.id).all()
    return ApiResponse.ok([PtoBlackoutResponse.model_validate(b) for b in blackouts])


@router.post("", response_model=ApiResponse[PtoBlackoutResponse], status_code=status.HTTP_201_CREATED)
def create_pto_blackout(
    payload: PtoBlackoutCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_hr())
):
    data = payload.model_dump()
    data["restriction_type"] = payload.restriction_type.value
    blackout = PtoBlackout(**data)
    db.add(blackout)
    db.flush()
    AuditService.log(
        db,
        action="pto_blackout_created",
        entity_type="pto_blackout",
        entity_id=blackout.id,
        actor=current_user,
        details={"name": blackout.name, "range": blackout.formatted_range},
    )
    db.commit()
    db.refresh(blackout)
    return ApiResponse.ok(PtoBlackoutResponse.model_validate(blackout))


@router.delete("/{blackout_id}", response_model=ApiResponse[dict])
def delete_pto_blackout(
    blackout_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_hr())
):
    blackout = db.get(PtoBlackout, blackout_id)
    if blackout is None:
        raise NotFound(f"PTO blackout {blackout_id} not found", details={"blackout_id": blackout_id})
    AuditService.log(
        db,
        action="pto_blackout_deleted",
        entity_type="pto_blackout",
        entity_id=blackout.id,
        actor=current_user,
        details={"name": blackout.name, "range": blackout.formatted_range},
    )
    db.delete(blackout)
    db.commit()
    return ApiResponse.ok({"id": blackout_id, "deleted": True})


@router.post("/check", response_model=ApiResponse[BlackoutCheckResponse])
def check_pto_blackouts(
    payload: BlackoutCheckRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Dry-run the blackout rules for a prospective request."""
    user = current_user
    if payload.user_id is not None and payload.user_id != current_user.id:
        ensure_self_or_hr(current_user, payload.user_id)
        user = IdentityDirectory(db).get_user(payload.user_id)
    check = BlackoutValidator(db).check(
        user, payload.start_date, payload.end_date, payload.pto_type_id,
        emergency_override=payload.emergency_override,
    )
    return ApiResponse.ok(BlackoutCheckResponse.model_validate(check))


@router.get("/holidays", response_model=ApiResponse[List[HolidayResponse]])
def list_holidays(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Holidays on the calendar; with a range, only those falling inside it plus their dates."""
    holidays = db.query(Holiday).order_by(Holiday.date, Holiday.id).all()
    metadata = None
    if start_date is not None and end_date is not None:
        holidays = [h for h in holidays if h.occurrences(start_date, end_date)]
        days = BlackoutValidator(db).holidays_in_range(start_date, end_date)
        metadata = {"dates": [d.isoformat() for d in days]}
    return ApiResponse.ok([HolidayResponse.model_validate(h) for h in holidays], metadata)


@router.post("/holidays", response_model=ApiResponse[HolidayResponse], status_code=status.HTTP_201_CREATED)
def create_holiday(
    payload: HolidayCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_hr())
):
    data = payload.model_dump()
    data["type"] = payload.type.value
    holiday = Holiday(**data)
    db.add(holiday)
    db.flush()
    AuditService.log(
        db,
        action="holiday_created",
        entity_type="holiday",
        entity_id=holiday.id,
        actor=current_user,
        details={"name": holiday.name, "date": holiday.date, "is_recurring": holiday.is_recurring},
    )
    db.commit()
    db.refresh(holiday)
    return ApiResponse.ok(HolidayResponse.model_validate(holiday))
