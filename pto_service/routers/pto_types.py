from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pto_service.core.exceptions import NotFound, ValidationError
from pto_service.core.schemas import ApiResponse
from pto_service.database import get_db
from pto_service.models.pto_balance import PtoBalance
from pto_service.models.pto_policy import PtoPolicy
from pto_service.models.pto_request import PtoRequest
from pto_service.models.pto_type import PtoType
from pto_service.models.user import User
from pto_service.routers.auth_deps import get_current_user, require_admin
from pto_service.schemas.pto_type import PtoTypeCreate, PtoTypeResponse, PtoTypeUpdate
from pto_service.services.audit import AuditService
from pto_service.services.base import utc_now
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pto-types", tags=["pto-types"])


def _get_type(db: Session, type_id: int) -> PtoType:
    pto_type = db.query(PtoType).filter(PtoType.id == type_id, PtoType.deleted_at.is_(None)).first()
    if not pto_type:
        raise NotFound(f"PTO type {type_id} not found", details={"pto_type_id": type_id})
    return pto_type


@router.get("", response_model=ApiResponse[List[PtoTypeResponse]])
def list_pto_types(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = db.query(PtoType).filter(PtoType.deleted_at.is_(None))
    if not include_inactive:
        query = query.filter(PtoType.is_active == True)
    types = query.order_by(PtoType.sort_order, PtoType.name).all()
    return ApiResponse.ok([PtoTypeResponse.model_validate(t) for t in types])


@router.post("", response_model=ApiResponse[PtoTypeResponse], status_code=status.HTTP_201_CREATED)
def create_pto_type(
    payload: PtoTypeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    if db.query(PtoType).filter(PtoType.code == payload.code).first():
        raise ValidationError(f"PTO type code '{payload.code}' is already in use.", details={"code": payload.code})

    pto_type = PtoType(**payload.model_dump())
    db.add(pto_type)
    db.flush()
    AuditService.log(
        db,
        action="pto_type_created",
        entity_type="pto_type",
        entity_id=pto_type.id,
        actor=current_user,
        details={"code": pto_type.code},
    )
    db.commit()
    db.refresh(pto_type)
    logger.info(f"PTO type {pto_type.code} created by user {current_user.id}")
    return ApiResponse.ok(PtoTypeResponse.model_validate(pto_type))


@router.put("/{type_id}", response_model=ApiResponse[PtoTypeResponse])
def update_pto_type(
    type_id: int,
    payload: PtoTypeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    pto_type = _get_type(db, type_id)
    changes = payload.model_dump(exclude_unset=True)
    before = {k: getattr(pto_type, k) for k in changes}
    for field, value in changes.items():
        setattr(pto_type, field, value)

    AuditService.log(
        db,
        action="pto_type_updated",
        entity_type="pto_type",
        entity_id=pto_type.id,
        actor=current_user,
        details={"code": pto_type.code},
        before_state=before,
        after_state=changes,
    )
    db.commit()
    db.refresh(pto_type)
    return ApiResponse.ok(PtoTypeResponse.model_validate(pto_type))


@router.delete("/{type_id}", response_model=ApiResponse[dict])
def delete_pto_type(
    type_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    """Soft delete; refused while policies, requests or balances still point at the type."""
    pto_type = _get_type(db, type_id)
    references = {
        "policies": db.query(PtoPolicy).filter(PtoPolicy.pto_type_id == type_id).count(),
        "requests": db.query(PtoRequest).filter(PtoRequest.pto_type_id == type_id).count(),
        "balances": db.query(PtoBalance).filter(PtoBalance.pto_type_id == type_id).count(),
    }
    if any(references.values()):
        raise ValidationError(
            f"PTO type '{pto_type.name}' is still in use and cannot be deleted.",
            details=references,
        )

    pto_type.deleted_at = utc_now()
    pto_type.is_active = False
    AuditService.log(
        db,
        action="pto_type_deleted",
        entity_type="pto_type",
        entity_id=pto_type.id,
        actor=current_user,
        details={"code": pto_type.code},
    )
    db.commit()
    return ApiResponse.ok({"id": type_id, "deleted": True})
