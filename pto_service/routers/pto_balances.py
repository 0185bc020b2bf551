from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from pto_service.core.exceptions import NotFound
from pto_service.core.schemas import ApiResponse
from pto_service.database import get_db
from pto_service.models.pto_balance import PtoBalance
from pto_service.models.user import User
from pto_service.routers.auth_deps import ensure_self_or_hr, get_current_user, require_admin, require_hr
from pto_service.schemas.pto_balance import (
    BalanceAdjust,
    BalanceKey,
    BalanceOpen,
    BalanceResponse,
    PtoTransactionResponse,
    ReconcileResponse,
    ResetForNewYear,
    ResetResponse,
)
from pto_service.services.balance_ledger import BalanceLedger, BalanceSnapshot
from pto_service.services.base import run_atomic
from pto_service.services.policy_projector import PolicyProjector

router = APIRouter(prefix="/pto-balances", tags=["pto-balances"])


@router.get("", response_model=ApiResponse[List[BalanceResponse]])
def get_pto_balances(
    user_id: Optional[int] = None,
    year: Optional[int] = None,
    pto_type_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Balance figures for a user. With a type and year the balance is opened
    at zero when a policy exists but no row does yet.
    """
    user_id = user_id or current_user.id
    ensure_self_or_hr(current_user, user_id)
    ledger = BalanceLedger(db)

    if pto_type_id is not None and year is not None:
        snapshots = [run_atomic(db, ledger.get_balance, user_id, pto_type_id, year)]
    else:
        snapshots = [BalanceSnapshot.of(row) for row in ledger.list_balances(user_id, year)]
    data = [BalanceResponse.model_validate(s) for s in snapshots]
    return ApiResponse.ok(data, metadata={"count": len(data)})


@router.post("", response_model=ApiResponse[BalanceResponse], status_code=status.HTTP_201_CREATED)
def open_pto_balance(
    payload: BalanceOpen,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    ledger = BalanceLedger(db)
    snapshot = run_atomic(
        db, ledger.open_balance,
        payload.user_id, payload.pto_type_id, payload.year, payload.amount, payload.reason,
        actor=current_user,
    )
    return ApiResponse.ok(BalanceResponse.model_validate(snapshot))


@router.post("/adjust", response_model=ApiResponse[BalanceResponse])
def adjust_pto_balance(
    payload: BalanceAdjust,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_hr())
):
    ledger = BalanceLedger(db)
    snapshot = run_atomic(
        db, ledger.adjust,
        payload.user_id, payload.pto_type_id, payload.year, payload.delta, payload.reason,
        actor=current_user,
    )
    return ApiResponse.ok(BalanceResponse.model_validate(snapshot))


@router.get("/{balance_id}/transactions", response_model=ApiResponse[List[PtoTransactionResponse]])
def list_balance_transactions(
    balance_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    balance = db.get(PtoBalance, balance_id)
    if balance is None:
        raise NotFound(f"PTO balance {balance_id} not found", details={"balance_id": balance_id})
    ensure_self_or_hr(current_user, balance.user_id)
    history = BalanceLedger(db).history(balance.user_id, balance.pto_type_id, balance.year)
    data = [PtoTransactionResponse.model_validate(t) for t in history]
    return ApiResponse.ok(data, metadata={"count": len(data)})


@router.post("/reconcile", response_model=ApiResponse[ReconcileResponse])
def reconcile_pto_balance(
    payload: BalanceKey,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_hr())
):
    ledger = BalanceLedger(db)
    result = run_atomic(
        db, ledger.reconcile_pending, payload.user_id, payload.pto_type_id, payload.year, actor=current_user
    )
    return ApiResponse.ok(ReconcileResponse(**result))


@router.post("/reset-for-new-year", response_model=ApiResponse[ResetResponse])
def reset_pto_balances_for_new_year(
    payload: ResetForNewYear,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin())
):
    result = PolicyProjector(db).reset_for_new_year(payload.year, actor=current_user)
    response = ResetResponse(
        year=result["year"],
        created=result["created"],
        skipped=result["skipped"],
        balances=[BalanceResponse.model_validate(s) for s in result["balances"]],
    )
    return ApiResponse.ok(response)
