"""
Balance ledger: the only writer of PtoBalance rows.

Every mutation loads the (user, type, year) row under a row lock, checks the
write-time invariants, updates the figures and appends one PtoTransaction.
Methods flush but never commit; the calling operation owns the unit of work
(see services.base.run_atomic), so a failure anywhere leaves the ledger
untouched.
"""
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from pto_service.core.exceptions import InsufficientBalance, NotFound, ValidationError
from pto_service.models.pto_balance import PtoBalance
from pto_service.models.pto_policy import PtoPolicy
from pto_service.models.pto_request import PtoRequest, RequestStatus
from pto_service.models.pto_transaction import PtoTransaction, TransactionType
from pto_service.models.pto_type import PtoType
from pto_service.models.user import User
from pto_service.services.base import BaseService

ZERO = Decimal("0")


@dataclass(frozen=True)
class BalanceSnapshot:
    balance_id: int
    user_id: int
    pto_type_id: int
    year: int
    balance: Decimal
    pending: Decimal
    used: Decimal
    available: Decimal

    @classmethod
    def of(cls, row: PtoBalance) -> "BalanceSnapshot":
        return cls(
            balance_id=row.id,
            user_id=row.user_id,
            pto_type_id=row.pto_type_id,
            year=row.year,
            balance=Decimal(row.balance),
            pending=Decimal(row.pending_balance),
            used=Decimal(row.used_balance),
            available=row.available_balance,
        )


def to_days(value, allow_negative: bool = False, allow_zero: bool = False) -> Decimal:
    """Coerce to Decimal and enforce half-day resolution."""
    days = Decimal(str(value))
    if (days * 2) % 1 != 0:
        raise ValidationError(f"Amount {days} must be a multiple of 0.5 days.", details={"amount": str(days)})
    if days < 0 and not allow_negative:
        raise ValidationError(f"Amount {days} must not be negative.", details={"amount": str(days)})
    if days == 0 and not allow_zero:
        raise ValidationError("Amount must not be zero.", details={"amount": "0"})
    return days


class BalanceLedger(BaseService):

    # ---- lookups -------------------------------------------------------

    def _locked(self, user_id: int, pto_type_id: int, year: int) -> Optional[PtoBalance]:
        return (
            self.db.query(PtoBalance)
            .filter(
                PtoBalance.user_id == user_id,
                PtoBalance.pto_type_id == pto_type_id,
                PtoBalance.year == year,
            )
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _pto_type(self, pto_type_id: int) -> PtoType:
        pto_type = self.db.get(PtoType, pto_type_id)
        if not pto_type:
            raise NotFound(f"PTO type {pto_type_id} not found", details={"pto_type_id": pto_type_id})
        return pto_type

    def active_policy(self, user_id: int, pto_type_id: int) -> Optional[PtoPolicy]:
        return self.db.query(PtoPolicy).filter(
            PtoPolicy.user_id == user_id,
            PtoPolicy.pto_type_id == pto_type_id,
            PtoPolicy.is_active == True
        ).first()

    def _new_row(self, user_id: int, pto_type_id: int, year: int, amount: Decimal = ZERO) -> PtoBalance:
        row = PtoBalance(
            user_id=user_id,
            pto_type_id=pto_type_id,
            year=year,
            balance=amount,
            pending_balance=ZERO,
            used_balance=ZERO,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def _ensure(self, user_id: int, pto_type_id: int, year: int) -> PtoBalance:
        """Locked balance row, opened at zero if a policy exists and no row does."""
        row = self._locked(user_id, pto_type_id, year)
        if row is not None:
            return row
        if self.active_policy(user_id, pto_type_id) is None:
            raise NotFound(
                f"No PTO balance for user {user_id}, type {pto_type_id}, year {year}.",
                details={"user_id": user_id, "pto_type_id": pto_type_id, "year": year},
            )
        self.log_info(f"Opening zero balance for user {user_id} type {pto_type_id} year {year}")
        try:
            with self.db.begin_nested():
                return self._new_row(user_id, pto_type_id, year)
        except IntegrityError:
            # Another writer opened the same balance between our read and insert
            row = self._locked(user_id, pto_type_id, year)
            if row is None:
                raise
            self.log_warning(f"Balance for user {user_id} type {pto_type_id} year {year} opened concurrently")
            return row

    # ---- invariants ----------------------------------------------------

    def _check_sufficient(self, row: PtoBalance, days: Decimal):
        available = row.available_balance
        if available >= days:
            return
        pto_type = self._pto_type(row.pto_type_id)
        if not pto_type.negative_allowed:
            raise InsufficientBalance(
                available=available,
                current_balance=Decimal(row.balance),
                pending=Decimal(row.pending_balance),
                requested=days,
            )
        policy = self.active_policy(row.user_id, row.pto_type_id)
        if policy is not None and policy.max_negative_balance is not None:
            floor = -Decimal(policy.max_negative_balance)
            if available - days < floor:
                raise InsufficientBalance(
                    available=available,
                    current_balance=Decimal(row.balance),
                    pending=Decimal(row.pending_balance),
                    requested=days,
                    message=f"Request exceeds the allowed negative balance of {policy.max_negative_balance} days.",
                )

    def _record(
        self,
        row: PtoBalance,
        txn_type: TransactionType,
        amount: Decimal,
        balance_before: Decimal,
        description: str,
        request_id: Optional[int] = None,
        actor: Optional[User] = None,
        effective_date: Optional[date] = None,
    ) -> PtoTransaction:
        today = self.today()
        txn = PtoTransaction(
            transaction_number=f"TXN-{today.year}-{uuid.uuid4().hex[:10].upper()}",
            user_id=row.user_id,
            pto_type_id=row.pto_type_id,
            pto_balance_id=row.id,
            pto_request_id=request_id,
            year=row.year,
            type=txn_type.value,
            amount=amount,
            balance_before=balance_before,
            balance_after=Decimal(row.balance),
            pending_after=Decimal(row.pending_balance),
            used_after=Decimal(row.used_balance),
            description=description,
            created_by_id=actor.id if actor else None,
            effective_date=effective_date or today,
        )
        self.db.add(txn)
        self.db.flush()
        return txn

    # ---- reads ---------------------------------------------------------

    def get_balance(self, user_id: int, pto_type_id: int, year: int) -> BalanceSnapshot:
        return BalanceSnapshot.of(self._ensure(user_id, pto_type_id, year))

    def find_balance(self, user_id: int, pto_type_id: int, year: int) -> Optional[PtoBalance]:
        return self._locked(user_id, pto_type_id, year)

    def list_balances(self, user_id: int, year: Optional[int] = None) -> List[PtoBalance]:
        query = self.db.query(PtoBalance).filter(PtoBalance.user_id == user_id)
        if year is not None:
            query = query.filter(PtoBalance.year == year)
        return query.order_by(PtoBalance.year.desc(), PtoBalance.pto_type_id).all()

    def history(self, user_id: int, pto_type_id: int, year: int) -> List[PtoTransaction]:
        row = self.db.query(PtoBalance).filter(
            PtoBalance.user_id == user_id,
            PtoBalance.pto_type_id == pto_type_id,
            PtoBalance.year == year
        ).first()
        if row is None:
            raise NotFound(
                f"No PTO balance for user {user_id}, type {pto_type_id}, year {year}.",
                details={"user_id": user_id, "pto_type_id": pto_type_id, "year": year},
            )
        return self.db.query(PtoTransaction).filter(
            PtoTransaction.pto_balance_id == row.id
        ).order_by(PtoTransaction.id).all()

    # ---- mutations -----------------------------------------------------

    def reserve(self, user_id: int, pto_type_id: int, year: int, days, request_id: Optional[int] = None,
                actor: Optional[User] = None) -> BalanceSnapshot:
        days = to_days(days)
        row = self._ensure(user_id, pto_type_id, year)
        self._check_sufficient(row, days)

        before = Decimal(row.balance)
        row.pending_balance = Decimal(row.pending_balance) + days
        self._record(row, TransactionType.RESERVATION, days, before,
                     f"Reserved {days} day(s) for pending request", request_id, actor)
        return BalanceSnapshot.of(row)

    def release(self, user_id: int, pto_type_id: int, year: int, days, request_id: Optional[int] = None,
                actor: Optional[User] = None, reason: str = "Released reservation") -> BalanceSnapshot:
        days = to_days(days)
        row = self._ensure(user_id, pto_type_id, year)

        pending = Decimal(row.pending_balance)
        released = min(days, pending)
        if released < days:
            self.log_warning(
                f"Release of {days} exceeds pending {pending} on balance {row.id}; clamping",
                balance_id=row.id, pto_request_id=request_id,
            )
        before = Decimal(row.balance)
        row.pending_balance = pending - released
        self._record(row, TransactionType.RELEASE, -released, before, reason, request_id, actor)
        return BalanceSnapshot.of(row)

    def consume(self, user_id: int, pto_type_id: int, year: int, days, reason: str,
                request_id: Optional[int] = None, actor: Optional[User] = None,
                from_pending: bool = True, effective_date: Optional[date] = None) -> BalanceSnapshot:
        """Turn days into used time; `from_pending=False` charges the balance directly."""
        days = to_days(days)
        row = self._ensure(user_id, pto_type_id, year)

        if from_pending:
            pending = Decimal(row.pending_balance)
            if pending < days:
                self.log_warning(
                    f"Consuming {days} with only {pending} pending on balance {row.id}",
                    balance_id=row.id, pto_request_id=request_id,
                )
            row.pending_balance = max(ZERO, pending - days)
        else:
            self._check_sufficient(row, days)

        before = Decimal(row.balance)
        row.balance = before - days
        row.used_balance = Decimal(row.used_balance) + days
        self._record(row, TransactionType.USAGE, -days, before, reason, request_id, actor, effective_date)
        return BalanceSnapshot.of(row)

    def restore(self, user_id: int, pto_type_id: int, year: int, days, reason: str,
                request_id: Optional[int] = None, actor: Optional[User] = None) -> BalanceSnapshot:
        days = to_days(days)
        row = self._ensure(user_id, pto_type_id, year)

        before = Decimal(row.balance)
        row.balance = before + days
        row.used_balance = max(ZERO, Decimal(row.used_balance) - days)
        self._record(row, TransactionType.RESTORE, days, before, reason, request_id, actor)
        return BalanceSnapshot.of(row)

    def adjust(self, user_id: int, pto_type_id: int, year: int, delta, reason: str,
               actor: Optional[User] = None,
               txn_type: TransactionType = TransactionType.ADJUSTMENT) -> BalanceSnapshot:
        delta = to_days(delta, allow_negative=True)
        if not reason:
            raise ValidationError("A reason is required for balance adjustments.")
        row = self._ensure(user_id, pto_type_id, year)
        if delta < 0:
            self._check_sufficient(row, -delta)

        before = Decimal(row.balance)
        row.balance = before + delta
        self._record(row, txn_type, delta, before, reason, actor=actor)
        self.log_info(f"Balance {row.id} adjusted by {delta}: {reason}", balance_id=row.id)
        return BalanceSnapshot.of(row)

    def open_balance(self, user_id: int, pto_type_id: int, year: int, amount, reason: str,
                     actor: Optional[User] = None,
                     txn_type: TransactionType = TransactionType.INITIAL) -> BalanceSnapshot:
        # A year-end reset may open below zero when a deficit is carried forward
        amount = to_days(amount, allow_negative=txn_type == TransactionType.RESET, allow_zero=True)
        self._pto_type(pto_type_id)
        if self._locked(user_id, pto_type_id, year) is not None:
            raise ValidationError(
                f"A balance already exists for user {user_id}, type {pto_type_id}, year {year}.",
                details={"user_id": user_id, "pto_type_id": pto_type_id, "year": year},
            )
        row = self._new_row(user_id, pto_type_id, year, amount)
        self._record(row, txn_type, amount, ZERO, reason, actor=actor)
        return BalanceSnapshot.of(row)

    def reconcile_pending(self, user_id: int, pto_type_id: int, year: int,
                          actor: Optional[User] = None) -> dict:
        """Reset pending to the sum of outstanding pending requests, journaling any drift."""
        row = self._locked(user_id, pto_type_id, year)
        if row is None:
            raise NotFound(
                f"No PTO balance for user {user_id}, type {pto_type_id}, year {year}.",
                details={"user_id": user_id, "pto_type_id": pto_type_id, "year": year},
            )
        expected = self.db.query(func.coalesce(func.sum(PtoRequest.total_days), 0)).filter(
            PtoRequest.user_id == user_id,
            PtoRequest.pto_type_id == pto_type_id,
            PtoRequest.status == RequestStatus.PENDING.value,
            PtoRequest.start_date >= date(year, 1, 1),
            PtoRequest.start_date <= date(year, 12, 31),
        ).scalar()
        expected = Decimal(str(expected))
        previous = Decimal(row.pending_balance)
        drift = expected - previous

        if drift != 0:
            self.log_warning(
                f"Pending drift of {drift} on balance {row.id} (recorded {previous}, outstanding {expected})",
                balance_id=row.id,
            )
            row.pending_balance = expected
            self._record(row, TransactionType.RECONCILIATION, drift, Decimal(row.balance),
                         f"Pending reconciled from {previous} to {expected}", actor=actor)

        return {
            "balance_id": row.id,
            "previous_pending": previous,
            "expected_pending": expected,
            "drift": drift,
            "corrected": drift != 0,
        }
