"""
Policy-to-balance projection: opening balances when a policy is created and
rolling balances into a new year.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from pto_service.core.exceptions import NotFound, ValidationError
from pto_service.models.pto_balance import PtoBalance
from pto_service.models.pto_policy import PtoPolicy
from pto_service.models.pto_transaction import TransactionType
from pto_service.models.pto_type import PtoType
from pto_service.models.user import User
from pto_service.services.audit import AuditService
from pto_service.services.balance_ledger import BalanceLedger, BalanceSnapshot, to_days
from pto_service.services.base import BaseService, run_atomic
from pto_service.services.identity import IdentityDirectory


ACCRUAL_FREQUENCIES = ("annually", "monthly", "per_pay_period")


def years_of_service(start_date: Optional[date], as_of: date) -> int:
    """Completed years between `start_date` and `as_of`, never negative."""
    if start_date is None:
        return 0
    years = as_of.year - start_date.year
    if (as_of.month, as_of.day) < (start_date.month, start_date.day):
        years -= 1
    return max(0, years)


class PolicyProjector(BaseService):
    def __init__(self, db, clock=None):
        super().__init__(db, clock)
        self.ledger = BalanceLedger(db, clock)
        self.identity = IdentityDirectory(db, clock)
        self.audit = AuditService(db, clock)

    def list_policies(self, user_id: Optional[int] = None, active_only: bool = False) -> List[PtoPolicy]:
        query = self.db.query(PtoPolicy)
        if user_id is not None:
            query = query.filter(PtoPolicy.user_id == user_id)
        if active_only:
            query = query.filter(PtoPolicy.is_active == True)
        return query.order_by(PtoPolicy.user_id, PtoPolicy.pto_type_id, PtoPolicy.id).all()

    # ---- policy creation -----------------------------------------------

    def create_policy(self, data: dict, actor: Optional[User] = None) -> Tuple[PtoPolicy, Optional[BalanceSnapshot]]:
        return run_atomic(self.db, self._create_policy, data, actor)

    def _create_policy(self, data: dict, actor: Optional[User]):
        user = self.identity.get_user(data["user_id"])
        pto_type = self.db.get(PtoType, data["pto_type_id"])
        if pto_type is None or pto_type.deleted_at is not None:
            raise NotFound(f"PTO type {data['pto_type_id']} not found", details={"pto_type_id": data["pto_type_id"]})

        is_active = data.get("is_active", True)
        if is_active and self.ledger.active_policy(user.id, pto_type.id) is not None:
            raise ValidationError(
                f"{user.display_name} already has an active {pto_type.name} policy.",
                details={"user_id": user.id, "pto_type_id": pto_type.id},
            )

        effective_date = data.get("effective_date")
        end_date = data.get("end_date")
        if effective_date and end_date and end_date <= effective_date:
            raise ValidationError("Policy end date must be after its effective date.")

        frequency = data.get("accrual_frequency") or "annually"
        if frequency not in ACCRUAL_FREQUENCIES:
            raise ValidationError(
                f"Unknown accrual frequency '{frequency}'.", details={"allowed": list(ACCRUAL_FREQUENCIES)}
            )

        max_rollover = data.get("max_rollover_days")
        max_negative = data.get("max_negative_balance")
        policy = PtoPolicy(
            user_id=user.id,
            pto_type_id=pto_type.id,
            initial_days=to_days(data.get("initial_days", 0), allow_zero=True),
            annual_accrual_amount=to_days(data.get("annual_accrual_amount", 0), allow_zero=True),
            bonus_days_per_year=to_days(data.get("bonus_days_per_year") or 0, allow_zero=True),
            years_for_bonus=data.get("years_for_bonus") or 1,
            rollover_enabled=bool(data.get("rollover_enabled", False)),
            max_rollover_days=to_days(max_rollover, allow_zero=True) if max_rollover is not None else None,
            max_negative_balance=to_days(max_negative, allow_zero=True) if max_negative is not None else None,
            accrual_frequency=frequency,
            effective_date=effective_date,
            end_date=end_date,
            is_active=is_active,
        )
        self.db.add(policy)
        self.db.flush()

        snapshot = None
        if is_active and pto_type.uses_balance:
            year = effective_date.year if effective_date else self.today().year
            initial = Decimal(policy.initial_days)
            existing = self.ledger.find_balance(user.id, pto_type.id, year)
            if existing is None:
                snapshot = self.ledger.open_balance(
                    user.id, pto_type.id, year, initial, "Opening balance from policy", actor=actor
                )
            else:
                delta = initial - Decimal(existing.balance)
                if delta != 0:
                    snapshot = self.ledger.adjust(
                        user.id, pto_type.id, year, delta, "Balance aligned to policy initial days", actor=actor
                    )
                else:
                    snapshot = BalanceSnapshot.of(existing)

        self.audit.log_action(
            action="pto_policy_created",
            entity_type="pto_policy",
            entity_id=policy.id,
            actor=actor,
            details={"user_id": user.id, "pto_type": pto_type.code, "initial_days": policy.initial_days},
        )
        self.log_info(f"PTO policy {policy.id} created for user {user.id} ({pto_type.code})")
        return policy, snapshot

    # ---- projection ----------------------------------------------------

    def project_annual(self, user_id: int, pto_type_id: int, from_year: int, to_year: int) -> Decimal:
        """Balance a user should start `to_year` with, given their active policy and `from_year` balance."""
        policy = self.ledger.active_policy(user_id, pto_type_id)
        if policy is None:
            raise NotFound(
                f"No active PTO policy for user {user_id} and type {pto_type_id}.",
                details={"user_id": user_id, "pto_type_id": pto_type_id},
            )
        user = self.identity.get_user(user_id)
        pto_type = self.db.get(PtoType, pto_type_id)

        amount = Decimal(policy.annual_accrual_amount)
        tenure = years_of_service(user.start_date, date(to_year, 1, 1))
        amount += Decimal(policy.bonus_days_per_year or 0) * tenure

        if policy.rollover_enabled and pto_type.carryover_allowed:
            previous = self.db.query(PtoBalance).filter(
                PtoBalance.user_id == user_id,
                PtoBalance.pto_type_id == pto_type_id,
                PtoBalance.year == from_year
            ).first()
            if previous is not None:
                # A deficit carries forward as-is; only surpluses are capped
                rollover = Decimal(previous.balance)
                if policy.max_rollover_days is not None:
                    rollover = min(rollover, Decimal(policy.max_rollover_days))
                amount += rollover

        return amount

    def reset_for_new_year(self, year: int, actor: Optional[User] = None) -> dict:
        return run_atomic(self.db, self._reset_for_new_year, year, actor)

    def _reset_for_new_year(self, year: int, actor: Optional[User]) -> dict:
        previous_balances = self.db.query(PtoBalance).filter(
            PtoBalance.year == year - 1
        ).order_by(PtoBalance.user_id, PtoBalance.pto_type_id).all()

        created: List[BalanceSnapshot] = []
        skipped = 0
        for previous in previous_balances:
            if self.ledger.find_balance(previous.user_id, previous.pto_type_id, year) is not None:
                skipped += 1
                continue
            if self.ledger.active_policy(previous.user_id, previous.pto_type_id) is None:
                skipped += 1
                continue
            amount = self.project_annual(previous.user_id, previous.pto_type_id, year - 1, year)
            created.append(self.ledger.open_balance(
                previous.user_id, previous.pto_type_id, year, amount,
                f"Annual reset for {year}", actor=actor, txn_type=TransactionType.RESET,
            ))

        self.audit.log_action(
            action="pto_annual_reset",
            entity_type="pto_balance",
            entity_id=None,
            actor=actor,
            details={"year": year, "created": len(created), "skipped": skipped},
        )
        self.log_info(f"PTO balances reset for year {year}: {len(created)} created, {skipped} skipped")
        return {"year": year, "created": len(created), "skipped": skipped, "balances": created}
