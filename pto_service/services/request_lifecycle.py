"""
PTO request state machine.

    pending  -> approved | denied | cancelled
    approved -> cancelled   (owner only, with advance notice)

Each public operation runs as one unit of work through `run_atomic`: the
request row, its approvals, the balance figures, the journal and the audit
trail commit together or not at all. Notifications are queued while the
unit runs and delivered only after it commits.
"""
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from pto_service.core.config import settings
from pto_service.core.exceptions import (
    AccessDeniedError,
    BlackoutConflict,
    InvalidStateTransition,
    NoPendingApproval,
    NotFound,
    ValidationError,
)
from pto_service.models.pto_request import ApprovalStatus, DayPart, PtoApproval, PtoRequest, RequestStatus
from pto_service.models.pto_type import PtoType
from pto_service.models.user import User
from pto_service.services.approval_chain import ApprovalChainBuilder
from pto_service.services.audit import AuditService
from pto_service.services.balance_ledger import BalanceLedger, BalanceSnapshot
from pto_service.services.base import BaseService, local_tz, run_atomic
from pto_service.services.blackout_validator import BlackoutCheck, BlackoutValidator
from pto_service.services.day_counting import calculate_total_days, count_weekdays
from pto_service.services.identity import IdentityDirectory
from pto_service.services.notification import NotificationService, OutgoingNotification


@dataclass
class LifecycleResult:
    request: PtoRequest
    blackout: BlackoutCheck
    balance: Optional[BalanceSnapshot] = None


def _state(request: PtoRequest) -> dict:
    return {
        "status": request.status,
        "start_date": request.start_date,
        "end_date": request.end_date,
        "start_time": request.start_time,
        "end_time": request.end_time,
        "total_days": request.total_days,
    }


class RequestLifecycleEngine(BaseService):
    def __init__(self, db, clock=None):
        super().__init__(db, clock)
        self.identity = IdentityDirectory(db, clock)
        self.ledger = BalanceLedger(db, clock)
        self.chain = ApprovalChainBuilder(db, clock)
        self.blackouts = BlackoutValidator(db, clock)
        self.audit = AuditService(db, clock)
        self._outbox: List[OutgoingNotification] = []

    # ---- plumbing ------------------------------------------------------

    def _run(self, operation, *args, **kwargs) -> LifecycleResult:
        try:
            result = run_atomic(self.db, operation, *args, **kwargs)
        except Exception:
            self._outbox = []
            raise
        outbox, self._outbox = self._outbox, []
        NotificationService.dispatch(self.db, outbox)
        return result

    def _notify(self, user_id: int, title: str, message: str, type: str = "info", request: PtoRequest = None):
        request_id = request.id if request is not None else None
        link = f"/pto-requests/{request_id}" if request_id else None
        self._outbox.append(OutgoingNotification(user_id, title, message, type, link, request_id))

    def _active_type(self, pto_type_id: int) -> PtoType:
        pto_type = self.db.get(PtoType, pto_type_id)
        if pto_type is None or pto_type.deleted_at is not None:
            raise NotFound(f"PTO type {pto_type_id} not found", details={"pto_type_id": pto_type_id})
        if not pto_type.is_active:
            raise ValidationError(f"PTO type '{pto_type.name}' is not active.", details={"pto_type_id": pto_type_id})
        return pto_type

    def _locked_request(self, request_id: int) -> PtoRequest:
        request = (
            self.db.query(PtoRequest)
            .filter(PtoRequest.id == request_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if request is None:
            raise NotFound(f"PTO request {request_id} not found", details={"request_id": request_id})
        return request

    def _touch(self, request: PtoRequest):
        # Bumps the row version even when only approval rows change
        request.last_action_at = self.now()

    def _recheck_blackouts(self, request: PtoRequest) -> BlackoutCheck:
        return self.blackouts.check(
            request.user, request.start_date, request.end_date, request.pto_type_id,
            emergency_override=request.is_emergency_override, exclude_request_id=request.id,
        )

    @staticmethod
    def _warnings_payload(check: BlackoutCheck, acknowledged: bool) -> Optional[list]:
        if not check.warnings:
            return None
        return [{**w, "acknowledged": acknowledged} for w in check.warnings]

    def _audit(self, action: str, request: PtoRequest, actor: Optional[User], details: dict,
               before: Optional[dict] = None):
        self.audit.log_action(
            action=action,
            entity_type="pto_request",
            entity_id=request.id,
            actor=actor,
            details={"request_number": request.request_number, "user_id": request.user_id, **details},
            before_state=before,
            after_state=_state(request),
        )

    # ---- reads ---------------------------------------------------------

    def get_request(self, request_id: int) -> PtoRequest:
        request = self.db.get(PtoRequest, request_id)
        if request is None:
            raise NotFound(f"PTO request {request_id} not found", details={"request_id": request_id})
        return request

    def can_view(self, request: PtoRequest, actor: User) -> bool:
        return (
            actor.is_hr
            or request.user_id == actor.id
            or actor.id in self.chain.approver_ids(request.id)
        )

    def list_requests(self, user_id: Optional[int] = None, status: Optional[str] = None,
                      pto_type_id: Optional[int] = None, start_date: Optional[date] = None,
                      end_date: Optional[date] = None) -> List[PtoRequest]:
        query = self.db.query(PtoRequest)
        if user_id is not None:
            query = query.filter(PtoRequest.user_id == user_id)
        if status:
            query = query.filter(PtoRequest.status == status)
        if pto_type_id is not None:
            query = query.filter(PtoRequest.pto_type_id == pto_type_id)
        if start_date is not None:
            query = query.filter(PtoRequest.end_date >= start_date)
        if end_date is not None:
            query = query.filter(PtoRequest.start_date <= end_date)
        return query.order_by(PtoRequest.start_date.desc(), PtoRequest.id.desc()).all()

    # ---- submit --------------------------------------------------------

    def submit(self, user: User, pto_type_id: int, start_date: date, end_date: date,
               start_time: str = DayPart.FULL_DAY.value, end_time: str = DayPart.FULL_DAY.value,
               reason: Optional[str] = None, emergency_override: bool = False,
               acknowledge_warnings: bool = False) -> LifecycleResult:
        return self._run(
            self._submit, user, pto_type_id, start_date, end_date, start_time, end_time,
            reason, emergency_override, acknowledge_warnings,
        )

    def _submit(self, user, pto_type_id, start_date, end_date, start_time, end_time,
                reason, emergency_override, acknowledge_warnings) -> LifecycleResult:
        self._outbox = []
        pto_type = self._active_type(pto_type_id)
        total_days = calculate_total_days(start_date, end_date, start_time, end_time)

        check = self.blackouts.check(user, start_date, end_date, pto_type_id, emergency_override)
        if not check.can_submit:
            raise BlackoutConflict(check.conflicts)

        now = self.now()
        request = PtoRequest(
            request_number=f"PTO-{user.id}-{uuid.uuid4().hex[:8].upper()}",
            user_id=user.id,
            pto_type_id=pto_type.id,
            start_date=start_date,
            end_date=end_date,
            start_time=DayPart(start_time).value,
            end_time=DayPart(end_time).value,
            total_days=total_days,
            status=RequestStatus.PENDING.value,
            reason=reason,
            is_emergency_override=check.emergency_override_used,
            blackout_warnings=self._warnings_payload(check, acknowledge_warnings),
            submitted_at=now,
            last_action_at=now,
        )
        self.db.add(request)
        self.db.flush()

        balance = None
        if pto_type.uses_balance:
            balance = self.ledger.reserve(
                user.id, pto_type.id, request.balance_year, total_days, request_id=request.id, actor=user
            )

        approvals = self.chain.create_chain(request)

        self._audit("pto_request_submitted", request, user, {
            "pto_type": pto_type.code,
            "approvers": [a.approver_id for a in approvals],
            "blackout_warnings": len(check.warnings),
            "emergency_override": check.emergency_override_used,
        })
        for approval in approvals:
            self._notify(
                approval.approver_id,
                "PTO Request Awaiting Approval",
                f"{user.display_name} requested {total_days} day(s) of {pto_type.name} "
                f"from {start_date:%b %d, %Y} to {end_date:%b %d, %Y}.",
                request=request,
            )
        self.log_info(
            f"PTO request {request.request_number} submitted for {total_days} day(s)",
            pto_request_id=request.id, user_id=user.id,
        )
        return LifecycleResult(request, check, balance)

    def submit_historical(self, admin: User, user_id: int, pto_type_id: int, start_date: date,
                          end_date: date, reason: Optional[str] = None) -> LifecycleResult:
        """Record already-taken leave as an approved request charged directly to the balance."""
        return self._run(self._submit_historical, admin, user_id, pto_type_id, start_date, end_date, reason)

    def _submit_historical(self, admin, user_id, pto_type_id, start_date, end_date, reason) -> LifecycleResult:
        self._outbox = []
        if not admin.is_admin:
            raise AccessDeniedError("Only administrators can record historical PTO.")
        if end_date > self.today():
            raise ValidationError(
                "Historical PTO must end on or before today.",
                details={"end_date": str(end_date), "today": str(self.today())},
            )
        total_days = count_weekdays(start_date, end_date)
        if total_days == 0:
            raise ValidationError("The selected range contains no weekdays.")

        user = self.identity.get_user(user_id)
        pto_type = self._active_type(pto_type_id)
        now = self.now()
        request = PtoRequest(
            request_number=f"PTO-{user.id}-{uuid.uuid4().hex[:8].upper()}",
            user_id=user.id,
            pto_type_id=pto_type.id,
            start_date=start_date,
            end_date=end_date,
            start_time=DayPart.FULL_DAY.value,
            end_time=DayPart.FULL_DAY.value,
            total_days=total_days,
            status=RequestStatus.APPROVED.value,
            reason=reason,
            is_historical=True,
            submitted_at=now,
            approved_at=now,
            approved_by_id=admin.id,
            last_action_at=now,
        )
        request.approvals.append(PtoApproval(
            approver_id=admin.id,
            level=1,
            sequence=1,
            status=ApprovalStatus.APPROVED.value,
            comments="Historical entry",
            responded_at=now,
        ))
        self.db.add(request)
        self.db.flush()

        balance = None
        if pto_type.uses_balance:
            balance = self.ledger.consume(
                user.id, pto_type.id, request.balance_year, total_days,
                reason=f"Historical PTO {request.request_number}",
                request_id=request.id, actor=admin, from_pending=False, effective_date=start_date,
            )

        self._audit("pto_request_historical", request, admin, {"pto_type": pto_type.code})
        self._notify(
            user.id,
            "Historical PTO Recorded",
            f"{total_days} day(s) of {pto_type.name} from {start_date:%b %d, %Y} to {end_date:%b %d, %Y} "
            f"were recorded by {admin.display_name}.",
            request=request,
        )
        check = self.blackouts.check(user, start_date, end_date, pto_type.id, exclude_request_id=request.id)
        return LifecycleResult(request, check, balance)

    # ---- approver actions ----------------------------------------------

    def approve(self, request_id: int, approver: User, comments: Optional[str] = None) -> LifecycleResult:
        return self._run(self._approve, request_id, approver, comments)

    def _approve(self, request_id, approver, comments) -> LifecycleResult:
        self._outbox = []
        request = self._locked_request(request_id)
        row = self.chain.pending_row(request.id, approver.id)
        if row is None:
            raise NoPendingApproval(request.id, approver.id)
        if not request.is_pending():
            raise InvalidStateTransition(request.status, RequestStatus.APPROVED.value)

        before = _state(request)
        now = self.now()
        row.status = ApprovalStatus.APPROVED.value
        row.comments = comments
        row.responded_at = now
        self._touch(request)
        self.db.flush()

        balance = None
        if self.chain.is_complete(request):
            request.status = RequestStatus.APPROVED.value
            request.approved_at = now
            request.approved_by_id = approver.id
            if request.pto_type.uses_balance:
                balance = self.ledger.consume(
                    request.user_id, request.pto_type_id, request.balance_year, request.total_days,
                    reason=f"PTO request {request.request_number} approved",
                    request_id=request.id, actor=approver,
                )
            self._notify(
                request.user_id,
                "PTO Approved",
                f"Your {request.pto_type.name} request for {request.total_days} day(s) has been APPROVED.",
                "success",
                request,
            )
            action = "pto_request_approved"
        else:
            self._notify(
                request.user_id,
                "PTO Update",
                f"Your {request.pto_type.name} request was approved by {approver.display_name} "
                f"and is awaiting further approval.",
                request=request,
            )
            action = "pto_approval_recorded"
        self.db.flush()

        self._audit(action, request, approver, {"level": row.level, "comments": comments}, before)
        self.log_info(f"{action} on {request.request_number} by user {approver.id}", pto_request_id=request.id)
        return LifecycleResult(request, self._recheck_blackouts(request), balance)

    def deny(self, request_id: int, approver: User, comments: str) -> LifecycleResult:
        return self._run(self._deny, request_id, approver, comments)

    def _deny(self, request_id, approver, comments) -> LifecycleResult:
        self._outbox = []
        if not comments or not comments.strip():
            raise ValidationError("A reason is required when denying a PTO request.")
        request = self._locked_request(request_id)
        row = self.chain.pending_row(request.id, approver.id)
        if row is None:
            raise NoPendingApproval(request.id, approver.id)
        if not request.is_pending():
            raise InvalidStateTransition(request.status, RequestStatus.DENIED.value)

        before = _state(request)
        now = self.now()
        row.status = ApprovalStatus.DENIED.value
        row.comments = comments
        row.responded_at = now
        self.db.flush()
        cancelled = self.chain.cancel_pending(request.id, now)

        request.status = RequestStatus.DENIED.value
        request.denied_at = now
        request.denied_by_id = approver.id
        request.denial_reason = comments
        self._touch(request)

        balance = None
        if request.pto_type.uses_balance:
            balance = self.ledger.release(
                request.user_id, request.pto_type_id, request.balance_year, request.total_days,
                request_id=request.id, actor=approver,
                reason=f"PTO request {request.request_number} denied",
            )
        self.db.flush()

        self._audit("pto_request_denied", request, approver,
                    {"level": row.level, "comments": comments, "cancelled_approvals": cancelled}, before)
        self._notify(
            request.user_id,
            "PTO Denied",
            f"Your {request.pto_type.name} request has been DENIED. Reason: {comments}",
            "error",
            request,
        )
        self.log_info(f"PTO request {request.request_number} denied by user {approver.id}", pto_request_id=request.id)
        return LifecycleResult(request, self._recheck_blackouts(request), balance)

    def cancel_by_approver(self, request_id: int, actor: User, reason: Optional[str] = None) -> LifecycleResult:
        return self._run(self._cancel_by_approver, request_id, actor, reason)

    def _cancel_by_approver(self, request_id, actor, reason) -> LifecycleResult:
        self._outbox = []
        request = self._locked_request(request_id)
        if not actor.is_hr and actor.id not in self.chain.approver_ids(request.id):
            raise AccessDeniedError("You are not allowed to cancel this PTO request.")
        if not request.is_pending():
            raise InvalidStateTransition(request.status, RequestStatus.CANCELLED.value)

        before = _state(request)
        now = self.now()
        cancelled = self.chain.cancel_pending(request.id, now)
        request.status = RequestStatus.CANCELLED.value
        request.cancelled_at = now
        request.cancelled_by_id = actor.id
        request.cancellation_reason = reason
        self._touch(request)

        balance = None
        if request.pto_type.uses_balance:
            balance = self.ledger.release(
                request.user_id, request.pto_type_id, request.balance_year, request.total_days,
                request_id=request.id, actor=actor,
                reason=f"PTO request {request.request_number} cancelled by {actor.display_name}",
            )
        self.db.flush()

        self._audit("pto_request_cancelled", request, actor,
                    {"reason": reason, "by": "approver", "cancelled_approvals": cancelled}, before)
        self._notify(
            request.user_id,
            "PTO Cancelled",
            f"Your {request.pto_type.name} request was cancelled by {actor.display_name}."
            + (f" Reason: {reason}" if reason else ""),
            "warning",
            request,
        )
        return LifecycleResult(request, self._recheck_blackouts(request), balance)

    # ---- owner actions -------------------------------------------------

    def start_of_leave(self, request: PtoRequest) -> datetime:
        return datetime.combine(request.start_date, time.min, tzinfo=local_tz())

    def cancel_by_self(self, request_id: int, actor: User, reason: Optional[str] = None) -> LifecycleResult:
        return self._run(self._cancel_by_self, request_id, actor, reason)

    def _cancel_by_self(self, request_id, actor, reason) -> LifecycleResult:
        self._outbox = []
        request = self._locked_request(request_id)
        if request.user_id != actor.id:
            raise AccessDeniedError("You can only cancel your own PTO requests.")

        before = _state(request)
        now = self.now()
        uses_balance = request.pto_type.uses_balance
        balance = None
        notify_ids = self.chain.approver_ids(request.id)

        if request.is_pending():
            cancelled = self.chain.cancel_pending(request.id, now)
            if uses_balance:
                balance = self.ledger.release(
                    request.user_id, request.pto_type_id, request.balance_year, request.total_days,
                    request_id=request.id, actor=actor,
                    reason=f"PTO request {request.request_number} cancelled by requester",
                )
        elif request.is_approved():
            notice = timedelta(hours=settings.pto.self_cancel_notice_hours)
            if self.start_of_leave(request) - now < notice:
                raise InvalidStateTransition(
                    request.status,
                    RequestStatus.CANCELLED.value,
                    message=f"Approved PTO can only be cancelled at least "
                            f"{settings.pto.self_cancel_notice_hours} hours before it starts.",
                )
            cancelled = 0
            if uses_balance:
                balance = self.ledger.restore(
                    request.user_id, request.pto_type_id, request.balance_year, request.total_days,
                    reason=f"PTO request {request.request_number} cancelled after approval",
                    request_id=request.id, actor=actor,
                )
        else:
            raise InvalidStateTransition(request.status, RequestStatus.CANCELLED.value)

        request.status = RequestStatus.CANCELLED.value
        request.cancelled_at = now
        request.cancelled_by_id = actor.id
        request.cancellation_reason = reason
        self._touch(request)
        self.db.flush()

        self._audit("pto_request_cancelled", request, actor,
                    {"reason": reason, "by": "requester", "cancelled_approvals": cancelled}, before)
        for approver_id in sorted(notify_ids):
            self._notify(
                approver_id,
                "PTO Cancelled",
                f"{actor.display_name} cancelled their {request.pto_type.name} request "
                f"({request.start_date:%b %d} - {request.end_date:%b %d}).",
                request=request,
            )
        return LifecycleResult(request, self._recheck_blackouts(request), balance)

    def update(self, request_id: int, actor: User, start_date: Optional[date] = None,
               end_date: Optional[date] = None, start_time: Optional[str] = None,
               end_time: Optional[str] = None, reason: Optional[str] = None,
               emergency_override: bool = False) -> LifecycleResult:
        return self._run(
            self._update, request_id, actor, start_date, end_date, start_time, end_time, reason, emergency_override
        )

    def _update(self, request_id, actor, start_date, end_date, start_time, end_time, reason,
                emergency_override) -> LifecycleResult:
        self._outbox = []
        request = self._locked_request(request_id)
        if request.user_id != actor.id and not actor.is_hr:
            raise AccessDeniedError("You can only update your own PTO requests.")
        if not request.is_pending():
            raise InvalidStateTransition(
                request.status, RequestStatus.PENDING.value, message="Only pending PTO requests can be updated."
            )

        before = _state(request)
        new_start = start_date or request.start_date
        new_end = end_date or request.end_date
        new_start_time = start_time or request.start_time
        new_end_time = end_time or request.end_time
        total_days = calculate_total_days(new_start, new_end, new_start_time, new_end_time)

        check = self.blackouts.check(
            request.user, new_start, new_end, request.pto_type_id,
            emergency_override=emergency_override, exclude_request_id=request.id,
        )
        if not check.can_submit:
            raise BlackoutConflict(check.conflicts)

        old_year = request.balance_year
        old_days = Decimal(request.total_days)

        balance = None
        if request.pto_type.uses_balance:
            self.ledger.release(
                request.user_id, request.pto_type_id, old_year, old_days,
                request_id=request.id, actor=actor,
                reason=f"PTO request {request.request_number} updated",
            )

        request.start_date = new_start
        request.end_date = new_end
        request.start_time = DayPart(new_start_time).value
        request.end_time = DayPart(new_end_time).value
        request.total_days = total_days
        if reason is not None:
            request.reason = reason
        request.is_emergency_override = check.emergency_override_used
        request.blackout_warnings = self._warnings_payload(check, False)
        self._touch(request)

        if request.pto_type.uses_balance:
            balance = self.ledger.reserve(
                request.user_id, request.pto_type_id, request.balance_year, total_days,
                request_id=request.id, actor=actor,
            )
        self.db.flush()

        self._audit("pto_request_updated", request, actor, {"previous_days": old_days}, before)
        for approval in self.chain.pending_rows(request.id):
            self._notify(
                approval.approver_id,
                "PTO Request Updated",
                f"{request.user.display_name} changed a pending {request.pto_type.name} request "
                f"to {new_start:%b %d, %Y} - {new_end:%b %d, %Y} ({total_days} day(s)).",
                request=request,
            )
        return LifecycleResult(request, check, balance)
