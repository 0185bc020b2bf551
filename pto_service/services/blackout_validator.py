from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import or_

from pto_service.models.holiday import Holiday
from pto_service.models.pto_blackout import PtoBlackout, RestrictionType
from pto_service.models.pto_request import PtoRequest, RequestStatus
from pto_service.models.user import User
from pto_service.services.base import BaseService


@dataclass
class BlackoutCheck:
    """Outcome of validating a date range against blackout periods."""
    overlaps: bool = False
    strict: bool = False
    blackouts: List[PtoBlackout] = field(default_factory=list)
    conflicts: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    emergency_override_used: bool = False

    @property
    def can_submit(self) -> bool:
        return not self.conflicts

    @property
    def blackout_ids(self) -> List[int]:
        return [b.id for b in self.blackouts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overlaps": self.overlaps,
            "strict": self.strict,
            "can_submit": self.can_submit,
            "blackout_ids": self.blackout_ids,
            "conflicts": self.conflicts,
            "warnings": self.warnings,
            "emergency_override_used": self.emergency_override_used,
        }


class BlackoutValidator(BaseService):

    def applicable_blackouts(self, user: User, start_date: date, end_date: date,
                             pto_type_id: int) -> List[PtoBlackout]:
        candidates = self.db.query(PtoBlackout).filter(
            PtoBlackout.is_active == True,
            PtoBlackout.start_date <= end_date,
            PtoBlackout.end_date >= start_date,
        ).order_by(PtoBlackout.start_date, PtoBlackout.id).all()
        return [
            b for b in candidates
            if b.applies_to(user.id, user.position_id, pto_type_id) and b.overlaps(start_date, end_date)
        ]

    def holidays_in_range(self, start_date: date, end_date: date) -> List[date]:
        candidates = self.db.query(Holiday).filter(
            or_(
                Holiday.is_recurring == True,
                Holiday.date.between(start_date, end_date),
            )
        ).all()
        return sorted(day for h in candidates for day in h.occurrences(start_date, end_date))

    def _slots_taken(self, blackout: PtoBlackout, exclude_request_id: Optional[int]) -> int:
        query = self.db.query(PtoRequest).filter(
            PtoRequest.status.in_([RequestStatus.PENDING.value, RequestStatus.APPROVED.value]),
            PtoRequest.start_date <= blackout.end_date,
            PtoRequest.end_date >= blackout.start_date,
        )
        if exclude_request_id is not None:
            query = query.filter(PtoRequest.id != exclude_request_id)
        if blackout.pto_type_ids:
            query = query.filter(PtoRequest.pto_type_id.in_(blackout.pto_type_ids))
        if not blackout.is_company_wide:
            scope = []
            if blackout.user_ids:
                scope.append(PtoRequest.user_id.in_(blackout.user_ids))
            if blackout.position_id is not None:
                scope.append(PtoRequest.user.has(User.position_id == blackout.position_id))
            if not scope:
                return 0
            query = query.filter(or_(*scope))
        # Recurring rules only count requests that touch one of their weekdays
        return sum(1 for r in query.all() if blackout.overlaps(r.start_date, r.end_date))

    def _finding(self, blackout: PtoBlackout, days: List[date], message: str, **extra) -> Dict[str, Any]:
        return {
            "blackout_id": blackout.id,
            "name": blackout.name,
            "period": blackout.formatted_range,
            "restriction_type": blackout.restriction_type,
            "is_strict": blackout.is_strict,
            "is_holiday": blackout.is_holiday,
            "can_override": blackout.allow_emergency_override,
            "conflicting_days": [d.isoformat() for d in days],
            "message": message,
            **extra,
        }

    def check(self, user: User, start_date: date, end_date: date, pto_type_id: int,
              emergency_override: bool = False, exclude_request_id: Optional[int] = None) -> BlackoutCheck:
        result = BlackoutCheck()
        holidays = None

        for blackout in self.applicable_blackouts(user, start_date, end_date, pto_type_id):
            if blackout.is_holiday:
                if holidays is None:
                    holidays = self.holidays_in_range(start_date, end_date)
                # Holiday blackouts do not apply to ranges that already include a holiday
                if holidays:
                    continue
            days = blackout.conflicting_days(start_date, end_date)
            result.overlaps = True
            result.blackouts.append(blackout)
            if blackout.is_strict:
                result.strict = True

            restriction = blackout.restriction_type
            extra = {}
            blocking = False

            if restriction == RestrictionType.WARNING_ONLY.value:
                message = f"Your request falls during a restricted period: {blackout.name} ({blackout.formatted_range})"
            elif restriction == RestrictionType.LIMIT_REQUESTS.value:
                taken = self._slots_taken(blackout, exclude_request_id)
                limit = blackout.max_requests_allowed
                extra = {"current_count": taken, "max_allowed": limit}
                if limit is not None and taken >= limit:
                    blocking = blackout.is_strict
                    message = f"Maximum number of PTO requests ({limit}) already reached for {blackout.name}"
                else:
                    message = f"Limited PTO requests during {blackout.name}: {taken}/{limit} used"
            else:
                blocking = blackout.is_strict
                message = f"PTO requests are blocked during {blackout.name} ({blackout.formatted_range})"

            if blocking and emergency_override and blackout.allow_emergency_override:
                result.emergency_override_used = True
                result.warnings.append(self._finding(
                    blackout, days, f"Emergency override applied for {blackout.name}", overridden=True, **extra
                ))
            elif blocking:
                result.conflicts.append(self._finding(blackout, days, message, **extra))
            else:
                result.warnings.append(self._finding(blackout, days, message, **extra))

        if result.conflicts:
            self.log_info(
                f"Blackout conflicts for user {user.id} between {start_date} and {end_date}",
                blackout_ids=[c["blackout_id"] for c in result.conflicts],
            )
        return result
