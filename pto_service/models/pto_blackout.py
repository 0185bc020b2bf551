from datetime import date, timedelta

from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pto_service.database import Base
import enum


class RestrictionType(str, enum.Enum):
    FULL_BLOCK = "full_block"
    LIMIT_REQUESTS = "limit_requests"
    WARNING_ONLY = "warning_only"


WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class PtoBlackout(Base):
    """A named date range (or recurring weekday set) restricting PTO requests."""
    __tablename__ = "pto_blackouts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)

    position_id = Column(Integer, ForeignKey("positions.id"), nullable=True)
    user_ids = Column(JSON, nullable=True)
    pto_type_ids = Column(JSON, nullable=True)

    is_company_wide = Column(Boolean, default=False, nullable=False)
    is_holiday = Column(Boolean, default=False, nullable=False)
    is_strict = Column(Boolean, default=False, nullable=False)
    allow_emergency_override = Column(Boolean, default=False, nullable=False)
    restriction_type = Column(String(20), default=RestrictionType.FULL_BLOCK.value, nullable=False)
    max_requests_allowed = Column(Integer, nullable=True)

    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_days = Column(JSON, nullable=True)  # weekday numbers, 0 = Monday

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    position = relationship("Position")

    def __repr__(self):
        return f"<PtoBlackout {self.name} {self.start_date}..{self.end_date}>"

    def applies_to(self, user_id: int, position_id, pto_type_id: int) -> bool:
        if self.pto_type_ids and pto_type_id not in self.pto_type_ids:
            return False
        if self.is_company_wide:
            return True
        if self.position_id is not None and self.position_id == position_id:
            return True
        return bool(self.user_ids) and user_id in self.user_ids

    def conflicting_days(self, start: date, end: date) -> list:
        """Days in [start, end] this blackout covers (inclusive on both ends)."""
        if not self.is_recurring:
            if self.start_date <= end and self.end_date >= start:
                first = max(self.start_date, start)
                last = min(self.end_date, end)
                return [first + timedelta(days=i) for i in range((last - first).days + 1)]
            return []

        weekdays = set(self.recurring_days or [])
        if not weekdays:
            return []
        days = []
        current = start
        while current <= end:
            # start/end bound the window in which the recurring rule is in force
            in_window = self.start_date <= current <= self.end_date
            if in_window and current.weekday() in weekdays:
                days.append(current)
            current += timedelta(days=1)
        return days

    def overlaps(self, start: date, end: date) -> bool:
        return bool(self.conflicting_days(start, end))

    @property
    def formatted_range(self) -> str:
        if self.is_recurring:
            names = ", ".join(WEEKDAY_NAMES[d] for d in sorted(self.recurring_days or []) if 0 <= d <= 6)
            return f"Every {names} ({self.start_date:%b %d, %Y} - {self.end_date:%b %d, %Y})"
        if self.start_date == self.end_date:
            return f"{self.start_date:%b %d, %Y}"
        return f"{self.start_date:%b %d, %Y} - {self.end_date:%b %d, %Y}"
