from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, Text
from sqlalchemy.sql import func
from pto_service.database import Base
import enum


class HolidayType(str, enum.Enum):
    PUBLIC = "public"
    COMPANY = "company"
    CUSTOM = "custom"


class Holiday(Base):
    """Calendar holiday; holiday-flagged blackouts stand aside for ranges that include one."""
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    date = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=True)
    type = Column(String(20), default=HolidayType.PUBLIC.value, nullable=False)
    # Recurring holidays repeat on the same month and day every year
    is_recurring = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Holiday {self.name} {self.date}>"

    def occurrences(self, start, end) -> list:
        """Dates in [start, end] on which this holiday falls."""
        if not self.is_recurring:
            return [self.date] if start <= self.date <= end else []
        found = []
        for year in range(start.year, end.year + 1):
            try:
                day = self.date.replace(year=year)
            except ValueError:
                # Feb 29 in a non-leap year
                continue
            if start <= day <= end:
                found.append(day)
        return found
