from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, Text
from sqlalchemy.sql import func
from pto_service.database import Base


class PtoType(Base):
    """A category of leave (Vacation, Sick, ...) and its approval/balance rules."""
    __tablename__ = "pto_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    code = Column(String(20), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    color = Column(String(20), default="#3b82f6")

    uses_balance = Column(Boolean, default=True, nullable=False)
    multi_level_approval = Column(Boolean, default=False, nullable=False)
    disable_hierarchy_approval = Column(Boolean, default=False, nullable=False)
    specific_approvers = Column(JSON, nullable=True)  # list of user ids
    negative_allowed = Column(Boolean, default=False, nullable=False)
    carryover_allowed = Column(Boolean, default=False, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<PtoType {self.code}>"

    @property
    def approver_ids(self) -> list:
        return [int(a) for a in (self.specific_approvers or [])]
