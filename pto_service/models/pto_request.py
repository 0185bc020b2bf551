from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, Boolean, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pto_service.database import Base
import enum


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"


class DayPart(str, enum.Enum):
    FULL_DAY = "full_day"
    MORNING = "morning"
    AFTERNOON = "afternoon"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"


class PtoRequest(Base):
    __tablename__ = "pto_requests"

    id = Column(Integer, primary_key=True, index=True)
    request_number = Column(String(40), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    pto_type_id = Column(Integer, ForeignKey("pto_types.id"), nullable=False, index=True)

    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(12), default=DayPart.FULL_DAY.value, nullable=False)
    end_time = Column(String(12), default=DayPart.FULL_DAY.value, nullable=False)
    total_days = Column(Numeric(8, 2), nullable=False)

    # Stored as string value of RequestStatus for SQLite friendliness
    status = Column(String(12), default=RequestStatus.PENDING.value, nullable=False, index=True)
    reason = Column(Text, nullable=True)
    denial_reason = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    is_historical = Column(Boolean, default=False, nullable=False)
    is_emergency_override = Column(Boolean, default=False, nullable=False)
    blackout_warnings = Column(JSON, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    denied_at = Column(DateTime(timezone=True), nullable=True)
    denied_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    # Touched by every workflow action so concurrent actions on one request collide on `version`
    last_action_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])
    pto_type = relationship("PtoType")
    approved_by = relationship("User", foreign_keys=[approved_by_id])
    denied_by = relationship("User", foreign_keys=[denied_by_id])
    approvals = relationship(
        "PtoApproval",
        back_populates="pto_request",
        order_by=lambda: [PtoApproval.level, PtoApproval.sequence, PtoApproval.id],
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<PtoRequest {self.request_number} {self.status}>"

    @property
    def balance_year(self) -> int:
        """Balances are charged to the year the request starts in."""
        return self.start_date.year

    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING.value

    def is_approved(self) -> bool:
        return self.status == RequestStatus.APPROVED.value


class PtoApproval(Base):
    __tablename__ = "pto_approvals"

    id = Column(Integer, primary_key=True, index=True)
    pto_request_id = Column(Integer, ForeignKey("pto_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    level = Column(Integer, default=1, nullable=False)
    sequence = Column(Integer, default=1, nullable=False)
    status = Column(String(12), default=ApprovalStatus.PENDING.value, nullable=False, index=True)
    comments = Column(Text, nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    pto_request = relationship("PtoRequest", back_populates="approvals")
    approver = relationship("User")

    def __repr__(self):
        return f"<PtoApproval request={self.pto_request_id} approver={self.approver_id} L{self.level} {self.status}>"
