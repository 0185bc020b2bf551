from sqlalchemy import Column, Integer, String, Numeric, Boolean, Date, DateTime, ForeignKey, Index, true
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pto_service.database import Base


class PtoPolicy(Base):
    """Per (user, pto_type) accrual contract. At most one active policy per pair."""
    __tablename__ = "pto_policies"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    pto_type_id = Column(Integer, ForeignKey("pto_types.id"), nullable=False, index=True)

    initial_days = Column(Numeric(8, 2), default=0, nullable=False)
    annual_accrual_amount = Column(Numeric(8, 2), default=0, nullable=False)
    bonus_days_per_year = Column(Numeric(8, 2), default=0, nullable=False)
    years_for_bonus = Column(Integer, default=1, nullable=False)
    rollover_enabled = Column(Boolean, default=False, nullable=False)
    max_rollover_days = Column(Numeric(8, 2), nullable=True)  # None = no cap
    max_negative_balance = Column(Numeric(8, 2), nullable=True)  # None = unlimited when type allows negatives
    accrual_frequency = Column(String(20), default="annually", nullable=False)

    effective_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User")
    pto_type = relationship("PtoType")


# One active policy per (user, type); inactive history rows are unrestricted
Index(
    "uq_pto_policies_active_user_type",
    PtoPolicy.user_id,
    PtoPolicy.pto_type_id,
    unique=True,
    sqlite_where=PtoPolicy.is_active == true(),
    postgresql_where=PtoPolicy.is_active == true(),
)
