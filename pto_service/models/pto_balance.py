from decimal import Decimal

from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pto_service.database import Base


class PtoBalance(Base):
    """
    Per (user, pto_type, year) ledger snapshot.

    `balance` is the entitlement remaining after consumed days,
    `pending_balance` is reserved by in-flight requests and
    `used_balance` counts consumed days. Mutations go through
    BalanceLedger only; `version` guards against lost updates.
    """
    __tablename__ = "pto_balances"
    __table_args__ = (
        UniqueConstraint("user_id", "pto_type_id", "year", name="uq_pto_balances_user_type_year"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    pto_type_id = Column(Integer, ForeignKey("pto_types.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)

    balance = Column(Numeric(8, 2), default=0, nullable=False)
    pending_balance = Column(Numeric(8, 2), default=0, nullable=False)
    used_balance = Column(Numeric(8, 2), default=0, nullable=False)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User")
    pto_type = relationship("PtoType")
    transactions = relationship("PtoTransaction", back_populates="pto_balance", order_by="PtoTransaction.id")

    __mapper_args__ = {"version_id_col": version}

    @property
    def available_balance(self) -> Decimal:
        return Decimal(self.balance or 0) - Decimal(self.pending_balance or 0)

    def __repr__(self):
        return (
            f"<PtoBalance user={self.user_id} type={self.pto_type_id} year={self.year} "
            f"balance={self.balance} pending={self.pending_balance} used={self.used_balance}>"
        )
