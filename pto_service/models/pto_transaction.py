"""
Append-only journal of every balance mutation.

Rows are written once by BalanceLedger and never updated or deleted;
mapper events enforce that at the ORM level.
"""
import logging
import enum

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, ForeignKey, Text, event
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pto_service.database import Base
from pto_service.core.exceptions import ImmutableRecordError

logger = logging.getLogger(__name__)


class TransactionType(str, enum.Enum):
    INITIAL = "initial"
    ACCRUAL = "accrual"
    ADJUSTMENT = "adjustment"
    RESERVATION = "reservation"
    RELEASE = "release"
    USAGE = "usage"
    RESTORE = "restore"
    RESET = "reset"
    RECONCILIATION = "reconciliation"


class PtoTransaction(Base):
    __tablename__ = "pto_transactions"

    id = Column(Integer, primary_key=True, index=True)
    transaction_number = Column(String(32), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    pto_type_id = Column(Integer, ForeignKey("pto_types.id"), nullable=False, index=True)
    pto_balance_id = Column(Integer, ForeignKey("pto_balances.id"), nullable=False, index=True)
    pto_request_id = Column(Integer, ForeignKey("pto_requests.id"), nullable=True, index=True)
    year = Column(Integer, nullable=False)

    type = Column(String(20), nullable=False, index=True)
    # Signed delta applied to the figure the type affects (pending for reservation/release)
    amount = Column(Numeric(8, 2), nullable=False)
    balance_before = Column(Numeric(8, 2), nullable=False)
    balance_after = Column(Numeric(8, 2), nullable=False)
    pending_after = Column(Numeric(8, 2), nullable=False)
    used_after = Column(Numeric(8, 2), nullable=False)
    description = Column(Text, nullable=True)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    effective_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    pto_balance = relationship("PtoBalance", back_populates="transactions")
    pto_request = relationship("PtoRequest")

    def __repr__(self):
        return f"<PtoTransaction {self.transaction_number} {self.type} {self.amount}>"


@event.listens_for(PtoTransaction, "before_update")
def _block_transaction_update(mapper, connection, target):
    logger.error("immutability_violation_blocked", extra={"entity_type": "PtoTransaction", "entity_id": target.id, "operation": "UPDATE"})
    raise ImmutableRecordError("PtoTransaction", target.id, "UPDATE")


@event.listens_for(PtoTransaction, "before_delete")
def _block_transaction_delete(mapper, connection, target):
    logger.error("immutability_violation_blocked", extra={"entity_type": "PtoTransaction", "entity_id": target.id, "operation": "DELETE"})
    raise ImmutableRecordError("PtoTransaction", target.id, "DELETE")
