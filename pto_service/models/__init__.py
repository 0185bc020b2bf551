# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    user, pto_type, pto_policy, pto_balance, pto_transaction,
    pto_request, pto_blackout, holiday, notification, audit_log
)

# Explicit class exports for cleaner imports
from .user import User, UserRole, Position
from .pto_type import PtoType
from .pto_policy import PtoPolicy
from .pto_balance import PtoBalance
from .pto_transaction import PtoTransaction, TransactionType
from .pto_request import PtoRequest, PtoApproval, RequestStatus, ApprovalStatus, DayPart
from .pto_blackout import PtoBlackout, RestrictionType
from .holiday import Holiday, HolidayType
from .notification import Notification
from .audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "Position",
    "PtoType",
    "PtoPolicy",
    "PtoBalance",
    "PtoTransaction",
    "TransactionType",
    "PtoRequest",
    "PtoApproval",
    "RequestStatus",
    "ApprovalStatus",
    "DayPart",
    "PtoBlackout",
    "RestrictionType",
    "Holiday",
    "HolidayType",
    "Notification",
    "AuditLog",
]
