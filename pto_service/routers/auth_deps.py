"""
Identity and RBAC dependencies.

Authentication happens upstream: the identity gateway forwards the
authenticated user's id in the actor header, and this module resolves it
against the users table and applies role checks.
"""
import logging
from typing import Callable, List, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from pto_service.core.config import settings
from pto_service.database import get_db
from pto_service.models.user import User, UserRole

logger = logging.getLogger(__name__)


def get_current_user(
    request: Request,
    actor_id: Optional[str] = Header(default=None, alias=settings.actor_header),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolves the acting user from the forwarded identity header.
    """
    if not actor_id:
        logger.warning("Authentication failed: missing actor header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    try:
        user_id = int(actor_id)
    except ValueError:
        logger.warning(f"Authentication failed: malformed actor id {actor_id!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.warning(f"Authentication failed: User {user_id} not found in database")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if not user.is_active:
        logger.warning(f"Authentication failed: User {user_id} is inactive")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive"
        )
    request.state.actor_id = user.id
    return user


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the user has one of the allowed roles.

    Usage:
        @router.post("/pto-policies")
        def create_policy(user: User = Depends(require_role([UserRole.HR_ADMIN]))):
            ...
    """
    def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}"
            )
        return current_user
    return role_checker


def require_hr():
    """Shorthand for requiring any HR role."""
    return require_role([UserRole.SUPER_ADMIN, UserRole.HR_ADMIN, UserRole.HR_MANAGER])


def require_admin():
    """Shorthand for requiring admin roles only."""
    return require_role([UserRole.SUPER_ADMIN, UserRole.HR_ADMIN])


def ensure_self_or_hr(current_user: User, user_id: int):
    if current_user.id != user_id and not current_user.is_hr:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. You can only access your own PTO data."
        )
