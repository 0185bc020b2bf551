from typing import List, Optional

from pto_service.core.exceptions import NotFound
from pto_service.models.user import User
from pto_service.services.base import BaseService


class IdentityDirectory(BaseService):
    """Read-only view over users and reporting lines."""

    def get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound(f"User {user_id} not found", details={"user_id": user_id})
        return user

    def manager_of(self, user: User) -> Optional[User]:
        if not user.reports_to_user_id:
            return None
        return self.db.query(User).filter(
            User.id == user.reports_to_user_id,
            User.is_active == True
        ).first()

    def management_chain(self, user: User, max_levels: int) -> List[User]:
        """Managers above `user`, nearest first, stopping at a cycle or `max_levels`."""
        chain = []
        visited = {user.id}
        current = user
        while len(chain) < max_levels:
            manager = self.manager_of(current)
            if manager is None or manager.id in visited:
                break
            chain.append(manager)
            visited.add(manager.id)
            current = manager
        return chain
