from __future__ import annotations

from dataclasses import dataclass

from app.core.errors import AuthorizationError
from app.models import LearningSession, Order, Role


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role is Role.TEACHER


def can_access(actor: Actor, resource) -> bool:
    if resource is None or actor.user_id <= 0:
        return False
    if isinstance(resource, LearningSession):
        # Only the owning teacher may touch a booking, admins included.
        return actor.is_teacher and int(resource.teacher_id) == actor.user_id
    if isinstance(resource, Order):
        return actor.is_admin or int(resource.owner_id) == actor.user_id
    return False


def require_access(actor: Actor, resource) -> None:
    if not can_access(actor, resource):
        raise AuthorizationError()


def require_teacher(actor: Actor) -> None:
    if not actor.is_teacher or actor.user_id <= 0:
        raise AuthorizationError()
