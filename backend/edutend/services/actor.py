"""Caller identity passed into every service operation."""
from dataclasses import dataclass

from edutend.models.user import User, UserRole


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as supplied by the identity layer."""

    id: int
    role: UserRole

    @classmethod
    def from_user(cls, user: User) -> 'Actor':
        return cls(id=user.id, role=user.role)

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def is_lecturer(self) -> bool:
        return self.role == UserRole.LECTURER

    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT
