"""The acting user passed explicitly into every service operation."""
from __future__ import annotations

from dataclasses import dataclass

from app.models import APPROVER_ROLES, User, UserRole


@dataclass(frozen=True)
class ActingUser:
    id: int
    role: UserRole
    company_id: int

    @classmethod
    def from_user(cls, user: User) -> "ActingUser":
        return cls(id=user.id, role=user.role, company_id=user.company_id)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def can_approve(self) -> bool:
        return self.role in APPROVER_ROLES
