# Overview: Explicit caller identity passed into every service operation.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Account roles. Stored as the lowercase value on users.role."""
    USER = "user"
    ADMIN = "admin"
    BANNED = "banned"
    DELETED = "deleted"

    @classmethod
    def parse(cls, value: str) -> "Role":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Invalid role: {value}. Must be one of: {', '.join(r.value for r in cls)}"
            )

    @property
    def can_sign_in(self) -> bool:
        return self in (Role.USER, Role.ADMIN)


@dataclass(frozen=True)
class Identity:
    """
    Authenticated caller.

    Built once per request by require_auth and handed to services explicitly,
    so no service reads request-global state.
    """
    user_id: int
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def can_access(self, owner_user_id: int | None) -> bool:
        return self.is_admin or owner_user_id == self.user_id
