# therapy_booking/core/identity.py
"""Verified caller identity, passed explicitly into every service call"""
from dataclasses import dataclass
from typing import Optional
import enum


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    THERAPIST = "therapist"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.THERAPIST)


# Used when the lifecycle itself acts (payment capture confirming a booking).
SYSTEM_ACTOR = Identity(user_id="system", role=Role.ADMIN)
