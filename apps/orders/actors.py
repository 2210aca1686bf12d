from dataclasses import dataclass
from typing import Optional

from .models.timeline import SYSTEM_ACTOR


@dataclass(frozen=True)
class Actor:
    """
    Who caused a status change: the system, or an admin identified by email.
    `user_id` links admin entries back to the account when one exists.
    """
    identity: Optional[str] = None
    user_id: Optional[object] = None

    @classmethod
    def system(cls):
        return cls()

    @classmethod
    def admin(cls, identity, user_id=None):
        if not identity or identity == SYSTEM_ACTOR:
            raise ValueError("Admin actors need a real identity.")
        return cls(identity=identity, user_id=user_id)

    @classmethod
    def from_user(cls, user):
        return cls.admin(user.email, user_id=user.pk)

    @classmethod
    def parse(cls, stored):
        """Inverse of `label`, for values read back from storage."""
        if not stored or stored == SYSTEM_ACTOR:
            return cls.system()
        return cls(identity=stored)

    @property
    def is_system(self) -> bool:
        return self.identity is None

    @property
    def label(self) -> str:
        return SYSTEM_ACTOR if self.is_system else self.identity

    def __str__(self):
        return self.label
