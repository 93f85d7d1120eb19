"""Who is asking: identity and role supplied by the auth collaborator."""
from dataclasses import dataclass

ROLE_CLIENT = "client"
ROLE_INSTRUCTOR = "instructor"
ROLE_RECEPTION = "reception"
ROLE_ADMIN = "admin"

ROLES = (ROLE_CLIENT, ROLE_INSTRUCTOR, ROLE_RECEPTION, ROLE_ADMIN)


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str = ROLE_CLIENT

    @property
    def is_staff(self) -> bool:
        return self.role != ROLE_CLIENT

    @property
    def is_front_desk(self) -> bool:
        """Admin and reception manage the schedule for everyone."""
        return self.role in (ROLE_ADMIN, ROLE_RECEPTION)

    def can_act_for(self, user_id: int) -> bool:
        return self.is_staff or self.user_id == user_id

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=0, role=ROLE_ADMIN)
