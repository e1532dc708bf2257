import enum

from pydantic import BaseModel


class Role(str, enum.Enum):
    MASTER_ADMIN = "master_admin"
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"


# Role groups used by the routers
ADMIN_ROLES = (Role.MASTER_ADMIN, Role.ADMIN)
STAFF_ROLES = (Role.MASTER_ADMIN, Role.ADMIN, Role.DOCTOR)
ALL_ROLES = tuple(Role)


class Actor(BaseModel):
    """The authenticated caller, passed explicitly into every service call."""
    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
