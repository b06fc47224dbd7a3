from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .errors import AuthorizationError


class Role(str, Enum):
    FACULTY = "faculty"
    ADMIN = "admin"


class Actor(BaseModel):
    """An authenticated principal, supplied per request by the identity provider."""

    actor_id: str = Field(..., min_length=1)
    role: Role

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_faculty(self) -> bool:
        return self.role == Role.FACULTY


def require_role(actor: Actor, role: Role, action: str) -> None:
    if actor.role != role:
        raise AuthorizationError(
            f"{action} requires role '{role.value}', actor {actor.actor_id} has '{actor.role.value}'"
        )
