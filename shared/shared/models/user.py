from collections.abc import Iterable
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from shared.constants import Role


class CurrentUser(BaseModel):
    """Caller identity decoded from a verified access token."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID
    email: str
    roles: list[Role] = Field(default_factory=list)

    @property
    def subject_id(self) -> str:
        """Stable analytics subject identifier for this user."""
        return str(self.id)

    def has_any_role(self, allowed: Iterable[Role]) -> bool:
        return not set(allowed).isdisjoint(self.roles)
