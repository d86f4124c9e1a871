"""Actor domain models and the role hierarchy."""

from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kitchenops.core.errors import ValidationError


class Role(IntEnum):
    """Staff role, totally ordered: CHEF < MANAGER < ADMIN."""

    CHEF = 1
    MANAGER = 2
    ADMIN = 3

    @classmethod
    def parse(cls, value: "Role | str | int") -> "Role":
        """Parse a role name or level, rejecting anything unknown."""
        if isinstance(value, Role):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError as e:
                raise ValidationError(f"Unknown role level: {value}") from e

        name = value.strip().upper()
        name = _ROLE_ALIASES.get(name, name)
        try:
            return cls[name]
        except KeyError as e:
            raise ValidationError(f"Unknown role: {value!r}") from e


_ROLE_ALIASES = {"KITCHEN_MANAGER": "MANAGER"}


class Actor(BaseModel):
    """Resolved identity of the caller, supplied by the external auth layer."""

    model_config = ConfigDict(frozen=True)

    actor_id: str = Field(..., min_length=1, description="Identity issued by the auth collaborator")
    role: Role = Field(..., description="Role resolved by the auth collaborator")

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v: Role | str | int) -> Role:
        """Accept role names as well as levels."""
        return Role.parse(v)


# Identity recorded on rows written by the provisioning pipeline
SYSTEM_ACTOR_ID = "system"


class StaffMember(BaseModel):
    """Roster entry used to find chefs for task assignment."""

    id: str = Field(..., description="Unique roster ID from database")
    created: str = Field(..., description="Creation timestamp")
    updated: str = Field(..., description="Last update timestamp")
    actor_id: str = Field(..., description="External identity of the staff member")
    name: str = Field(..., description="Display name")
    role: Role = Field(..., description="Staff role")
    is_active: bool = Field(default=True, description="Whether the staff member can receive work")

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v: Role | str | int) -> Role:
        """Roles are stored by name."""
        return Role.parse(v)
