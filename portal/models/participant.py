"""Role-tagged identities attached to meetings and requests."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    """Portal user role."""

    TEACHER = "teacher"
    PARENT = "parent"
    STUDENT = "student"
    ADMIN = "admin"

    @property
    def can_organize(self) -> bool:
        """Whether this role may create meetings."""
        return self in (Role.TEACHER, Role.ADMIN)


class UserRef(BaseModel):
    """A participant reference stored on a meeting.

    Used for authorization checks and labeling only; users themselves
    live in the external user service.
    """

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(min_length=1, description="User id in the user service")
    name: str = Field(default="", description="Display name")
    role: Role = Field(description="Role the user holds on the meeting")

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            msg = "User id cannot be empty or whitespace"
            raise ValueError(msg)
        return v


class ActingUser(BaseModel):
    """The authenticated caller of a command."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(min_length=1)
    role: Role
    name: str = ""
    class_ids: tuple[str, ...] = Field(
        default=(),
        description="Classes a teacher is responsible for",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def as_ref(self) -> UserRef:
        """Describe this user as a meeting participant reference."""
        return UserRef(id=self.id, name=self.name, role=self.role)
