"""Request and response models for the user endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from tracetour.domain.models import User


class CreateUserRequest(BaseModel):
    """Body of ``POST /api/users``."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "examples": [{"name": "Alice", "email": "alice@example.com"}]
        },
    )

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr = Field(..., max_length=255)


class UserResponse(BaseModel):
    """A user as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    created_at: datetime

    @classmethod
    def from_entity(cls, user: User) -> "UserResponse":
        return cls.model_validate(user)
