"""Domain entities."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """A registered user.

    ``id`` is 0 until the store assigns one. Instances are immutable; use
    ``model_copy(update=...)`` to derive a changed copy.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int = Field(default=0, ge=0)
    name: str
    email: str
    created_at: datetime
