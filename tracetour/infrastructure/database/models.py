"""ORM mappings."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from tracetour.domain.models import User
from tracetour.infrastructure.database.base import Base


class UserRecord(Base):
    """Row of the ``users`` table."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    @classmethod
    def from_entity(cls, user: User) -> "UserRecord":
        """Build a new (unsaved) row from a domain user; the ID is left unset."""
        return cls(name=user.name, email=user.email, created_at=user.created_at)

    def to_entity(self) -> User:
        return User.model_validate(self)

    def __repr__(self) -> str:
        return f"<UserRecord(id={self.id})>"
