"""Unit tests for the declarative base and the ORM mapping."""

from datetime import UTC, datetime

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from tracetour.domain.models import User
from tracetour.infrastructure.database.base import Base
from tracetour.infrastructure.database.models import UserRecord


def ddl(statement: CreateTable | CreateIndex) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


@pytest.mark.unit
class TestUsersTable:
    """Schema generated for the users table."""

    def test_constraint_names_follow_convention(self) -> None:
        """Test that constraints get the names the migration uses."""
        table = Base.metadata.tables["users"]

        create = ddl(CreateTable(table))
        indexes = [ddl(CreateIndex(index)) for index in table.indexes]

        assert "CONSTRAINT pk_users PRIMARY KEY (id)" in create
        assert "CONSTRAINT uq_users_email UNIQUE (email)" in create
        assert any("ix_users_created_at" in stmt for stmt in indexes)

    def test_created_at_defaults_on_the_server(self) -> None:
        """Test that the database fills created_at when none is given."""
        create = ddl(CreateTable(Base.metadata.tables["users"]))

        assert "created_at TIMESTAMP WITH TIME ZONE DEFAULT now() NOT NULL" in create


@pytest.mark.unit
class TestUserRecordMapping:
    """Conversion between rows and domain users."""

    def test_from_entity_leaves_id_unset(self) -> None:
        """Test that the store assigns the ID."""
        user = User(
            id=5, name="Ada", email="ada@example.com", created_at=datetime.now(UTC)
        )

        record = UserRecord.from_entity(user)

        assert record.id is None
        assert record.email == "ada@example.com"

    def test_to_entity(self) -> None:
        """Test that a row converts to an immutable domain user."""
        created_at = datetime(2026, 3, 1, tzinfo=UTC)
        record = UserRecord(
            id=3, name="Ada", email="a@example.com", created_at=created_at
        )

        user = record.to_entity()

        assert user == User(
            id=3, name="Ada", email="a@example.com", created_at=created_at
        )
        assert repr(record) == "<UserRecord(id=3)>"
