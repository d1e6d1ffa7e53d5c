"""PostgreSQL persistence with SQLAlchemy's async engine."""
