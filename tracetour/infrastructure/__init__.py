"""Infrastructure adapters: PostgreSQL, Redis and their traced decorators."""
