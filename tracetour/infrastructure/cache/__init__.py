"""Redis-backed cache."""
