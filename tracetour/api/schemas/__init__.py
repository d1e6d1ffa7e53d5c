"""Pydantic models for API requests, responses and problem details."""
