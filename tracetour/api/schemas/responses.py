"""Success envelope shared by all non-error responses."""

from pydantic import BaseModel, Field


class SuccessResponse[T](BaseModel):
    """``{"success": true, "data": ..., "message": ...}``."""

    success: bool = True
    data: T | None = None
    message: str = Field(default="", description="Human-readable summary")
