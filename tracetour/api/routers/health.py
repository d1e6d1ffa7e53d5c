"""Health check endpoint."""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, object]:
    """Liveness probe for container orchestration and load balancers.

    Does not touch the database or the cache.

    Returns:
        dict[str, object]: Fixed success body.
    """
    return {"success": True, "message": "Service is healthy"}
