"""Health route."""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    """Simple liveness probe; the service keeps no state to check for readiness."""
    return {"status": "ok"}
