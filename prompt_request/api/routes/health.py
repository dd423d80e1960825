from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness probe for load balancers.

    Touches neither the database nor the object store, so a slow dependency
    never takes the process out of rotation.
    """

    return {"status": "ok"}
