from fastapi import APIRouter

from wizard.api.v1.endpoints.health import router as health_router
from wizard.api.v1.endpoints.sessions import router as sessions_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(sessions_router, tags=["sessions"])
