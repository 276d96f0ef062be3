from fastapi import APIRouter

from app.core.config import settings
from app.core.timeutils import utcnow

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {
        "status": "ok",
        "service": settings.app_name,
        "env": settings.app_env,
        "timestamp": utcnow().isoformat(),
    }
