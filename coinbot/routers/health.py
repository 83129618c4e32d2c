from fastapi import APIRouter, Depends

from coinbot.core.settings import Settings
from coinbot.deps import get_settings

router = APIRouter(tags=["system"])


@router.get("/health")
def health_check(settings: Settings = Depends(get_settings)):
    return {"status": "healthy", "service": settings.APP_NAME}
