from .analytics import router as analytics_router
from .campaigns import router as campaigns_router
from .content import router as content_router
from .schedule import router as schedule_router
from .settings import router as settings_router

__all__ = [
    "analytics_router",
    "campaigns_router",
    "content_router",
    "schedule_router",
    "settings_router",
]
