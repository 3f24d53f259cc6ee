from fastapi import APIRouter

from autopilot.interfaces.api.auth import router as auth_router
from autopilot.interfaces.api.blog import router as blog_router
from autopilot.interfaces.api.content import router as content_router
from autopilot.interfaces.api.cron import router as cron_router
from autopilot.interfaces.api.generate import router as generate_router
from autopilot.interfaces.api.health import router as health_router
from autopilot.interfaces.api.ideas import router as ideas_router
from autopilot.interfaces.api.queue import router as queue_router
from autopilot.interfaces.api.settings import router as settings_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(ideas_router)
api_router.include_router(generate_router)
api_router.include_router(content_router)
api_router.include_router(queue_router)
api_router.include_router(settings_router)
api_router.include_router(blog_router)
api_router.include_router(cron_router)
