from fastapi import APIRouter

from trip_scheduler.api.routes import cron, notifications

api_router = APIRouter()
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])  # GET /trip-notifications
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])  # feed + websocket
