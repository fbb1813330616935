from fastapi import APIRouter

from fixy.api.routes import admin, byok, chatrooms, credits, events, health, messages, models, replies

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(models.router, tags=["models"])
api_router.include_router(chatrooms.router, tags=["chatrooms"])
api_router.include_router(messages.router, tags=["messages"])
api_router.include_router(events.router, tags=["events"])
api_router.include_router(replies.router, tags=["replies"])
api_router.include_router(byok.router, tags=["byok"])
api_router.include_router(credits.router, tags=["credits"])
api_router.include_router(admin.router)
