from fastapi import APIRouter

from cardflow.api.v1 import cards, entropy, events, notifications

api_router = APIRouter()

api_router.include_router(cards.router)
api_router.include_router(entropy.router)
api_router.include_router(events.router)
api_router.include_router(notifications.router)
