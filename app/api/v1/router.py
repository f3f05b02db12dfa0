from fastapi import APIRouter

from app.api.v1 import comics, leaderboard, takedowns


api_router = APIRouter(prefix="/v1")

api_router.include_router(comics.router)
api_router.include_router(leaderboard.router)
api_router.include_router(takedowns.router)
