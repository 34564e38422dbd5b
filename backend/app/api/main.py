from fastapi import APIRouter

from app.api.routes import postgres, utils

api_router = APIRouter()
api_router.include_router(postgres.router)
api_router.include_router(utils.router)
