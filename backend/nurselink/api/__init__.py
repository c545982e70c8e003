from fastapi import APIRouter
from nurselink.api import matching

api_router = APIRouter()
api_router.include_router(matching.router, prefix="/matching", tags=["matching"])
