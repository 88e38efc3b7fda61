from fastapi import APIRouter
from tradejournal.api.v1 import accounts

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(accounts.router)
