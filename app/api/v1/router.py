from fastapi import APIRouter

from app.api.v1 import health, employee_cards

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(
    employee_cards.router, prefix="/employee-cards", tags=["employee-cards"]
)
