from fastapi import APIRouter

from api.auth import router as auth_router
from api.subscription import router as subscription_router
from api.payments import router as payments_router
from api.admin import router as admin_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(subscription_router)
api_router.include_router(payments_router)
api_router.include_router(admin_router)
