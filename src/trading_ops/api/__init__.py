from fastapi import APIRouter
from src.trading_ops.api.v1.canary import router as canary_router
from src.trading_ops.api.v1.validation import router as validation_router
from src.trading_ops.api.v1.connectivity import router as connectivity_router
from src.trading_ops.api.v1.flags import router as flags_router

api_router = APIRouter()

api_router.include_router(canary_router, tags=["canary"])
api_router.include_router(validation_router, tags=["validation"])
api_router.include_router(connectivity_router, tags=["connectivity"])
api_router.include_router(flags_router, tags=["feature-flags"])
