from fastapi import APIRouter

from app.api.v1.endpoints.products import router as products_router
from app.api.v1.endpoints.reviews import router as reviews_router

router = APIRouter(prefix="/api/v1")
router.include_router(products_router)
router.include_router(reviews_router)
