from fastapi import APIRouter

from extension_fields.routers.extension_field import router as extension_field_router

api_router = APIRouter()
api_router.include_router(extension_field_router)

__all__ = ["api_router"]
