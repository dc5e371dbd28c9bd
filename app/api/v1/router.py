"""
Router principal de la API v1.
Agrupa todos los sub-routers de la versión 1.
"""

from fastapi import APIRouter

from app.api.v1.lab import router as lab_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    lab_router,
    prefix="/lab",
    tags=["Laboratorio"],
)
