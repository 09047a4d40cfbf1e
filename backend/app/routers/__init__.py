"""Cathedral Build Engine - API Routers"""
from .build import router as build_router
from .scheduler import router as scheduler_router

__all__ = [
    "build_router",
    "scheduler_router",
]
