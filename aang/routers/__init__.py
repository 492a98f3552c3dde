"""
AAng API Routers.
"""

from aang.routers.auth import router as auth_router
from aang.routers.auth_pin import router as auth_pin_router

__all__ = [
    "auth_router",
    "auth_pin_router",
]
