"""
API路由模块
"""
from .wizard import router as wizard_router
from .export import router as export_router
from .library import router as library_router
from .subscription import router as subscription_router
from .install import router as install_router

__all__ = [
    "wizard_router",
    "export_router",
    "library_router",
    "subscription_router",
    "install_router",
]
