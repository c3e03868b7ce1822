# backend/api/__init__.py
"""
All REST routers, mounted under /api
"""
from fastapi import APIRouter

from .auth          import router as auth_router
from .users         import router as users_router
from .assets        import router as assets_router
from .opname        import router as opname_router
from .report        import router as report_router
from .asset_import  import router as import_router

api_router = APIRouter(prefix="/api")

# ---- auth / admin ----
api_router.include_router(auth_router)
api_router.include_router(users_router)

# ---- opname ----
api_router.include_router(assets_router)
api_router.include_router(opname_router)
api_router.include_router(report_router)

# ---- catalog import wizard ----
api_router.include_router(import_router)
