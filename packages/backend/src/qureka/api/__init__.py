"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Health, users (register/login) and auth (refresh/logout/verify)
are open at the router level. Routes that need a signed-in user declare
Depends(get_current_user) themselves (/users/me, /auth/verify).
"""

from fastapi import APIRouter

from qureka.api.auth import router as auth_router
from qureka.api.health import router as health_router
from qureka.api.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(auth_router, tags=["auth"])
