"""
Routes package - organized API routes.

Import the combined router for use in main.py.
"""
from fastapi import APIRouter

from .auth_routes import router as auth_router
from .log_routes import router as log_router
from .checkin_routes import router as checkin_router
from .challenge_routes import router as challenge_router
from .goal_routes import router as goal_router
from .dashboard_routes import router as dashboard_router

# Combined router that includes all sub-routers
combined_router = APIRouter()
combined_router.include_router(auth_router, tags=["auth"])
combined_router.include_router(log_router, tags=["logs"])
combined_router.include_router(checkin_router, tags=["checkins"])
combined_router.include_router(challenge_router, tags=["challenges"])
combined_router.include_router(goal_router, tags=["goals"])
combined_router.include_router(dashboard_router, tags=["dashboards"])

__all__ = ['combined_router', 'auth_router', 'log_router', 'checkin_router', 'challenge_router', 'goal_router', 'dashboard_router']
