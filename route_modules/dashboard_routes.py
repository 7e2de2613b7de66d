"""
Dashboard Routes - member, coach and admin consistency dashboards.
"""
from fastapi import APIRouter, Depends
from auth import get_current_member, get_current_staff, get_current_admin
from models_orm import UserORM
from service_modules.dashboard_service import DashboardService, get_dashboard_service

router = APIRouter()


@router.get("/api/member/dashboard")
async def member_dashboard(
    service: DashboardService = Depends(get_dashboard_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Weekly score, status and today's intake."""
    return service.get_member_dashboard(current_user.id)


@router.get("/api/coach/dashboard")
async def coach_dashboard(
    service: DashboardService = Depends(get_dashboard_service),
    current_user: UserORM = Depends(get_current_staff)
):
    """Members sorted by who needs attention first."""
    return service.get_coach_dashboard(current_user)


@router.get("/api/admin/coach-performance")
async def coach_performance(
    service: DashboardService = Depends(get_dashboard_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Per-coach member status rollup."""
    return service.get_coach_performance(current_user.gym_id)
