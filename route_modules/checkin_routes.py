"""
Check-in Routes - gym presence check-ins, weekly weigh-ins and admin check-in settings.
"""
from fastapi import APIRouter, Depends
from auth import get_current_member, get_current_admin
from models import CheckinSecretResponse, GymCheckinRequest, WeeklyCheckinCreate
from models_orm import UserORM
from service_modules.checkin_service import CheckinService, get_checkin_service

router = APIRouter()


# --- MEMBER ---

@router.post("/api/member/gym-checkin")
async def gym_checkin(
    data: GymCheckinRequest,
    service: CheckinService = Depends(get_checkin_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Check in at the gym with the code shown at the entrance."""
    return service.record_gym_checkin(current_user.id, data.secret)


@router.get("/api/member/gym-checkin")
async def gym_checkin_status(
    service: CheckinService = Depends(get_checkin_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Whether the member already checked in today."""
    return service.get_gym_checkin_status(current_user.id)


@router.post("/api/member/checkins")
async def create_weekly_checkin(
    data: WeeklyCheckinCreate,
    service: CheckinService = Depends(get_checkin_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Submit this week's check-in."""
    return service.create_weekly_checkin(current_user.id, data.weight, data.feeling)


@router.get("/api/member/checkins")
async def list_weekly_checkins(
    service: CheckinService = Depends(get_checkin_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Get recent weekly check-ins."""
    return service.list_weekly_checkins(current_user.id)


@router.post("/api/member/reset-week")
async def reset_week(
    service: CheckinService = Depends(get_checkin_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Start this week's scoring window from now."""
    return service.reset_week(current_user.id)


# --- ADMIN ---

@router.get("/api/admin/gym-checkin", response_model=CheckinSecretResponse)
async def get_checkin_settings(
    service: CheckinService = Depends(get_checkin_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Get today's code for the gym entrance."""
    return service.get_checkin_settings(current_user.gym_id)


@router.post("/api/admin/gym-checkin", response_model=CheckinSecretResponse)
async def rotate_checkin_secret(
    service: CheckinService = Depends(get_checkin_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Enable check-ins or rotate the master secret."""
    return service.rotate_checkin_secret(current_user.gym_id)


@router.delete("/api/admin/gym-checkin", response_model=CheckinSecretResponse)
async def disable_checkin(
    service: CheckinService = Depends(get_checkin_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Disable gym check-in verification."""
    return service.disable_checkin(current_user.gym_id)
