"""
Log Routes - API endpoints for meal, training and water logs.
"""
from fastapi import APIRouter, Depends, Query
from auth import get_current_member
from models import DailyLogCreate
from models_orm import UserORM
from service_modules.log_service import LogService, get_log_service

router = APIRouter()


@router.post("/api/member/logs")
async def create_log(
    log_data: DailyLogCreate,
    service: LogService = Depends(get_log_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Log an activity; challenge points are awarded when eligible."""
    return service.create_log(current_user.id, log_data.model_dump())


@router.get("/api/member/logs")
async def list_logs(
    days: int = Query(default=7, ge=1, le=90),
    service: LogService = Depends(get_log_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Get the member's logs for the last N days."""
    return service.list_logs(current_user.id, days)


@router.delete("/api/member/logs/{log_id}")
async def delete_log(
    log_id: str,
    service: LogService = Depends(get_log_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Delete a log."""
    return service.delete_log(current_user.id, log_id)
