"""
Goal Routes - community goals, voting and fundraising.
"""
from fastapi import APIRouter, Depends
from auth import get_current_member, get_current_admin
from models import GoalCreate, GoalUpdate, VoteRequest
from models_orm import UserORM
from service_modules.goal_service import GoalService, get_goal_service

router = APIRouter()


# --- ADMIN ---

@router.get("/api/admin/goals")
async def list_goals(
    service: GoalService = Depends(get_goal_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """List the gym's goals."""
    return service.list_goals(current_user.gym_id)


@router.post("/api/admin/goals")
async def create_goal(
    data: GoalCreate,
    service: GoalService = Depends(get_goal_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Create a draft goal with its options."""
    return service.create_goal(current_user.gym_id, data.model_dump())


@router.get("/api/admin/goals/{goal_id}")
async def get_goal(
    goal_id: str,
    service: GoalService = Depends(get_goal_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Get a goal with vote breakdown and contributions."""
    return service.get_goal(current_user.gym_id, goal_id)


@router.patch("/api/admin/goals/{goal_id}")
async def update_goal(
    goal_id: str,
    data: GoalUpdate,
    service: GoalService = Depends(get_goal_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Publish, close voting, cancel, add funds or edit a goal."""
    return service.update_goal(current_user.gym_id, goal_id, data.model_dump(exclude_none=True))


@router.delete("/api/admin/goals/{goal_id}")
async def delete_goal(
    goal_id: str,
    service: GoalService = Depends(get_goal_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Delete a draft goal."""
    return service.delete_goal(current_user.gym_id, goal_id)


# --- MEMBER ---

@router.get("/api/member/goals")
async def list_member_goals(
    service: GoalService = Depends(get_goal_service),
    current_user: UserORM = Depends(get_current_member)
):
    """List visible goals with the member's vote."""
    return service.list_member_goals(current_user.id)


@router.post("/api/member/goals/{goal_id}/vote")
async def cast_vote(
    goal_id: str,
    data: VoteRequest,
    service: GoalService = Depends(get_goal_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Vote for an option, or change an existing vote."""
    return service.cast_vote(goal_id, current_user.id, data.option_id)
