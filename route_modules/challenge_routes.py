"""
Challenge Routes - admin challenge management and member participation.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from auth import get_current_member, get_current_admin
from models import ChallengeCreate, ChallengeUpdate
from models_orm import UserORM
from service_modules.challenge_service import ChallengeService, get_challenge_service
from service_modules.points_service import (
    PointsService, get_points_service, DEFAULT_LEADERBOARD_LIMIT, MAX_LEADERBOARD_LIMIT
)

router = APIRouter()


# --- ADMIN ---

@router.get("/api/admin/challenges")
async def list_challenges(
    service: ChallengeService = Depends(get_challenge_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """List the gym's challenges."""
    return service.list_challenges(current_user.gym_id)


@router.post("/api/admin/challenges")
async def create_challenge(
    data: ChallengeCreate,
    service: ChallengeService = Depends(get_challenge_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Create a draft challenge."""
    return service.create_challenge(current_user.gym_id, data.model_dump())


@router.get("/api/admin/challenges/{challenge_id}")
async def get_challenge(
    challenge_id: str,
    service: ChallengeService = Depends(get_challenge_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Get a challenge with its leaderboard."""
    return service.get_challenge(current_user.gym_id, challenge_id)


@router.patch("/api/admin/challenges/{challenge_id}")
async def update_challenge(
    challenge_id: str,
    data: ChallengeUpdate,
    service: ChallengeService = Depends(get_challenge_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Publish, end or edit a challenge."""
    return service.update_challenge(current_user.gym_id, challenge_id, data.model_dump(exclude_none=True))


@router.delete("/api/admin/challenges/{challenge_id}")
async def delete_challenge(
    challenge_id: str,
    service: ChallengeService = Depends(get_challenge_service),
    current_user: UserORM = Depends(get_current_admin)
):
    """Delete a draft challenge."""
    return service.delete_challenge(current_user.gym_id, challenge_id)


# --- MEMBER ---

@router.get("/api/member/challenge")
async def get_member_challenge(
    service: ChallengeService = Depends(get_challenge_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Get the current challenge with own standing."""
    return service.get_member_challenge(current_user.id)


@router.post("/api/member/challenge/join")
async def join_challenge(
    service: ChallengeService = Depends(get_challenge_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Join the current challenge."""
    return service.join_challenge(current_user.id)


@router.get("/api/member/challenge/leaderboard")
async def get_leaderboard(
    limit: int = Query(default=DEFAULT_LEADERBOARD_LIMIT, ge=1, le=MAX_LEADERBOARD_LIMIT),
    service: ChallengeService = Depends(get_challenge_service),
    points: PointsService = Depends(get_points_service),
    current_user: UserORM = Depends(get_current_member)
):
    """Get the leaderboard of the current challenge."""
    challenge_id = service.get_current_challenge_id(current_user.id)
    if not challenge_id:
        raise HTTPException(status_code=404, detail="No active challenge")
    return {
        "challenge_id": challenge_id,
        "leaderboard": points.get_challenge_leaderboard(challenge_id, limit, current_user.id),
        "rank": points.get_member_rank(challenge_id, current_user.id),
    }
