"""
Challenge Service - challenge lifecycle, admin management and member participation.

Only the manual flags (draft / registration / ended) are stored; the status
members and staff see is computed from that flag and the challenge dates on
every read.
"""
import math
from typing import Optional

from .base import (
    HTTPException, uuid, logging, datetime, timedelta,
    get_db_session, utc_today, to_naive_utc,
    MemberORM, GymORM, GymCheckinORM, ChallengeORM, ChallengeParticipantORM
)
from .points_service import points_service

logger = logging.getLogger("gym_app")

DRAFT = "draft"
UPCOMING = "upcoming"
REGISTRATION = "registration"
ACTIVE = "active"
ENDED = "ended"

EDITABLE_FIELDS = (
    "name", "description", "reward_description", "start_date", "end_date",
    "join_deadline_days", "winner_count", "points_per_meal", "points_per_training",
    "points_per_water", "points_per_checkin", "streak_bonus", "exclude_top_n",
    "winner_cooldown_months",
)


# --- STATUS ---

def get_challenge_status(challenge, now: Optional[datetime] = None) -> str:
    """
    Effective status: draft -> upcoming -> registration -> active -> ended.

    A manual "ended" always wins and "draft" never advances on its own.
    Published challenges follow their dates; the registration window runs
    from the start date for join_deadline_days days.
    """
    now = now or datetime.utcnow()

    if challenge.status == ENDED:
        return ENDED
    if challenge.status == DRAFT:
        return DRAFT
    if now < challenge.start_date:
        return UPCOMING
    if now > challenge.end_date:
        return ENDED
    if now <= get_join_deadline(challenge):
        return REGISTRATION
    return ACTIVE


def can_join_challenge(challenge, now: Optional[datetime] = None) -> bool:
    return get_challenge_status(challenge, now) == REGISTRATION


def get_join_deadline(challenge) -> datetime:
    return challenge.start_date + timedelta(days=challenge.join_deadline_days or 0)


def _days_until(target: datetime, now: Optional[datetime]) -> int:
    now = now or datetime.utcnow()
    seconds = (target - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def get_days_until_join_deadline(challenge, now: Optional[datetime] = None) -> int:
    return _days_until(get_join_deadline(challenge), now)


def get_days_until_end(challenge, now: Optional[datetime] = None) -> int:
    return _days_until(challenge.end_date, now)


def get_days_until_start(challenge, now: Optional[datetime] = None) -> int:
    return _days_until(challenge.start_date, now)


def _iso(value):
    return value.isoformat() if value else None


def serialize_challenge(challenge: ChallengeORM, now: Optional[datetime] = None) -> dict:
    return {
        "id": challenge.id,
        "name": challenge.name,
        "description": challenge.description,
        "reward_description": challenge.reward_description,
        "start_date": _iso(challenge.start_date),
        "end_date": _iso(challenge.end_date),
        "join_deadline_days": challenge.join_deadline_days,
        "winner_count": challenge.winner_count,
        "points_per_meal": challenge.points_per_meal,
        "points_per_training": challenge.points_per_training,
        "points_per_water": challenge.points_per_water,
        "points_per_checkin": challenge.points_per_checkin,
        "streak_bonus": challenge.streak_bonus,
        "exclude_top_n": challenge.exclude_top_n,
        "winner_cooldown_months": challenge.winner_cooldown_months,
        "stored_status": challenge.status,
        "status": get_challenge_status(challenge, now),
        "can_join": can_join_challenge(challenge, now),
        "days_until_deadline": get_days_until_join_deadline(challenge, now),
        "days_until_end": get_days_until_end(challenge, now),
        "days_until_start": get_days_until_start(challenge, now),
    }


def _serialize_participation(p: ChallengeParticipantORM) -> dict:
    return {
        "id": p.id,
        "total_points": p.total_points,
        "meal_points": p.meal_points,
        "training_points": p.training_points,
        "water_points": p.water_points,
        "checkin_points": p.checkin_points,
        "streak_points": p.streak_points,
        "current_streak": p.current_streak,
        "last_active_date": _iso(p.last_active_date),
        "joined_at": _iso(p.joined_at),
    }


class ChallengeService:
    """Service for challenge management and participation."""

    # --- ADMIN ---

    def _get_gym_challenge(self, db, gym_id: str, challenge_id: str) -> ChallengeORM:
        challenge = db.query(ChallengeORM).filter(ChallengeORM.id == challenge_id).first()
        if not challenge:
            raise HTTPException(status_code=404, detail="Challenge not found")
        if challenge.gym_id != gym_id:
            raise HTTPException(status_code=403, detail="Access denied")
        return challenge

    def list_challenges(self, gym_id: str, now: Optional[datetime] = None) -> list:
        db = get_db_session()
        try:
            challenges = db.query(ChallengeORM).filter(
                ChallengeORM.gym_id == gym_id
            ).order_by(ChallengeORM.created_at.desc()).all()

            result = []
            for c in challenges:
                data = serialize_challenge(c, now)
                data["participant_count"] = len(c.participants)
                result.append(data)
            return result
        finally:
            db.close()

    def get_challenge(self, gym_id: str, challenge_id: str, now: Optional[datetime] = None) -> dict:
        db = get_db_session()
        try:
            challenge = self._get_gym_challenge(db, gym_id, challenge_id)
            data = serialize_challenge(challenge, now)
            data["participant_count"] = len(challenge.participants)
        finally:
            db.close()

        data["leaderboard"] = points_service.get_challenge_leaderboard(challenge_id)
        return data

    def create_challenge(self, gym_id: str, data: dict, now: Optional[datetime] = None) -> dict:
        """Create a draft challenge. Only one unfinished challenge per gym at a time."""
        now = now or datetime.utcnow()
        data = {key: to_naive_utc(value) for key, value in data.items()}
        required = ("name", "description", "reward_description", "start_date", "end_date")
        if any(not data.get(field) for field in required):
            raise HTTPException(status_code=400, detail="Missing required fields")

        if data["end_date"] <= data["start_date"]:
            raise HTTPException(status_code=400, detail="End date must be after start date")

        db = get_db_session()
        try:
            existing = db.query(ChallengeORM).filter(
                ChallengeORM.gym_id == gym_id,
                ChallengeORM.status.in_([DRAFT, REGISTRATION, ACTIVE]),
                ChallengeORM.end_date >= now
            ).first()

            if existing:
                raise HTTPException(
                    status_code=400,
                    detail="An active challenge already exists. End it before creating a new one."
                )

            challenge = ChallengeORM(
                id=str(uuid.uuid4()),
                gym_id=gym_id,
                status=DRAFT,
                created_at=now,
                **{field: data[field] for field in EDITABLE_FIELDS if data.get(field) is not None}
            )
            db.add(challenge)
            db.commit()
            db.refresh(challenge)
            logger.info(f"Challenge {challenge.id} created for gym {gym_id}")
            return serialize_challenge(challenge, now)
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error creating challenge: {e}")
            raise HTTPException(status_code=500, detail="Failed to create challenge")
        finally:
            db.close()

    def update_challenge(self, gym_id: str, challenge_id: str, data: dict,
                         now: Optional[datetime] = None) -> dict:
        """Publish, end, or edit a challenge depending on `action`."""
        now = now or datetime.utcnow()
        data = {key: to_naive_utc(value) for key, value in data.items()}
        db = get_db_session()
        try:
            challenge = self._get_gym_challenge(db, gym_id, challenge_id)
            computed_status = get_challenge_status(challenge, now)
            action = data.get("action")

            if action == "publish":
                if challenge.status != DRAFT:
                    raise HTTPException(status_code=400, detail="Only draft challenges can be published")
                # Computed status then follows the dates (upcoming/registration/active)
                challenge.status = REGISTRATION

            elif action == "end":
                if computed_status == ENDED:
                    raise HTTPException(status_code=400, detail="Challenge is already ended")
                challenge.status = ENDED

            else:
                if computed_status not in (DRAFT, UPCOMING, REGISTRATION):
                    raise HTTPException(status_code=400, detail="Cannot edit challenge after registration period")

                for field in EDITABLE_FIELDS:
                    if data.get(field) is not None:
                        setattr(challenge, field, data[field])

                if challenge.end_date <= challenge.start_date:
                    raise HTTPException(status_code=400, detail="End date must be after start date")

            db.commit()
            db.refresh(challenge)
            return serialize_challenge(challenge, now)
        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error updating challenge {challenge_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update challenge")
        finally:
            db.close()

    def delete_challenge(self, gym_id: str, challenge_id: str) -> dict:
        db = get_db_session()
        try:
            challenge = self._get_gym_challenge(db, gym_id, challenge_id)

            if challenge.status != DRAFT:
                raise HTTPException(status_code=400, detail="Only draft challenges can be deleted")

            if challenge.participants:
                raise HTTPException(status_code=400, detail="Cannot delete challenge with participants")

            db.delete(challenge)
            db.commit()
            return {"success": True}
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error deleting challenge {challenge_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete challenge")
        finally:
            db.close()

    # --- MEMBER ---

    def _current_challenge(self, db, gym_id: str, now: datetime) -> Optional[ChallengeORM]:
        # Upcoming challenges are included so members can see what is coming
        return db.query(ChallengeORM).filter(
            ChallengeORM.gym_id == gym_id,
            ChallengeORM.status.in_([REGISTRATION, ACTIVE]),
            ChallengeORM.end_date >= now
        ).order_by(ChallengeORM.start_date.asc()).first()

    def get_current_challenge_id(self, member_id: str, now: Optional[datetime] = None) -> Optional[str]:
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")
            challenge = self._current_challenge(db, member.gym_id, now)
            return challenge.id if challenge else None
        finally:
            db.close()

    def get_member_challenge(self, member_id: str, now: Optional[datetime] = None) -> dict:
        """Current published challenge of the member's gym with own standing."""
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            gym = db.query(GymORM).filter(GymORM.id == member.gym_id).first()
            checked_in_today = db.query(GymCheckinORM).filter(
                GymCheckinORM.member_id == member_id,
                GymCheckinORM.date == utc_today(now)
            ).first() is not None

            challenge = self._current_challenge(db, member.gym_id, now)

            result = {
                "challenge": None,
                "participation": None,
                "rank": None,
                "leaderboard": [],
                "gym_checkin_required": bool(gym and gym.checkin_secret),
                "checked_in_today": checked_in_today,
            }

            if not challenge:
                return result

            participation = db.query(ChallengeParticipantORM).filter(
                ChallengeParticipantORM.challenge_id == challenge.id,
                ChallengeParticipantORM.member_id == member_id
            ).first()

            result["challenge"] = serialize_challenge(challenge, now)
            result["challenge"]["participant_count"] = len(challenge.participants)
            if participation:
                result["participation"] = _serialize_participation(participation)
            challenge_id = challenge.id
        finally:
            db.close()

        result["leaderboard"] = points_service.get_challenge_leaderboard(
            challenge_id, current_member_id=member_id
        )
        if result["participation"]:
            result["rank"] = points_service.get_member_rank(challenge_id, member_id)
        return result

    def join_challenge(self, member_id: str, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            challenge = self._current_challenge(db, member.gym_id, now)
            if not challenge:
                raise HTTPException(status_code=404, detail="No active challenge")

            if get_challenge_status(challenge, now) == UPCOMING:
                raise HTTPException(status_code=400, detail="Registration has not opened")
            if not can_join_challenge(challenge, now):
                raise HTTPException(status_code=400, detail="Join deadline has passed")

            existing = db.query(ChallengeParticipantORM).filter(
                ChallengeParticipantORM.challenge_id == challenge.id,
                ChallengeParticipantORM.member_id == member_id
            ).first()

            if existing:
                raise HTTPException(status_code=400, detail="Already participating in this challenge")

            participation = ChallengeParticipantORM(
                id=str(uuid.uuid4()),
                challenge_id=challenge.id,
                member_id=member_id,
                total_points=0,
                meal_points=0,
                training_points=0,
                water_points=0,
                checkin_points=0,
                streak_points=0,
                current_streak=0,
                joined_at=now
            )
            db.add(participation)
            db.commit()
            db.refresh(participation)
            logger.info(f"Member {member_id} joined challenge {challenge.id}")
            return {"success": True, "participation": _serialize_participation(participation)}
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error joining challenge: {e}")
            raise HTTPException(status_code=500, detail="Failed to join challenge")
        finally:
            db.close()


# Singleton instance
challenge_service = ChallengeService()


def get_challenge_service() -> ChallengeService:
    """Dependency injection helper."""
    return challenge_service
