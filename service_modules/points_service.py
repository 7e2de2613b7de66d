"""
Points Service - awards challenge points for logged activity and ranks participants.

Point awarding is best-effort bookkeeping on top of the logging flows: it
never raises to its caller, so a failed award can never fail the log,
check-in or training entry that triggered it.
"""
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_

from .base import (
    logging, datetime,
    get_db_session, utc_today,
    MemberORM, GymCheckinORM, ChallengeORM, ChallengeParticipantORM
)

logger = logging.getLogger("gym_app")

LOG_TYPES = ("meal", "training", "water")

# log type -> (participant column, challenge points column)
POINT_FIELDS = {
    "meal": ("meal_points", "points_per_meal"),
    "training": ("training_points", "points_per_training"),
    "water": ("water_points", "points_per_water"),
}

# Stored statuses a challenge can have while it accepts points
SCORING_STATUSES = ("registration", "active")

DEFAULT_LEADERBOARD_LIMIT = 50
MAX_LEADERBOARD_LIMIT = 200


def calculate_streak_bonus(last_active_date: Optional[datetime], current_streak: int,
                           now: Optional[datetime] = None) -> Tuple[int, bool]:
    """
    Next streak value and whether today's streak bonus is due.

    The bonus is paid on the first activity of each calendar day: first
    activity ever and activity after a gap both start a new streak of 1,
    the day after the last activity extends the streak, and further activity
    on the same day changes nothing.
    """
    if last_active_date is None:
        return 1, True

    today = utc_today(now)
    diff_days = (today - last_active_date.date()).days

    if diff_days <= 0:
        return current_streak, False
    if diff_days == 1:
        return current_streak + 1, True
    return 1, True


def has_valid_gym_checkin(db, member_id: str, now: Optional[datetime] = None) -> bool:
    """
    True when training may earn challenge points today.

    Gyms without a check-in secret do not verify presence; otherwise the
    member must have a GymCheckin row for today's UTC date.
    """
    member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
    if not member:
        return False

    if not member.gym or not member.gym.checkin_secret:
        return True

    checkin = db.query(GymCheckinORM).filter(
        GymCheckinORM.member_id == member_id,
        GymCheckinORM.date == utc_today(now)
    ).first()
    return checkin is not None


class PointsService:
    """Service for challenge points, leaderboards and ranks."""

    def _find_active_participation(self, db, member_id: str, now: datetime):
        # Row lock so concurrent logs from the same member serialize on the streak read
        return db.query(ChallengeParticipantORM).join(
            ChallengeORM, ChallengeParticipantORM.challenge_id == ChallengeORM.id
        ).filter(
            ChallengeParticipantORM.member_id == member_id,
            ChallengeORM.status.in_(SCORING_STATUSES),
            ChallengeORM.start_date <= now,
            ChallengeORM.end_date >= now
        ).with_for_update(of=ChallengeParticipantORM).first()

    def award_points_for_log(self, member_id: str, log_type: str, now: Optional[datetime] = None) -> dict:
        """
        Award challenge points for a meal, training or water log.

        Returns {"awarded": True} or {"awarded": False, "reason": ...} where
        reason is "not_participating", "no_gym_checkin" or "error".
        """
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            if log_type not in POINT_FIELDS:
                raise ValueError(f"Unknown log type: {log_type}")

            participation = self._find_active_participation(db, member_id, now)
            if not participation:
                db.rollback()
                return {"awarded": False, "reason": "not_participating"}

            challenge = participation.challenge

            if log_type == "training" and not has_valid_gym_checkin(db, member_id, now):
                logger.info(f"Training points withheld for member {member_id}: no gym check-in today")
                db.rollback()
                return {"awarded": False, "reason": "no_gym_checkin"}

            field_name, config_name = POINT_FIELDS[log_type]
            points_to_add = getattr(challenge, config_name) or 0

            new_streak, award_bonus = calculate_streak_bonus(
                participation.last_active_date, participation.current_streak or 0, now
            )
            streak_points_to_add = (challenge.streak_bonus or 0) if award_bonus else 0

            field = getattr(ChallengeParticipantORM, field_name)
            db.query(ChallengeParticipantORM).filter(
                ChallengeParticipantORM.id == participation.id
            ).update({
                field: field + points_to_add,
                ChallengeParticipantORM.total_points: ChallengeParticipantORM.total_points + points_to_add + streak_points_to_add,
                ChallengeParticipantORM.streak_points: ChallengeParticipantORM.streak_points + streak_points_to_add,
                ChallengeParticipantORM.current_streak: new_streak,
                ChallengeParticipantORM.last_active_date: now,
            }, synchronize_session=False)
            db.commit()

            logger.debug(
                f"Awarded {points_to_add}+{streak_points_to_add} points to member {member_id} for {log_type}"
            )
            return {"awarded": True}

        except Exception:
            db.rollback()
            logger.exception(f"Error awarding points for {log_type} log of member {member_id}")
            return {"awarded": False, "reason": "error"}
        finally:
            db.close()

    def award_points_for_checkin(self, member_id: str, now: Optional[datetime] = None) -> dict:
        """Award weekly check-in points. No gym check-in gate and no streak interaction."""
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            participation = self._find_active_participation(db, member_id, now)
            if not participation:
                db.rollback()
                return {"awarded": False, "reason": "not_participating"}

            points_to_add = participation.challenge.points_per_checkin or 0

            db.query(ChallengeParticipantORM).filter(
                ChallengeParticipantORM.id == participation.id
            ).update({
                ChallengeParticipantORM.checkin_points: ChallengeParticipantORM.checkin_points + points_to_add,
                ChallengeParticipantORM.total_points: ChallengeParticipantORM.total_points + points_to_add,
            }, synchronize_session=False)
            db.commit()
            return {"awarded": True}

        except Exception:
            db.rollback()
            logger.exception(f"Error awarding check-in points for member {member_id}")
            return {"awarded": False, "reason": "error"}
        finally:
            db.close()

    def get_challenge_leaderboard(self, challenge_id: str, limit: Optional[int] = None,
                                  current_member_id: Optional[str] = None) -> List[dict]:
        """
        Participants by total points, highest first.
        Ties go to whoever joined earlier.
        """
        effective_limit = min(limit or DEFAULT_LEADERBOARD_LIMIT, MAX_LEADERBOARD_LIMIT)
        db = get_db_session()
        try:
            participants = db.query(ChallengeParticipantORM).filter(
                ChallengeParticipantORM.challenge_id == challenge_id
            ).order_by(
                ChallengeParticipantORM.total_points.desc(),
                ChallengeParticipantORM.joined_at.asc()
            ).limit(effective_limit).all()

            return [{
                "rank": index + 1,
                "member_id": p.member_id,
                "name": p.member.name if p.member else "Unknown",
                "total_points": p.total_points,
                "meal_points": p.meal_points,
                "training_points": p.training_points,
                "water_points": p.water_points,
                "checkin_points": p.checkin_points,
                "streak_points": p.streak_points,
                "current_streak": p.current_streak,
                "joined_at": p.joined_at.isoformat() if p.joined_at else None,
                "is_current_member": p.member_id == current_member_id
            } for index, p in enumerate(participants)]
        finally:
            db.close()

    def get_member_rank(self, challenge_id: str, member_id: str) -> Optional[int]:
        """1-based rank, or None when the member is not participating."""
        db = get_db_session()
        try:
            participation = db.query(ChallengeParticipantORM).filter(
                ChallengeParticipantORM.challenge_id == challenge_id,
                ChallengeParticipantORM.member_id == member_id
            ).first()

            if not participation:
                return None

            ahead = db.query(ChallengeParticipantORM).filter(
                ChallengeParticipantORM.challenge_id == challenge_id,
                or_(
                    ChallengeParticipantORM.total_points > participation.total_points,
                    and_(
                        ChallengeParticipantORM.total_points == participation.total_points,
                        ChallengeParticipantORM.joined_at < participation.joined_at
                    )
                )
            ).count()

            return ahead + 1
        finally:
            db.close()


# Singleton instance
points_service = PointsService()


def get_points_service() -> PointsService:
    """Dependency injection helper."""
    return points_service
