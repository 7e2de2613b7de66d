"""
Check-in Service - physical gym check-ins, weekly weigh-ins and week resets.

Gym check-ins prove presence for challenge training points. The gym keeps a
master secret; the code members scan is derived from it and the UTC date, so
it rotates at midnight UTC without storing anything per day.
"""
import hashlib
import secrets
from typing import Optional

from sqlalchemy.exc import IntegrityError

from .base import (
    HTTPException, uuid, logging, datetime, timedelta,
    get_db_session, utc_today, start_of_day,
    GymORM, MemberORM, GymCheckinORM, WeeklyCheckinORM
)
from .calculations import get_week_number
from .points_service import points_service

logger = logging.getLogger("gym_app")

DAILY_CODE_LENGTH = 8


def generate_daily_code(master_secret: str, day=None) -> str:
    """8-character upper-case code for the given UTC day (default today)."""
    day = day or utc_today()
    if isinstance(day, datetime):
        day = day.date()
    digest = hashlib.sha256(f"{master_secret}-{day.isoformat()}".encode("utf-8")).hexdigest()
    return digest[:DAILY_CODE_LENGTH].upper()


def is_valid_daily_code(master_secret: str, provided_code: str,
                        include_grace_period: bool = True,
                        now: Optional[datetime] = None) -> bool:
    """
    Check a scanned code against today's code.

    During the first hour after midnight UTC yesterday's code is still
    accepted for members who scanned just before the rotation.
    """
    now = now or datetime.utcnow()
    normalized = (provided_code or "").strip().upper()
    if not normalized:
        return False

    if normalized == generate_daily_code(master_secret, now.date()):
        return True

    if include_grace_period and now.hour == 0:
        yesterday = now.date() - timedelta(days=1)
        if normalized == generate_daily_code(master_secret, yesterday):
            return True

    return False


def get_time_until_rotation(now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    midnight = start_of_day(now) + timedelta(days=1)
    diff_seconds = int((midnight - now).total_seconds())
    hours = diff_seconds // 3600
    minutes = (diff_seconds % 3600) // 60
    formatted = f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"
    return {"hours": hours, "minutes": minutes, "formatted": formatted}


def _find_checkin(db, member_id: str, day) -> Optional[GymCheckinORM]:
    return db.query(GymCheckinORM).filter(
        GymCheckinORM.member_id == member_id,
        GymCheckinORM.date == day
    ).first()


def _already_checked_in(checkin: GymCheckinORM) -> dict:
    return {
        "success": True,
        "already_checked_in": True,
        "checkin_id": checkin.id,
        "date": checkin.date.isoformat()
    }


class CheckinService:
    """Service for gym check-ins and weekly check-ins."""

    # --- GYM CHECK-IN ---

    def record_gym_checkin(self, member_id: str, code: Optional[str], now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        if not code:
            raise HTTPException(status_code=400, detail="Missing check-in code")

        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            gym = db.query(GymORM).filter(GymORM.id == member.gym_id).first()
            if not gym or not gym.checkin_secret:
                raise HTTPException(status_code=400, detail="Gym check-in is not enabled")

            if not is_valid_daily_code(gym.checkin_secret, code, now=now):
                raise HTTPException(status_code=400, detail="Invalid or expired check-in code")

            today = utc_today(now)
            existing = _find_checkin(db, member_id, today)

            if existing:
                return _already_checked_in(existing)

            checkin = GymCheckinORM(
                id=str(uuid.uuid4()),
                member_id=member_id,
                gym_id=gym.id,
                date=today,
                created_at=now
            )
            db.add(checkin)
            try:
                db.commit()
            except IntegrityError:
                # Lost a race with a concurrent check-in for the same day
                db.rollback()
                existing = _find_checkin(db, member_id, today)
                if not existing:
                    raise
                return _already_checked_in(existing)
            logger.info(f"Member {member_id} checked in at gym {gym.id}")
            return {
                "success": True,
                "already_checked_in": False,
                "checkin_id": checkin.id,
                "date": today.isoformat()
            }
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error creating gym check-in: {e}")
            raise HTTPException(status_code=500, detail="Failed to check in")
        finally:
            db.close()

    def get_gym_checkin_status(self, member_id: str, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            checkin = db.query(GymCheckinORM).filter(
                GymCheckinORM.member_id == member_id,
                GymCheckinORM.date == utc_today(now)
            ).first()

            return {
                "checkin_required": bool(member.gym and member.gym.checkin_secret),
                "checked_in_today": checkin is not None,
                "checked_in_at": checkin.created_at.isoformat() if checkin and checkin.created_at else None
            }
        finally:
            db.close()

    # --- ADMIN ---

    def get_checkin_settings(self, gym_id: str, now: Optional[datetime] = None) -> dict:
        db = get_db_session()
        try:
            gym = db.query(GymORM).filter(GymORM.id == gym_id).first()
            if not gym:
                raise HTTPException(status_code=404, detail="Gym not found")
            if not gym.checkin_secret:
                return {"enabled": False, "today_code": None, "rotates_in": None}
            return {
                "enabled": True,
                "today_code": generate_daily_code(gym.checkin_secret, utc_today(now)),
                "rotates_in": get_time_until_rotation(now)["formatted"]
            }
        finally:
            db.close()

    def rotate_checkin_secret(self, gym_id: str, now: Optional[datetime] = None) -> dict:
        """Enable check-in verification, or replace the master secret when already enabled."""
        db = get_db_session()
        try:
            gym = db.query(GymORM).filter(GymORM.id == gym_id).first()
            if not gym:
                raise HTTPException(status_code=404, detail="Gym not found")
            gym.checkin_secret = secrets.token_hex(16)
            db.commit()
            logger.info(f"Check-in secret rotated for gym {gym_id}")
        finally:
            db.close()
        return self.get_checkin_settings(gym_id, now)

    def disable_checkin(self, gym_id: str) -> dict:
        db = get_db_session()
        try:
            gym = db.query(GymORM).filter(GymORM.id == gym_id).first()
            if not gym:
                raise HTTPException(status_code=404, detail="Gym not found")
            gym.checkin_secret = None
            db.commit()
            return {"enabled": False, "today_code": None, "rotates_in": None}
        finally:
            db.close()

    # --- WEEKLY CHECK-IN ---

    def create_weekly_checkin(self, member_id: str, weight: float, feeling: int,
                              now: Optional[datetime] = None) -> dict:
        """One weigh-in per ISO week; also awards challenge check-in points."""
        now = now or datetime.utcnow()
        if feeling < 1 or feeling > 4:
            raise HTTPException(status_code=400, detail="Feeling must be between 1 and 4")

        week, year = get_week_number(now)
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            existing = db.query(WeeklyCheckinORM).filter(
                WeeklyCheckinORM.member_id == member_id,
                WeeklyCheckinORM.week_number == week,
                WeeklyCheckinORM.year == year
            ).first()
            if existing:
                raise HTTPException(status_code=400, detail="Check-in already done this week")

            checkin = WeeklyCheckinORM(
                id=str(uuid.uuid4()),
                member_id=member_id,
                week_number=week,
                year=year,
                weight=weight,
                feeling=feeling,
                created_at=now
            )
            db.add(checkin)
            member.weight = weight
            db.commit()
            checkin_id = checkin.id
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error creating weekly check-in: {e}")
            raise HTTPException(status_code=500, detail="Failed to save check-in")
        finally:
            db.close()

        points = points_service.award_points_for_checkin(member_id, now)
        return {
            "success": True,
            "checkin": {"id": checkin_id, "week_number": week, "year": year,
                        "weight": weight, "feeling": feeling},
            "points": points
        }

    def list_weekly_checkins(self, member_id: str, limit: int = 12) -> list:
        db = get_db_session()
        try:
            checkins = db.query(WeeklyCheckinORM).filter(
                WeeklyCheckinORM.member_id == member_id
            ).order_by(WeeklyCheckinORM.year.desc(), WeeklyCheckinORM.week_number.desc()).limit(limit).all()
            return [{
                "id": c.id,
                "week_number": c.week_number,
                "year": c.year,
                "weight": c.weight,
                "feeling": c.feeling
            } for c in checkins]
        finally:
            db.close()

    def reset_week(self, member_id: str, now: Optional[datetime] = None) -> dict:
        """Restart available-days normalization from now."""
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")
            member.week_reset_at = now
            db.commit()
            return {"success": True, "week_reset_at": now.isoformat()}
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error resetting week for member {member_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to reset week")
        finally:
            db.close()


# Singleton instance
checkin_service = CheckinService()


def get_checkin_service() -> CheckinService:
    """Dependency injection helper."""
    return checkin_service
