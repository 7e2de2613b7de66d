"""
Log Service - meal, training and water logs.
"""
from typing import Optional

from .base import (
    HTTPException, uuid, logging, datetime, timedelta,
    get_db_session, start_of_day, MemberORM, DailyLogORM
)
from .calculations import estimate_meal_macros
from .points_service import points_service, LOG_TYPES

logger = logging.getLogger("gym_app")


def _provided_or(data: dict, key: str, fallback):
    # An explicit 0 is a real value, only a missing one falls back to the estimate
    value = data.get(key)
    return value if value is not None else fallback


def serialize_log(log: DailyLogORM) -> dict:
    return {
        "id": log.id,
        "type": log.type,
        "date": log.date.isoformat() if log.date else None,
        "meal_size": log.meal_size,
        "estimated_calories": log.estimated_calories,
        "estimated_protein": log.estimated_protein,
        "estimated_carbs": log.estimated_carbs,
        "estimated_fats": log.estimated_fats,
        "notes": log.notes,
    }


class LogService:
    """Service for daily activity logs."""

    def create_log(self, member_id: str, data: dict, now: Optional[datetime] = None) -> dict:
        """
        Persist a log, then try to award challenge points for it.

        The log is committed before points are awarded; the points outcome is
        reported alongside but never affects whether the log is saved.
        """
        now = now or datetime.utcnow()
        log_type = data.get("type")
        if log_type not in LOG_TYPES:
            raise HTTPException(status_code=400, detail="Invalid log type")

        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            macros = {}
            if log_type == "meal" and data.get("meal_size"):
                macros = estimate_meal_macros(data["meal_size"], member.goal)

            log = DailyLogORM(
                id=str(uuid.uuid4()),
                member_id=member_id,
                type=log_type,
                date=now,
                meal_size=data.get("meal_size") if log_type == "meal" else None,
                estimated_calories=_provided_or(data, "estimated_calories", macros.get("calories")),
                estimated_protein=_provided_or(data, "estimated_protein", macros.get("protein")),
                estimated_carbs=_provided_or(data, "estimated_carbs", macros.get("carbs")),
                estimated_fats=_provided_or(data, "estimated_fats", macros.get("fats")),
                notes=data.get("notes")
            )
            db.add(log)
            db.commit()
            db.refresh(log)
            result = serialize_log(log)
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error creating {log_type} log: {e}")
            raise HTTPException(status_code=500, detail="Failed to save log")
        finally:
            db.close()

        result["points"] = points_service.award_points_for_log(member_id, log_type, now)
        return result

    def list_logs(self, member_id: str, days: int = 7, now: Optional[datetime] = None) -> list:
        now = now or datetime.utcnow()
        since = start_of_day(now) - timedelta(days=max(0, days - 1))
        db = get_db_session()
        try:
            logs = db.query(DailyLogORM).filter(
                DailyLogORM.member_id == member_id,
                DailyLogORM.date >= since
            ).order_by(DailyLogORM.date.desc()).all()
            return [serialize_log(l) for l in logs]
        finally:
            db.close()

    def delete_log(self, member_id: str, log_id: str) -> dict:
        """Delete one of the member's own logs. Challenge points already awarded are kept."""
        db = get_db_session()
        try:
            log = db.query(DailyLogORM).filter(DailyLogORM.id == log_id).first()
            if not log:
                raise HTTPException(status_code=404, detail="Log not found")
            if log.member_id != member_id:
                raise HTTPException(status_code=403, detail="Access denied")
            db.delete(log)
            db.commit()
            return {"success": True}
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error deleting log {log_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete log")
        finally:
            db.close()


# Singleton instance
log_service = LogService()


def get_log_service() -> LogService:
    """Dependency injection helper."""
    return log_service
