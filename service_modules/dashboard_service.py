"""
Dashboard Service - read-only weekly rollups for members, coaches and admins.

Every number here is recomputed from the member's log window on each request.
"""
from typing import List, Optional

from .base import (
    HTTPException, logging, datetime, timedelta,
    get_db_session, start_of_day, UserORM, MemberORM, DailyLogORM, WeeklyCheckinORM
)
from .calculations import (
    calculate_available_days, calculate_consistency_score, calculate_daily_targets,
    get_consistency_level, get_days_passed_this_week, get_monday_of_week,
    get_previous_week, get_week_number, round_half_up
)
from .activity_status import (
    ActivitySignals, ADHERENCE_RULES, SCORE_RULES, STATUS_PRIORITY, ON_TRACK, SLIPPING, OFF_TRACK,
    StatusRules, calculate_activity_streak, classify_activity, days_since, summarize_week
)

logger = logging.getLogger("gym_app")

ACTIVITY_WINDOW_DAYS = 30
WEIGHT_TREND_CHECKINS = 4
WEIGHT_TREND_THRESHOLD = 0.5  # kg


def _weight_trend(checkins) -> dict:
    """checkins newest first."""
    if len(checkins) < 2:
        return {"trend": "stable", "change": 0.0}
    change = round(checkins[0].weight - checkins[-1].weight, 1)
    if change < -WEIGHT_TREND_THRESHOLD:
        trend = "down"
    elif change > WEIGHT_TREND_THRESHOLD:
        trend = "up"
    else:
        trend = "stable"
    return {"trend": trend, "change": change}


class DashboardService:
    """Service for consistency and activity dashboards."""

    def _member_stats(self, db, member: MemberORM, now: datetime,
                      rules: StatusRules = ADHERENCE_RULES) -> dict:
        monday = get_monday_of_week(now)
        days_passed = get_days_passed_this_week(now)
        window_start = start_of_day(now) - timedelta(days=ACTIVITY_WINDOW_DAYS)

        recent_logs = db.query(DailyLogORM).filter(
            DailyLogORM.member_id == member.id,
            DailyLogORM.date >= min(window_start, monday),
            DailyLogORM.date <= now
        ).order_by(DailyLogORM.date.desc()).all()
        week_logs = [l for l in recent_logs if l.date >= monday]

        targets = calculate_daily_targets(member.weight, member.goal)
        summary = summarize_week(week_logs, targets)
        available_days = calculate_available_days(member.created_at, member.week_reset_at, monday, now)

        consistency_score = calculate_consistency_score(
            training_sessions=summary.training_sessions,
            days_with_meals=summary.days_with_meals,
            avg_calorie_adherence=summary.calorie_adherence,
            avg_protein_adherence=summary.protein_adherence,
            water_consistency=summary.days_with_water,
            available_days=available_days,
        )

        last_activity = recent_logs[0].date if recent_logs else None
        days_since_activity = days_since(last_activity, now)

        signals = ActivitySignals(
            days_since_activity=days_since_activity,
            days_passed_this_week=days_passed,
            days_with_meals=summary.days_with_meals,
            days_with_calories=summary.days_with_calories,
            days_with_good_calories=summary.days_with_good_calories,
            weekly_training_sessions=summary.training_sessions,
            consistency_score=consistency_score,
        )
        activity_status = classify_activity(signals, rules)

        checkins = db.query(WeeklyCheckinORM).filter(
            WeeklyCheckinORM.member_id == member.id
        ).order_by(
            WeeklyCheckinORM.year.desc(), WeeklyCheckinORM.week_number.desc()
        ).limit(WEIGHT_TREND_CHECKINS).all()

        current_week = get_week_number(now)
        last_week = get_previous_week(*current_week)
        checkin_weeks = {(c.week_number, c.year) for c in checkins}
        has_current_checkin = current_week in checkin_weeks
        has_last_week_checkin = last_week in checkin_weeks

        water_percent = round_half_up(summary.days_with_water / days_passed * 100)

        alerts = []
        if days_since_activity >= 5:
            alerts.append("no_recent_activity")
        if not has_last_week_checkin:
            alerts.append("missed_last_checkin")
        if not has_current_checkin and now.weekday() == 6:
            alerts.append("checkin_due")
        if summary.days_with_calories >= 2 and summary.calorie_adherence < 70:
            alerts.append("calories_low")
        elif summary.days_with_calories >= 2 and summary.calorie_adherence > 130:
            alerts.append("calories_high")
        if 0 < summary.protein_adherence < 70:
            alerts.append("protein_low")
        if days_passed >= 3 and water_percent < 30:
            alerts.append("low_water")

        return {
            "id": member.id,
            "name": member.name,
            "goal": member.goal,
            "current_weight": member.weight,
            "coach_id": member.coach_id,
            "activity_status": activity_status,
            "consistency_score": consistency_score,
            "consistency_level": get_consistency_level(consistency_score),
            "available_days": available_days,
            "streak": calculate_activity_streak((l.date for l in recent_logs), now.date()),
            "last_activity_date": last_activity.isoformat() if last_activity else None,
            "days_since_activity": days_since_activity,
            "weekly_training_sessions": summary.training_sessions,
            "days_with_meals": summary.days_with_meals,
            "days_with_water": summary.days_with_water,
            "calorie_adherence": summary.calorie_adherence,
            "protein_adherence": summary.protein_adherence,
            "weight_trend": _weight_trend(checkins),
            "missed_checkin": not has_current_checkin,
            "alerts": alerts,
        }

    def get_member_dashboard(self, member_id: str, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            stats = self._member_stats(db, member, now, rules=SCORE_RULES)

            today_start = start_of_day(now)
            today_logs = db.query(DailyLogORM).filter(
                DailyLogORM.member_id == member_id,
                DailyLogORM.date >= today_start,
                DailyLogORM.date <= now
            ).all()

            stats["targets"] = calculate_daily_targets(member.weight, member.goal)
            stats["today"] = {
                "calories": sum(l.estimated_calories or 0 for l in today_logs),
                "protein": sum(l.estimated_protein or 0 for l in today_logs),
                "carbs": sum(l.estimated_carbs or 0 for l in today_logs),
                "fats": sum(l.estimated_fats or 0 for l in today_logs),
                "trained": any(l.type == "training" for l in today_logs),
                "water_logs": sum(1 for l in today_logs if l.type == "water"),
            }
            return stats
        finally:
            db.close()

    def get_coach_dashboard(self, staff: UserORM, now: Optional[datetime] = None) -> dict:
        """
        Members of a coach (or the whole gym for admins), most urgent first:
        off_track before slipping before on_track, then longest inactive.
        """
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            query = db.query(MemberORM).filter(MemberORM.gym_id == staff.gym_id)
            is_coach = staff.role == "coach"
            if is_coach:
                query = query.filter(MemberORM.coach_id == staff.id)

            members = [self._member_stats(db, m, now) for m in query.all()]
        except Exception as e:
            logger.error(f"Coach dashboard error: {e}")
            raise HTTPException(status_code=500, detail="Failed to load dashboard")
        finally:
            db.close()

        members.sort(key=lambda m: (STATUS_PRIORITY[m["activity_status"]], -m["days_since_activity"]))

        return {
            "coach_name": staff.name or staff.username,
            "is_coach": is_coach,
            "stats": {
                "total": len(members),
                "on_track": sum(1 for m in members if m["activity_status"] == ON_TRACK),
                "slipping": sum(1 for m in members if m["activity_status"] == SLIPPING),
                "off_track": sum(1 for m in members if m["activity_status"] == OFF_TRACK),
                "needs_attention": sum(1 for m in members if m["alerts"]),
            },
            "members": members,
        }

    def get_coach_performance(self, gym_id: str, now: Optional[datetime] = None) -> dict:
        """Per-coach rollup of member statuses and average consistency."""
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            coaches = db.query(UserORM).filter(
                UserORM.gym_id == gym_id,
                UserORM.role == "coach",
                UserORM.is_active == True
            ).order_by(UserORM.name.asc()).all()

            members = db.query(MemberORM).filter(MemberORM.gym_id == gym_id).all()
            member_stats = {m.id: self._member_stats(db, m, now) for m in members}
        except Exception as e:
            logger.error(f"Coach performance error: {e}")
            raise HTTPException(status_code=500, detail="Failed to load coach performance")
        finally:
            db.close()

        coach_rows: List[dict] = []
        for coach in coaches:
            assigned = [s for s in member_stats.values() if s["coach_id"] == coach.id]
            assigned.sort(key=lambda s: STATUS_PRIORITY[s["activity_status"]])
            coach_rows.append({
                "coach_id": coach.id,
                "name": coach.name or coach.username,
                "member_count": len(assigned),
                "on_track": sum(1 for s in assigned if s["activity_status"] == ON_TRACK),
                "slipping": sum(1 for s in assigned if s["activity_status"] == SLIPPING),
                "off_track": sum(1 for s in assigned if s["activity_status"] == OFF_TRACK),
                "avg_consistency": round_half_up(sum(s["consistency_score"] for s in assigned) / len(assigned)) if assigned else 0,
                "members": [{
                    "id": s["id"],
                    "name": s["name"],
                    "status": s["activity_status"],
                    "consistency_score": s["consistency_score"],
                } for s in assigned],
            })

        all_stats = list(member_stats.values())
        return {
            "coaches": coach_rows,
            "totals": {
                "members": len(all_stats),
                "assigned": sum(1 for s in all_stats if s["coach_id"]),
                "unassigned": sum(1 for s in all_stats if not s["coach_id"]),
                "on_track": sum(1 for s in all_stats if s["activity_status"] == ON_TRACK),
                "slipping": sum(1 for s in all_stats if s["activity_status"] == SLIPPING),
                "off_track": sum(1 for s in all_stats if s["activity_status"] == OFF_TRACK),
            },
        }


# Singleton instance
dashboard_service = DashboardService()


def get_dashboard_service() -> DashboardService:
    """Dependency injection helper."""
    return dashboard_service
