import uuid
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from conftest import make_gym, make_member, make_user
from models_orm import DailyLogORM, WeeklyCheckinORM
from service_modules.dashboard_service import dashboard_service

# Wednesday; Monday of this week is 2024-06-10
NOW = datetime(2024, 6, 12, 12, 0)
MONDAY = datetime(2024, 6, 10)


def add_log(db, member, when, type="meal", calories=None, protein=None):
    db.add(DailyLogORM(id=str(uuid.uuid4()), member_id=member.id, type=type, date=when,
                       estimated_calories=calories, estimated_protein=protein))
    db.commit()


def add_full_days(db, member, days=3):
    # 80kg recomposition member: 2470 kcal / 216 g protein per day
    for offset in range(days):
        add_log(db, member, MONDAY + timedelta(days=offset, hours=9), calories=2470, protein=216)


@pytest.fixture
def team(db):
    gym = make_gym(db)
    admin = make_user(db, gym, role="admin")
    coach = make_user(db, gym, role="coach", name="Coach A")
    other_coach = make_user(db, gym, role="coach", name="Coach B")
    steady = make_member(db, gym, name="Steady", coach=coach)
    ghost = make_member(db, gym, name="Ghost", coach=coach)
    drifting = make_member(db, gym, name="Drifting", coach=other_coach)
    loner = make_member(db, gym, name="Loner")

    add_full_days(db, steady)
    add_log(db, drifting, MONDAY + timedelta(hours=10), calories=2470, protein=216)
    return {"gym": gym, "admin": admin, "coach": coach, "other_coach": other_coach,
            "steady": steady, "ghost": ghost, "drifting": drifting, "loner": loner}


def test_member_dashboard(db, team):
    result = dashboard_service.get_member_dashboard(team["steady"].id, now=NOW)

    assert result["activity_status"] == "slipping"
    assert result["available_days"] == 3
    # 0 training + 20 logging + 25 calories + 15 protein + 0 water
    assert result["consistency_score"] == 60
    assert result["consistency_level"] == "needs_attention"
    assert result["streak"] == 3
    assert result["targets"]["calories"] == 2470
    assert result["today"]["calories"] == 2470
    assert result["today"]["trained"] is False
    assert "low_water" in result["alerts"]


def test_member_dashboard_status_needs_training(db, team):
    steady = team["steady"]
    coach_view = dashboard_service.get_coach_dashboard(team["coach"], now=NOW)
    assert {m["name"]: m["activity_status"] for m in coach_view["members"]}["Steady"] == "on_track"
    assert dashboard_service.get_member_dashboard(steady.id, now=NOW)["activity_status"] == "slipping"

    add_log(db, steady, MONDAY + timedelta(hours=18), type="training")
    add_log(db, steady, MONDAY + timedelta(days=1, hours=18), type="training")

    result = dashboard_service.get_member_dashboard(steady.id, now=NOW)
    assert result["consistency_score"] == 90
    assert result["activity_status"] == "on_track"


def test_member_dashboard_unknown_member(db):
    with pytest.raises(HTTPException) as exc:
        dashboard_service.get_member_dashboard("missing", now=NOW)
    assert exc.value.status_code == 404


def test_new_member_is_scored_on_days_since_joining(db):
    gym = make_gym(db)
    member = make_member(db, gym, created_at=NOW - timedelta(hours=3))
    add_log(db, member, NOW - timedelta(hours=1), calories=2470, protein=216)
    add_log(db, member, NOW - timedelta(hours=1), type="training")
    add_log(db, member, NOW - timedelta(minutes=30), type="water")

    result = dashboard_service.get_member_dashboard(member.id, now=NOW)
    assert result["available_days"] == 1
    assert result["consistency_score"] == 100


def test_coach_sees_own_members_most_urgent_first(db, team):
    result = dashboard_service.get_coach_dashboard(team["coach"], now=NOW)

    assert result["is_coach"] is True
    assert [m["name"] for m in result["members"]] == ["Ghost", "Steady"]
    assert [m["activity_status"] for m in result["members"]] == ["off_track", "on_track"]
    assert result["stats"] == {"total": 2, "on_track": 1, "slipping": 0, "off_track": 1, "needs_attention": 2}
    assert "no_recent_activity" in result["members"][0]["alerts"]


def test_admin_sees_whole_gym(db, team):
    result = dashboard_service.get_coach_dashboard(team["admin"], now=NOW)

    assert result["is_coach"] is False
    names = [m["name"] for m in result["members"]]
    assert set(names[:2]) == {"Ghost", "Loner"}
    assert names[2:] == ["Drifting", "Steady"]
    assert result["members"][2]["activity_status"] == "slipping"


def test_weight_trend_and_checkin_alerts(db, team):
    member = team["steady"]
    for week, weight in ((21, 84.0), (22, 83.2), (23, 82.5)):
        db.add(WeeklyCheckinORM(id=str(uuid.uuid4()), member_id=member.id, week_number=week,
                                year=2024, weight=weight, feeling=3))
    db.commit()

    stats = dashboard_service.get_member_dashboard(member.id, now=NOW)
    assert stats["weight_trend"] == {"trend": "down", "change": -1.5}
    assert "missed_last_checkin" not in stats["alerts"]
    assert stats["missed_checkin"] is True

    sunday = datetime(2024, 6, 16, 18, 0)
    assert "checkin_due" in dashboard_service.get_member_dashboard(member.id, now=sunday)["alerts"]


def test_coach_performance(db, team):
    result = dashboard_service.get_coach_performance(team["gym"].id, now=NOW)

    by_name = {row["name"]: row for row in result["coaches"]}
    assert by_name["Coach A"]["member_count"] == 2
    assert by_name["Coach A"]["on_track"] == 1
    assert by_name["Coach A"]["off_track"] == 1
    assert by_name["Coach A"]["avg_consistency"] == 30
    assert by_name["Coach B"]["slipping"] == 1
    assert result["totals"] == {"members": 4, "assigned": 3, "unassigned": 1,
                                "on_track": 1, "slipping": 1, "off_track": 2}
