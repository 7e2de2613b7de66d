from datetime import datetime, timedelta

from auth import get_password_hash
from conftest import auth_headers, make_gym, make_member, make_user
from models_orm import UserORM


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_login_returns_usable_token(client, db):
    gym = make_gym(db)
    member = make_member(db, gym)
    user = db.query(UserORM).filter(UserORM.id == member.id).one()
    user.hashed_password = get_password_hash("secret123")
    db.commit()

    response = client.post("/api/auth/login", json={"username": user.username, "password": "secret123"})
    assert response.status_code == 200
    token = response.json()["access_token"]
    assert response.json()["role"] == "member"

    logs = client.get("/api/member/logs", headers={"Authorization": f"Bearer {token}"})
    assert logs.status_code == 200
    assert logs.json() == []


def test_login_with_wrong_password(client, db):
    gym = make_gym(db)
    user = make_user(db, gym, role="admin")
    user.hashed_password = get_password_hash("right")
    db.commit()
    response = client.post("/api/auth/login", json={"username": user.username, "password": "wrong"})
    assert response.status_code == 401


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/member/dashboard").status_code == 401
    assert client.get("/api/member/dashboard", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_role_guards(client, db):
    gym = make_gym(db)
    member = make_member(db, gym)
    coach = make_user(db, gym, role="coach")

    assert client.get("/api/admin/challenges", headers=auth_headers(member)).status_code == 403
    assert client.get("/api/coach/dashboard", headers=auth_headers(member)).status_code == 403
    assert client.get("/api/member/dashboard", headers=auth_headers(coach)).status_code == 403
    assert client.get("/api/admin/coach-performance", headers=auth_headers(coach)).status_code == 403
    assert client.get("/api/coach/dashboard", headers=auth_headers(coach)).status_code == 200


def test_invalid_payloads(client, db):
    gym = make_gym(db)
    member = make_member(db, gym)
    headers = auth_headers(member)
    assert client.post("/api/member/logs", json={"type": "nap"}, headers=headers).status_code == 422
    assert client.post("/api/member/checkins", json={"weight": 80, "feeling": 9}, headers=headers).status_code == 422


def test_challenge_flow(client, db):
    gym = make_gym(db)
    admin = make_user(db, gym, role="admin")
    member = make_member(db, gym, name="Runner")
    now = datetime.utcnow()

    created = client.post("/api/admin/challenges", headers=auth_headers(admin), json={
        "name": "June Grind",
        "description": "Show up",
        "reward_description": "Protein tub",
        "start_date": (now - timedelta(days=1)).isoformat(),
        "end_date": (now + timedelta(days=29)).isoformat(),
    })
    assert created.status_code == 200
    challenge_id = created.json()["id"]
    assert created.json()["status"] == "draft"

    published = client.patch(f"/api/admin/challenges/{challenge_id}", headers=auth_headers(admin),
                             json={"action": "publish"})
    assert published.json()["status"] == "registration"

    view = client.get("/api/member/challenge", headers=auth_headers(member)).json()
    assert view["challenge"]["can_join"] is True
    assert view["participation"] is None

    assert client.post("/api/member/challenge/join", headers=auth_headers(member)).status_code == 200
    assert client.post("/api/member/challenge/join", headers=auth_headers(member)).status_code == 400

    log = client.post("/api/member/logs", headers=auth_headers(member), json={"type": "meal", "meal_size": "large"})
    assert log.status_code == 200
    assert log.json()["points"] == {"awarded": True}

    board = client.get("/api/member/challenge/leaderboard", headers=auth_headers(member)).json()
    assert board["rank"] == 1
    assert board["leaderboard"][0]["total_points"] == 10
    assert board["leaderboard"][0]["is_current_member"] is True

    detail = client.get(f"/api/admin/challenges/{challenge_id}", headers=auth_headers(admin)).json()
    assert detail["participant_count"] == 1

    assert client.delete(f"/api/admin/challenges/{challenge_id}", headers=auth_headers(admin)).status_code == 400


def test_leaderboard_without_challenge(client, db):
    gym = make_gym(db)
    member = make_member(db, gym)
    response = client.get("/api/member/challenge/leaderboard", headers=auth_headers(member))
    assert response.status_code == 404


def test_gym_checkin_flow(client, db):
    gym = make_gym(db)
    admin = make_user(db, gym, role="admin")
    member = make_member(db, gym)

    settings = client.post("/api/admin/gym-checkin", headers=auth_headers(admin)).json()
    assert settings["enabled"] is True

    bad = client.post("/api/member/gym-checkin", headers=auth_headers(member), json={"secret": "XXXXXXXX"})
    assert bad.status_code == 400

    ok = client.post("/api/member/gym-checkin", headers=auth_headers(member),
                     json={"secret": settings["today_code"]})
    assert ok.status_code == 200
    assert ok.json()["already_checked_in"] is False

    status = client.get("/api/member/gym-checkin", headers=auth_headers(member)).json()
    assert status["checked_in_today"] is True


def test_goal_flow(client, db):
    gym = make_gym(db)
    admin = make_user(db, gym, role="admin")
    member = make_member(db, gym)

    created = client.post("/api/admin/goals", headers=auth_headers(admin), json={
        "name": "New racks",
        "voting_ends_at": (datetime.utcnow() + timedelta(days=5)).isoformat(),
        "options": [
            {"name": "Squat rack", "target_amount": 120000},
            {"name": "Cable tower", "target_amount": 250000},
        ],
    })
    assert created.status_code == 200
    goal = created.json()

    assert client.post("/api/admin/goals", headers=auth_headers(admin),
                       json={"name": "Empty", "options": []}).status_code == 422

    client.patch(f"/api/admin/goals/{goal['id']}", headers=auth_headers(admin), json={"action": "publish"})

    option_id = goal["options"][1]["id"]
    vote = client.post(f"/api/member/goals/{goal['id']}/vote", headers=auth_headers(member),
                       json={"option_id": option_id})
    assert vote.status_code == 200
    assert vote.json()["changed"] is True

    goals = client.get("/api/member/goals", headers=auth_headers(member)).json()
    assert goals[0]["my_vote"] == option_id
    assert goals[0]["total_votes"] == 1

    closed = client.patch(f"/api/admin/goals/{goal['id']}", headers=auth_headers(admin),
                          json={"action": "close_voting"}).json()
    assert closed["winning_option"]["id"] == option_id

    funded = client.patch(f"/api/admin/goals/{goal['id']}", headers=auth_headers(admin),
                          json={"add_amount": 250000}).json()
    assert funded["completed"] is True

    detail = client.get(f"/api/admin/goals/{goal['id']}", headers=auth_headers(admin)).json()
    assert detail["status"] == "completed"
    assert detail["vote_breakdown"]["total_votes"] == 1
    assert detail["contributions"][0]["source"] == "manual"


def test_weekly_checkin_and_dashboards(client, db):
    gym = make_gym(db)
    admin = make_user(db, gym, role="admin")
    coach = make_user(db, gym, role="coach")
    member = make_member(db, gym, coach=coach)

    checkin = client.post("/api/member/checkins", headers=auth_headers(member), json={"weight": 78.4, "feeling": 3})
    assert checkin.status_code == 200
    assert client.post("/api/member/checkins", headers=auth_headers(member),
                       json={"weight": 78.0, "feeling": 3}).status_code == 400

    assert client.post("/api/member/reset-week", headers=auth_headers(member)).status_code == 200

    dashboard = client.get("/api/member/dashboard", headers=auth_headers(member)).json()
    assert dashboard["current_weight"] == 78.4
    assert dashboard["available_days"] == 1

    coach_view = client.get("/api/coach/dashboard", headers=auth_headers(coach)).json()
    assert coach_view["stats"]["total"] == 1

    performance = client.get("/api/admin/coach-performance", headers=auth_headers(admin)).json()
    assert performance["totals"]["assigned"] == 1


def test_leaderboard_limit_is_capped(client, db):
    gym = make_gym(db)
    member = make_member(db, gym)
    response = client.get("/api/member/challenge/leaderboard?limit=500", headers=auth_headers(member))
    assert response.status_code == 422
