from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from conftest import make_gym, make_member
from service_modules.goal_service import (
    calculate_progress,
    calculate_vote_percentage,
    determine_winner,
    goal_service,
)

NOW = datetime(2024, 6, 12, 10, 0)


def option(name, votes, order):
    return SimpleNamespace(name=name, vote_count=votes, display_order=order)


def create_goal(gym, options=None, voting_ends_at=None):
    options = options or [
        {"name": "Rowing machine", "target_amount": 150000},
        {"name": "Sauna", "target_amount": 500000},
    ]
    return goal_service.create_goal(gym.id, {
        "name": "New equipment",
        "description": "Pick what we buy next",
        "voting_ends_at": voting_ends_at or NOW + timedelta(days=7),
        "options": options,
    }, now=NOW)


def published_goal(gym):
    goal = create_goal(gym)
    goal_service.update_goal(gym.id, goal["id"], {"action": "publish"}, now=NOW)
    return goal


# --- helpers ---

def test_winner_has_most_votes():
    assert determine_winner([option("a", 1, 0), option("b", 4, 1), option("c", 2, 2)]).name == "b"


def test_vote_tie_goes_to_first_listed_option():
    assert determine_winner([option("b", 3, 1), option("a", 3, 0), option("c", 1, 2)]).name == "a"


def test_winner_of_no_options():
    assert determine_winner([]) is None


def test_progress_and_percentages():
    assert calculate_progress(50000, 150000) == 33
    assert calculate_progress(200000, 150000) == 100
    assert calculate_progress(100, 0) == 0
    assert calculate_vote_percentage(1, 3) == 33
    assert calculate_vote_percentage(0, 0) == 0


def test_percentages_round_half_up():
    assert calculate_vote_percentage(1, 8) == 13
    assert calculate_vote_percentage(5, 8) == 63
    assert calculate_progress(125, 1000) == 13


# --- lifecycle ---

def test_create_goal_as_draft(db):
    gym = make_gym(db)
    goal = create_goal(gym)
    assert goal["status"] == "draft"
    assert [o["display_order"] for o in goal["options"]] == [0, 1]
    assert goal["can_vote"] is False


def test_create_goal_rejects_past_deadline(db):
    gym = make_gym(db)
    with pytest.raises(HTTPException) as exc:
        create_goal(gym, voting_ends_at=NOW - timedelta(hours=1))
    assert exc.value.status_code == 400


def test_single_option_goal_skips_voting(db):
    gym = make_gym(db)
    goal = create_goal(gym, options=[{"name": "Bench", "target_amount": 30000}])
    result = goal_service.update_goal(gym.id, goal["id"], {"action": "publish"}, now=NOW)
    assert result["goal"]["status"] == "fundraising"
    assert result["goal"]["winning_option_id"] == goal["options"][0]["id"]
    assert result["goal"]["target_amount"] == 30000


def test_multi_option_goal_opens_voting(db):
    gym = make_gym(db)
    goal = create_goal(gym)
    result = goal_service.update_goal(gym.id, goal["id"], {"action": "publish"}, now=NOW)
    assert result["goal"]["status"] == "voting"
    assert result["goal"]["can_vote"] is True

    with pytest.raises(HTTPException):
        goal_service.update_goal(gym.id, goal["id"], {"action": "publish"}, now=NOW)


def test_publish_needs_future_deadline(db):
    gym = make_gym(db)
    goal = create_goal(gym)
    with pytest.raises(HTTPException) as exc:
        goal_service.update_goal(gym.id, goal["id"], {"action": "publish"}, now=NOW + timedelta(days=8))
    assert exc.value.detail == "Voting deadline must be in the future"


def test_vote_change_and_close(db):
    gym = make_gym(db)
    alice = make_member(db, gym, name="Alice")
    bob = make_member(db, gym, name="Bob")
    goal = published_goal(gym)
    rowing, sauna = [o["id"] for o in goal["options"]]

    first = goal_service.cast_vote(goal["id"], alice.id, rowing, now=NOW)
    assert first["changed"] is True
    assert first["previous_option_id"] is None

    same = goal_service.cast_vote(goal["id"], alice.id, rowing, now=NOW)
    assert same["changed"] is False

    moved = goal_service.cast_vote(goal["id"], alice.id, sauna, now=NOW)
    assert moved["previous_option_id"] == rowing
    goal_service.cast_vote(goal["id"], bob.id, sauna, now=NOW)

    breakdown = goal_service.get_vote_breakdown(goal["id"])
    assert breakdown["total_votes"] == 2
    assert breakdown["options"][0] == {"id": sauna, "name": "Sauna", "vote_count": 2, "percentage": 100}
    assert goal_service.get_member_vote(goal["id"], alice.id) == sauna

    result = goal_service.update_goal(gym.id, goal["id"], {"action": "close_voting"}, now=NOW)
    assert result["winning_option"]["id"] == sauna

    with pytest.raises(HTTPException) as exc:
        goal_service.cast_vote(goal["id"], bob.id, rowing, now=NOW)
    assert exc.value.detail == "Voting is not active"


def test_tied_vote_closes_to_first_option(db):
    gym = make_gym(db)
    alice = make_member(db, gym)
    bob = make_member(db, gym)
    goal = published_goal(gym)
    rowing, sauna = [o["id"] for o in goal["options"]]
    goal_service.cast_vote(goal["id"], alice.id, sauna, now=NOW)
    goal_service.cast_vote(goal["id"], bob.id, rowing, now=NOW)

    result = goal_service.select_winner(goal["id"], now=NOW)
    assert result["winning_option"]["id"] == rowing


def test_vote_validation(db):
    gym = make_gym(db)
    other_gym = make_gym(db)
    member = make_member(db, gym)
    outsider = make_member(db, other_gym)
    goal = published_goal(gym)
    rowing = goal["options"][0]["id"]

    with pytest.raises(HTTPException) as exc:
        goal_service.cast_vote(goal["id"], outsider.id, rowing, now=NOW)
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as exc:
        goal_service.cast_vote(goal["id"], member.id, "missing-option", now=NOW)
    assert exc.value.detail == "Invalid option"

    with pytest.raises(HTTPException) as exc:
        goal_service.cast_vote(goal["id"], member.id, rowing, now=NOW + timedelta(days=8))
    assert exc.value.detail == "Voting has ended"

    with pytest.raises(HTTPException) as exc:
        goal_service.cast_vote("missing-goal", member.id, rowing, now=NOW)
    assert exc.value.status_code == 404


def test_expired_voting_closes_on_read(db):
    gym = make_gym(db)
    member = make_member(db, gym)
    goal = published_goal(gym)
    sauna = goal["options"][1]["id"]
    goal_service.cast_vote(goal["id"], member.id, sauna, now=NOW)

    goals = goal_service.list_member_goals(member.id, now=NOW + timedelta(days=8))

    assert goals[0]["status"] == "fundraising"
    assert goals[0]["winning_option_id"] == sauna
    assert goals[0]["my_vote"] == sauna


def test_contributions_complete_goal(db):
    gym = make_gym(db)
    goal = create_goal(gym, options=[{"name": "Bench", "target_amount": 30000}])
    goal_service.update_goal(gym.id, goal["id"], {"action": "publish"}, now=NOW)

    partial = goal_service.update_goal(gym.id, goal["id"], {"add_amount": 10000, "add_note": "Bake sale"}, now=NOW)
    assert partial["completed"] is False

    done = goal_service.add_contribution(goal["id"], 20000, "subscription", now=NOW)
    assert done == {"success": True, "completed": True, "current_amount": 30000}

    with pytest.raises(HTTPException):
        goal_service.add_contribution(goal["id"], 100, "manual", now=NOW)

    with pytest.raises(HTTPException) as exc:
        goal_service.update_goal(gym.id, goal["id"], {"action": "cancel"}, now=NOW)
    assert exc.value.detail == "Completed goals cannot be cancelled"


def test_contribution_requires_fundraising(db):
    gym = make_gym(db)
    goal = create_goal(gym)
    with pytest.raises(HTTPException) as exc:
        goal_service.add_contribution(goal["id"], 500, "manual", now=NOW)
    assert exc.value.status_code == 400


def test_cancel_and_delete(db):
    gym = make_gym(db)
    goal = published_goal(gym)
    with pytest.raises(HTTPException):
        goal_service.delete_goal(gym.id, goal["id"])

    cancelled = goal_service.update_goal(gym.id, goal["id"], {"action": "cancel"}, now=NOW)
    assert cancelled["goal"]["status"] == "cancelled"

    draft = create_goal(gym)
    assert goal_service.delete_goal(gym.id, draft["id"]) == {"success": True}


def test_members_only_see_published_visible_goals(db):
    gym = make_gym(db)
    member = make_member(db, gym)
    create_goal(gym)
    published_goal(gym)
    hidden = published_goal(gym)
    goal_service.update_goal(gym.id, hidden["id"], {"is_visible": False}, now=NOW)

    goals = goal_service.list_member_goals(member.id, now=NOW)
    assert len(goals) == 1
    assert goals[0]["my_vote"] is None
