import os
import sys
import tempfile
import uuid
from datetime import datetime, timedelta

import pytest

# Must point at a throwaway database before database.py is imported
_db_dir = tempfile.mkdtemp(prefix="gym_app_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient

from auth import create_access_token
from database import Base, engine, SessionLocal
from models_orm import (
    GymORM, UserORM, MemberORM, ChallengeORM, ChallengeParticipantORM, GymCheckinORM
)
from main import app


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def auth_headers(user):
    token = create_access_token(data={"sub": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def make_gym(db, checkin_secret=None):
    gym = GymORM(id=str(uuid.uuid4()), name="Iron Gym", slug=f"iron-{uuid.uuid4().hex[:8]}",
                 checkin_secret=checkin_secret)
    db.add(gym)
    db.commit()
    return gym


def make_user(db, gym, role="admin", name=None):
    user_id = str(uuid.uuid4())
    user = UserORM(id=user_id, username=f"{role}-{user_id[:8]}", hashed_password="x",
                   role=role, gym_id=gym.id, name=name or role.title(), is_active=True)
    db.add(user)
    db.commit()
    return user


def make_member(db, gym, name="Member", coach=None, created_at=None, weight=80.0, goal="recomposition"):
    user = make_user(db, gym, role="member", name=name)
    member = MemberORM(id=user.id, gym_id=gym.id, coach_id=coach.id if coach else None, name=name,
                       goal=goal, weight=weight, created_at=created_at or datetime(2024, 1, 1))
    db.add(member)
    db.commit()
    return user


def make_challenge(db, gym, start, end=None, status="registration", join_deadline_days=7, **points):
    challenge = ChallengeORM(
        id=str(uuid.uuid4()), gym_id=gym.id, name="Spring Challenge", description="Move more",
        reward_description="Free month", start_date=start, end_date=end or start + timedelta(days=30),
        join_deadline_days=join_deadline_days, status=status, created_at=start, **points
    )
    db.add(challenge)
    db.commit()
    return challenge


def make_participant(db, challenge, member, joined_at=None, total_points=0, **fields):
    participant = ChallengeParticipantORM(
        id=str(uuid.uuid4()), challenge_id=challenge.id, member_id=member.id,
        total_points=total_points, meal_points=fields.pop("meal_points", total_points),
        training_points=0, water_points=0, checkin_points=0, streak_points=0, current_streak=0,
        joined_at=joined_at or challenge.start_date, **fields
    )
    db.add(participant)
    db.commit()
    return participant


def make_gym_checkin(db, gym, member, day):
    checkin = GymCheckinORM(id=str(uuid.uuid4()), member_id=member.id, gym_id=gym.id, date=day)
    db.add(checkin)
    db.commit()
    return checkin
