from sqlalchemy import (
    Column, Integer, String, Boolean, Float, ForeignKey, Text, DateTime, Date,
    UniqueConstraint
)
from sqlalchemy.orm import relationship
from database import Base
from datetime import datetime

# --- CORE MODELS ---

class GymORM(Base):
    __tablename__ = "gyms"

    id = Column(String, primary_key=True, index=True)
    name = Column(String)
    slug = Column(String, unique=True, index=True)
    # Master secret for the rotating daily check-in code. NULL = physical check-in not required
    checkin_secret = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class UserORM(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    username = Column(String, unique=True, index=True)
    email = Column(String, unique=True, index=True, nullable=True)
    hashed_password = Column(String)
    role = Column(String, index=True)  # member, coach, admin
    gym_id = Column(String, ForeignKey("gyms.id"), index=True, nullable=True)
    name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class MemberORM(Base):
    __tablename__ = "members"

    # One-to-One with User, so PK is the same as User ID
    id = Column(String, ForeignKey("users.id"), primary_key=True, index=True)
    gym_id = Column(String, ForeignKey("gyms.id"), index=True)
    coach_id = Column(String, ForeignKey("users.id"), index=True, nullable=True)
    name = Column(String)
    goal = Column(String, default="recomposition")  # fat_loss, muscle_gain, recomposition
    weight = Column(Float, nullable=True)  # kg
    created_at = Column(DateTime, default=datetime.utcnow)
    # Set by "reset week" so available-days normalization restarts from this moment
    week_reset_at = Column(DateTime, nullable=True)

    gym = relationship("GymORM")

# --- ACTIVITY LOGGING ---

class DailyLogORM(Base):
    __tablename__ = "daily_logs"

    id = Column(String, primary_key=True, index=True)
    member_id = Column(String, ForeignKey("members.id"), index=True)
    type = Column(String, index=True)  # meal, training, water
    date = Column(DateTime, default=datetime.utcnow, index=True)
    meal_size = Column(String, nullable=True)  # small, medium, large
    estimated_calories = Column(Integer, nullable=True)
    estimated_protein = Column(Integer, nullable=True)
    estimated_carbs = Column(Integer, nullable=True)
    estimated_fats = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)


class WeeklyCheckinORM(Base):
    __tablename__ = "weekly_checkins"
    __table_args__ = (UniqueConstraint("member_id", "week_number", "year", name="uq_weekly_checkin_member_week"),)

    id = Column(String, primary_key=True, index=True)
    member_id = Column(String, ForeignKey("members.id"), index=True)
    week_number = Column(Integer)
    year = Column(Integer)
    weight = Column(Float)
    feeling = Column(Integer)  # 1-4
    created_at = Column(DateTime, default=datetime.utcnow)


class GymCheckinORM(Base):
    __tablename__ = "gym_checkins"
    __table_args__ = (UniqueConstraint("member_id", "date", name="uq_gym_checkin_member_date"),)

    id = Column(String, primary_key=True, index=True)
    member_id = Column(String, ForeignKey("members.id"), index=True)
    gym_id = Column(String, ForeignKey("gyms.id"), index=True)
    date = Column(Date, index=True)  # UTC calendar day
    created_at = Column(DateTime, default=datetime.utcnow)

# --- CHALLENGES ---

class ChallengeORM(Base):
    __tablename__ = "challenges"

    id = Column(String, primary_key=True, index=True)
    gym_id = Column(String, ForeignKey("gyms.id"), index=True)
    name = Column(String)
    description = Column(Text)
    reward_description = Column(Text)
    start_date = Column(DateTime)
    end_date = Column(DateTime)
    join_deadline_days = Column(Integer, default=7)
    winner_count = Column(Integer, default=3)

    # Point configuration
    points_per_meal = Column(Integer, default=5)
    points_per_training = Column(Integer, default=15)
    points_per_water = Column(Integer, default=1)
    points_per_checkin = Column(Integer, default=25)
    streak_bonus = Column(Integer, default=5)

    # Winner eligibility
    exclude_top_n = Column(Integer, default=3)
    winner_cooldown_months = Column(Integer, default=3)

    # Stored flag only: draft, registration, active, ended. Effective status is computed on read
    status = Column(String, default="draft", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    participants = relationship("ChallengeParticipantORM", back_populates="challenge")


class ChallengeParticipantORM(Base):
    __tablename__ = "challenge_participants"
    __table_args__ = (UniqueConstraint("challenge_id", "member_id", name="uq_challenge_participant"),)

    id = Column(String, primary_key=True, index=True)
    challenge_id = Column(String, ForeignKey("challenges.id"), index=True)
    member_id = Column(String, ForeignKey("members.id"), index=True)

    # total_points == meal + training + water + checkin + streak
    total_points = Column(Integer, default=0, index=True)
    meal_points = Column(Integer, default=0)
    training_points = Column(Integer, default=0)
    water_points = Column(Integer, default=0)
    checkin_points = Column(Integer, default=0)
    streak_points = Column(Integer, default=0)

    current_streak = Column(Integer, default=0)
    last_active_date = Column(DateTime, nullable=True)
    joined_at = Column(DateTime, default=datetime.utcnow)

    challenge = relationship("ChallengeORM", back_populates="participants")
    member = relationship("MemberORM")

# --- FUNDRAISING GOALS ---

class GoalORM(Base):
    __tablename__ = "goals"

    id = Column(String, primary_key=True, index=True)
    gym_id = Column(String, ForeignKey("gyms.id"), index=True)
    name = Column(String)
    description = Column(Text, nullable=True)
    status = Column(String, default="draft", index=True)  # draft, voting, fundraising, completed, cancelled
    is_visible = Column(Boolean, default=True)
    voting_ends_at = Column(DateTime, nullable=True)
    voting_ended_at = Column(DateTime, nullable=True)
    winning_option_id = Column(String, nullable=True)
    current_amount = Column(Integer, default=0)  # cents
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    options = relationship(
        "GoalOptionORM",
        back_populates="goal",
        order_by="GoalOptionORM.display_order",
        cascade="all, delete-orphan"
    )


class GoalOptionORM(Base):
    __tablename__ = "goal_options"

    id = Column(String, primary_key=True, index=True)
    goal_id = Column(String, ForeignKey("goals.id"), index=True)
    name = Column(String)
    description = Column(Text, nullable=True)
    target_amount = Column(Integer)  # cents
    display_order = Column(Integer, default=0)
    vote_count = Column(Integer, default=0)

    goal = relationship("GoalORM", back_populates="options")


class GoalVoteORM(Base):
    __tablename__ = "goal_votes"
    __table_args__ = (UniqueConstraint("goal_id", "member_id", name="uq_goal_vote_member"),)

    id = Column(String, primary_key=True, index=True)
    goal_id = Column(String, ForeignKey("goals.id"), index=True)
    member_id = Column(String, ForeignKey("members.id"), index=True)
    option_id = Column(String, ForeignKey("goal_options.id"), index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)


class GoalContributionORM(Base):
    __tablename__ = "goal_contributions"

    id = Column(String, primary_key=True, index=True)
    goal_id = Column(String, ForeignKey("goals.id"), index=True)
    amount = Column(Integer)  # cents
    source = Column(String)  # subscription, manual
    member_id = Column(String, ForeignKey("members.id"), nullable=True)
    member_name = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
