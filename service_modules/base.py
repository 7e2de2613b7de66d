"""
Base service utilities and shared imports.
All services should import from here for common functionality.
"""
from fastapi import HTTPException
import uuid
import logging
from datetime import date, datetime, timedelta, timezone

from database import get_db_session, Base, engine
from models_orm import (
    GymORM, UserORM, MemberORM, DailyLogORM, WeeklyCheckinORM, GymCheckinORM,
    ChallengeORM, ChallengeParticipantORM,
    GoalORM, GoalOptionORM, GoalVoteORM, GoalContributionORM
)

# Re-export for convenience
__all__ = [
    'HTTPException', 'uuid', 'logging', 'date', 'datetime', 'timedelta',
    'get_db_session', 'Base', 'engine',
    'GymORM', 'UserORM', 'MemberORM', 'DailyLogORM', 'WeeklyCheckinORM', 'GymCheckinORM',
    'ChallengeORM', 'ChallengeParticipantORM',
    'GoalORM', 'GoalOptionORM', 'GoalVoteORM', 'GoalContributionORM',
    'utc_today', 'start_of_day', 'to_naive_utc'
]

logger = logging.getLogger("gym_app")


def utc_today(now: datetime = None) -> date:
    """Calendar day in UTC for the given (naive UTC) moment."""
    return (now or datetime.utcnow()).date()


def start_of_day(value) -> datetime:
    """Midnight of the calendar day holding `value` (date or datetime)."""
    return datetime(value.year, value.month, value.day)


def to_naive_utc(value):
    """Timestamps are stored as naive UTC; convert aware input from the API."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
