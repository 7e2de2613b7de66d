"""
Calculations - week utilities, nutrition targets and the weekly consistency score.

Everything in this module is pure: callers pass the current time explicitly
where it matters so results are reproducible in tests.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Optional, Tuple

GOALS = ("fat_loss", "muscle_gain", "recomposition")
DEFAULT_GOAL = "recomposition"
DEFAULT_WEIGHT_KG = 70

GOAL_CALORIE_MULTIPLIERS = {
    "fat_loss": (10, 12),
    "recomposition": (13, 15),
    "muscle_gain": (16, 18),
}

# protein / carbs / fats share of total calories
GOAL_MACRO_SPLITS = {
    "fat_loss": {"protein": 0.40, "carbs": 0.30, "fats": 0.30},
    "recomposition": {"protein": 0.35, "carbs": 0.40, "fats": 0.25},
    "muscle_gain": {"protein": 0.30, "carbs": 0.45, "fats": 0.25},
}

MEAL_SIZE_CALORIES = {
    "fat_loss": {"small": 300, "medium": 500, "large": 750},
    "recomposition": {"small": 350, "medium": 600, "large": 900},
    "muscle_gain": {"small": 400, "medium": 700, "large": 1000},
}

# Score weights
TRAINING_MAX = 30
LOGGING_MAX = 20
CALORIE_MAX = 25
PROTEIN_MAX = 15
WATER_MAX = 10
TARGET_SESSIONS_PER_WEEK = 3


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values; built-in round() goes to even."""
    return int(math.floor(value + 0.5))


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


# --- WEEK UTILITIES ---

def get_week_number(value) -> Tuple[int, int]:
    """
    ISO-8601 week number and week-year for a date.

    The week belongs to the year holding its Thursday, so 2024-12-30 is week 1
    of 2025 and 2021-01-01 is week 53 of 2020.
    """
    iso = _as_date(value).isocalendar()
    return iso[1], iso[0]


def get_previous_week(week: int, year: int) -> Tuple[int, int]:
    """Week/year pair of the ISO week before the given one."""
    monday = date.fromisocalendar(year, week, 1)
    return get_week_number(monday - timedelta(days=7))


def get_monday_of_week(now: datetime) -> datetime:
    """Midnight of the Monday starting the week that contains `now`."""
    today = datetime(now.year, now.month, now.day)
    return today - timedelta(days=today.weekday())


def get_days_passed_this_week(now: datetime) -> int:
    """1 on Monday ... 7 on Sunday."""
    return now.weekday() + 1


def calculate_available_days(member_created_at: datetime,
                             week_reset_at: Optional[datetime],
                             monday_of_this_week: datetime,
                             now: Optional[datetime] = None) -> int:
    """
    How many days of the current week a member could have logged activity.

    The window starts at `week_reset_at` when the member reset their week,
    otherwise at account creation. Members whose window opened before this
    week's Monday get every day elapsed so far; newer ones only the days since
    they started. Always between 1 and 7.
    """
    now = now or datetime.utcnow()
    start = week_reset_at or member_created_at
    days_passed = get_days_passed_this_week(now)

    if start is None or _as_date(start) < _as_date(monday_of_this_week):
        return max(1, min(days_passed, 7))

    days_since_start = (_as_date(now) - _as_date(start)).days
    return max(1, min(days_since_start + 1, days_passed, 7))


# --- NUTRITION TARGETS ---

def _normalize_goal(goal: Optional[str]) -> str:
    return goal if goal in GOALS else DEFAULT_GOAL


def _split_macros(calories: int, goal: str) -> Dict[str, int]:
    splits = GOAL_MACRO_SPLITS[goal]
    return {
        "calories": calories,
        "protein": round_half_up(calories * splits["protein"] / 4),
        "carbs": round_half_up(calories * splits["carbs"] / 4),
        "fats": round_half_up(calories * splits["fats"] / 9),
    }


def calculate_daily_targets(weight_kg: Optional[float], goal: Optional[str]) -> Dict[str, int]:
    """Daily calorie and macro targets from body weight (kg) and training goal."""
    goal = _normalize_goal(goal)
    weight_kg = weight_kg or DEFAULT_WEIGHT_KG
    low, high = GOAL_CALORIE_MULTIPLIERS[goal]
    calories = round_half_up(weight_kg * 2.205 * (low + high) / 2)
    return _split_macros(calories, goal)


def estimate_meal_macros(size: str, goal: Optional[str]) -> Dict[str, int]:
    """Rough macros for a small/medium/large meal given the member's goal."""
    goal = _normalize_goal(goal)
    if size not in MEAL_SIZE_CALORIES[goal]:
        raise ValueError(f"Unknown meal size: {size}")
    return _split_macros(MEAL_SIZE_CALORIES[goal][size], goal)


def calculate_macro_status(consumed: float, target: float) -> str:
    if target <= 0:
        return "off_track"
    ratio = consumed / target
    if 0.9 <= ratio <= 1.1:
        return "on_track"
    if ratio < 0.7 or ratio > 1.3:
        return "off_track"
    return "needs_attention"


def calculate_macro_percentages(protein: float, carbs: float, fats: float) -> Dict[str, int]:
    protein_cals = protein * 4
    carbs_cals = carbs * 4
    fats_cals = fats * 9
    total = protein_cals + carbs_cals + fats_cals
    if total == 0:
        return {"protein": 0, "carbs": 0, "fats": 0}
    return {
        "protein": round_half_up(protein_cals / total * 100),
        "carbs": round_half_up(carbs_cals / total * 100),
        "fats": round_half_up(fats_cals / total * 100),
    }


# --- CONSISTENCY SCORE ---

@dataclass
class ConsistencyInput:
    training_sessions: int
    days_with_meals: int
    avg_calorie_adherence: float  # % of target, may exceed 100
    avg_protein_adherence: float  # % of target, may exceed 100
    water_consistency: int  # days with water logged
    available_days: Optional[int] = None


def calculate_consistency_score(data: Optional[ConsistencyInput] = None, **kwargs) -> int:
    """
    Weekly consistency score in [0, 100].

    Accepts a ConsistencyInput or the same fields as keyword arguments.
    Components are normalized by `available_days` (default 7, clamped to
    1..7) so members who joined mid-week are not penalized for days before
    they existed:

        training  0-30  sessions vs ceil(available * 3/7), at least 1
        logging   0-20  days with meals / available
        calories  0-25  loses 1 point per 2% away from target (meals only)
        protein   0-15  0.15 per % of target, capped (meals only)
        water     0-10  days with water / available
    """
    if data is None:
        data = ConsistencyInput(**kwargs)

    available = data.available_days if data.available_days is not None else 7
    available = max(1, min(7, available))

    expected_sessions = max(1, math.ceil(available * TARGET_SESSIONS_PER_WEEK / 7))
    training_ratio = min(1.0, max(0, data.training_sessions) / expected_sessions)
    training_score = training_ratio * TRAINING_MAX

    logging_score = min(LOGGING_MAX, max(0, data.days_with_meals) / available * LOGGING_MAX)

    calorie_score = 0.0
    protein_score = 0.0
    if data.days_with_meals > 0:
        deviation = abs(100 - data.avg_calorie_adherence)
        calorie_score = max(0.0, CALORIE_MAX - deviation * 0.5)
        protein_score = max(0.0, min(PROTEIN_MAX, data.avg_protein_adherence * 0.15))

    water_score = min(WATER_MAX, max(0, data.water_consistency) / available * WATER_MAX)

    total = round_half_up(training_score + logging_score + calorie_score + protein_score + water_score)
    return min(100, max(0, total))


def get_consistency_level(score: int) -> str:
    if score >= 70:
        return "on_track"
    if score >= 40:
        return "needs_attention"
    return "off_track"
