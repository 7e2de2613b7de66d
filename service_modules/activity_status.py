"""
Activity status - weekly log aggregation and the on_track / slipping / off_track label.

Status is a display heuristic recomputed from the live log window on every
read; nothing here is persisted.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from .calculations import round_half_up

ON_TRACK = "on_track"
SLIPPING = "slipping"
OFF_TRACK = "off_track"

# Sort order for dashboards: members needing attention first
STATUS_PRIORITY = {OFF_TRACK: 0, SLIPPING: 1, ON_TRACK: 2}

NO_ACTIVITY_DAYS = 999
GOOD_CALORIE_BAND = (70, 130)
ADHERENCE_CAP = 150


@dataclass
class ActivitySignals:
    days_since_activity: int
    days_passed_this_week: int = 7
    days_with_meals: int = 0
    days_with_calories: int = 0
    days_with_good_calories: int = 0
    weekly_training_sessions: int = 0
    consistency_score: int = 0

    @property
    def good_calorie_ratio(self) -> float:
        if self.days_with_calories <= 0:
            return 0.0
        return self.days_with_good_calories / self.days_with_calories


@dataclass(frozen=True)
class StatusRules:
    """
    Thresholds for classify_activity. A None threshold disables that check.

    on_track needs every enabled on_track check to pass; off_track fires when
    any enabled off_track check passes; everything else is slipping.
    """
    recent_activity_days: int = 2
    require_consistent_logging: bool = True
    min_good_calorie_ratio: Optional[float] = 0.5
    min_weekly_sessions: Optional[int] = None
    min_consistency_score: Optional[int] = None

    inactive_days: Optional[int] = 7
    empty_week_after_days: Optional[int] = 3
    low_score_inactive_days: Optional[int] = None
    low_score_threshold: Optional[int] = None


# Coach dashboard and admin coach performance
ADHERENCE_RULES = StatusRules()

# Member dashboard: lightweight variant driven by the consistency score
SCORE_RULES = StatusRules(
    recent_activity_days=2,
    require_consistent_logging=False,
    min_good_calorie_ratio=None,
    min_weekly_sessions=2,
    min_consistency_score=60,
    inactive_days=None,
    empty_week_after_days=None,
    low_score_inactive_days=5,
    low_score_threshold=40,
)


def _is_on_track(signals: ActivitySignals, rules: StatusRules) -> bool:
    if signals.days_since_activity > rules.recent_activity_days:
        return False
    if rules.require_consistent_logging:
        if signals.days_with_meals < max(1, signals.days_passed_this_week - 1):
            return False
    if rules.min_good_calorie_ratio is not None:
        if signals.days_with_calories <= 0 or signals.good_calorie_ratio < rules.min_good_calorie_ratio:
            return False
    if rules.min_weekly_sessions is not None and signals.weekly_training_sessions < rules.min_weekly_sessions:
        return False
    if rules.min_consistency_score is not None and signals.consistency_score < rules.min_consistency_score:
        return False
    return True


def _is_off_track(signals: ActivitySignals, rules: StatusRules) -> bool:
    if rules.inactive_days is not None and signals.days_since_activity >= rules.inactive_days:
        return True
    if rules.empty_week_after_days is not None:
        if signals.days_passed_this_week >= rules.empty_week_after_days and signals.days_with_meals == 0:
            return True
    if rules.low_score_inactive_days is not None and rules.low_score_threshold is not None:
        if (signals.days_since_activity >= rules.low_score_inactive_days
                and signals.consistency_score < rules.low_score_threshold):
            return True
    return False


def classify_activity(signals: ActivitySignals, rules: StatusRules = ADHERENCE_RULES) -> str:
    if _is_on_track(signals, rules):
        return ON_TRACK
    if _is_off_track(signals, rules):
        return OFF_TRACK
    return SLIPPING


# --- AGGREGATION ---

@dataclass
class WeeklySummary:
    training_sessions: int = 0
    days_with_meals: int = 0
    days_with_water: int = 0
    days_with_calories: int = 0
    days_with_good_calories: int = 0
    calorie_adherence: int = 0  # average % of target over days with calories
    protein_adherence: int = 0


def _log_day(log) -> date:
    value = log.date
    return value.date() if isinstance(value, datetime) else value


def summarize_week(logs: Iterable, targets: Dict[str, int]) -> WeeklySummary:
    """
    Group logs by calendar day and aggregate them for scoring.

    Per-day adherence is capped at 150% before averaging so one binge day
    cannot mask the rest of the week.
    """
    by_day: Dict[date, List] = {}
    for log in logs:
        by_day.setdefault(_log_day(log), []).append(log)

    summary = WeeklySummary()
    total_calorie_adherence = 0.0
    total_protein_adherence = 0.0
    target_calories = targets.get("calories") or 0
    target_protein = targets.get("protein") or 0

    for day_logs in by_day.values():
        summary.training_sessions += sum(1 for l in day_logs if l.type == "training")
        if any(l.type == "meal" for l in day_logs):
            summary.days_with_meals += 1
        if any(l.type == "water" for l in day_logs):
            summary.days_with_water += 1

        day_calories = sum(l.estimated_calories or 0 for l in day_logs)
        if day_calories > 0 and target_calories > 0:
            adherence = day_calories / target_calories * 100
            total_calorie_adherence += min(adherence, ADHERENCE_CAP)
            summary.days_with_calories += 1
            if GOOD_CALORIE_BAND[0] <= adherence <= GOOD_CALORIE_BAND[1]:
                summary.days_with_good_calories += 1

        day_protein = sum(l.estimated_protein or 0 for l in day_logs)
        if day_protein > 0 and target_protein > 0:
            total_protein_adherence += min(day_protein / target_protein * 100, ADHERENCE_CAP)

    if summary.days_with_calories > 0:
        summary.calorie_adherence = round_half_up(total_calorie_adherence / summary.days_with_calories)
        summary.protein_adherence = round_half_up(total_protein_adherence / summary.days_with_calories)

    return summary


def calculate_activity_streak(log_dates: Iterable, today: date) -> int:
    """
    Consecutive days with any log, counting back from today.

    A day without logs yet today does not break the streak; it is counted
    from yesterday instead.
    """
    days = {d.date() if isinstance(d, datetime) else d for d in log_dates}
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def days_since(last_activity: Optional[datetime], now: datetime) -> int:
    if last_activity is None:
        return NO_ACTIVITY_DAYS
    return max(0, int((now - last_activity).total_seconds() // 86400))
