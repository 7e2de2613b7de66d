from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from datetime import datetime

# --- AUTH ---
class LoginRequest(BaseModel):
    username: str
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: str
    gym_id: Optional[str] = None

# --- LOGGING ---
class DailyLogCreate(BaseModel):
    type: Literal["meal", "training", "water"]
    meal_size: Optional[Literal["small", "medium", "large"]] = None
    estimated_calories: Optional[int] = Field(default=None, ge=0)
    estimated_protein: Optional[int] = Field(default=None, ge=0)
    estimated_carbs: Optional[int] = Field(default=None, ge=0)
    estimated_fats: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None

# --- CHECK-INS ---
class WeeklyCheckinCreate(BaseModel):
    weight: float = Field(gt=0)
    feeling: int = Field(ge=1, le=4)

class GymCheckinRequest(BaseModel):
    secret: Optional[str] = None

# --- CHALLENGES ---
class ChallengeCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    reward_description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    join_deadline_days: int = Field(default=7, ge=0)
    winner_count: int = Field(default=3, ge=1)
    points_per_meal: int = Field(default=5, ge=0)
    points_per_training: int = Field(default=15, ge=0)
    points_per_water: int = Field(default=1, ge=0)
    points_per_checkin: int = Field(default=25, ge=0)
    streak_bonus: int = Field(default=5, ge=0)
    exclude_top_n: int = Field(default=3, ge=0)
    winner_cooldown_months: int = Field(default=3, ge=0)

class ChallengeUpdate(BaseModel):
    action: Optional[Literal["publish", "end"]] = None
    name: Optional[str] = None
    description: Optional[str] = None
    reward_description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    join_deadline_days: Optional[int] = Field(default=None, ge=0)
    winner_count: Optional[int] = Field(default=None, ge=1)
    points_per_meal: Optional[int] = Field(default=None, ge=0)
    points_per_training: Optional[int] = Field(default=None, ge=0)
    points_per_water: Optional[int] = Field(default=None, ge=0)
    points_per_checkin: Optional[int] = Field(default=None, ge=0)
    streak_bonus: Optional[int] = Field(default=None, ge=0)
    exclude_top_n: Optional[int] = Field(default=None, ge=0)
    winner_cooldown_months: Optional[int] = Field(default=None, ge=0)

# --- GOALS ---
class GoalOptionCreate(BaseModel):
    name: str
    description: Optional[str] = None
    target_amount: int = Field(gt=0)  # cents

class GoalCreate(BaseModel):
    name: str
    description: Optional[str] = None
    is_visible: bool = True
    voting_ends_at: Optional[datetime] = None
    options: List[GoalOptionCreate] = Field(min_length=1)

class GoalUpdate(BaseModel):
    action: Optional[Literal["publish", "close_voting", "cancel"]] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_visible: Optional[bool] = None
    voting_ends_at: Optional[datetime] = None
    add_amount: Optional[int] = Field(default=None, gt=0)  # cents
    add_note: Optional[str] = None

class VoteRequest(BaseModel):
    option_id: str

# --- ADMIN ---
class CheckinSecretResponse(BaseModel):
    enabled: bool
    today_code: Optional[str] = None
    rotates_in: Optional[str] = None
