"""
Goal Service - fundraising goals, member voting and contributions.

Lifecycle: draft -> voting -> fundraising -> completed, with cancelled
reachable from any state but completed. Single-option goals skip voting.
Amounts are integer cents.
"""
from typing import List, Optional

from .base import (
    HTTPException, uuid, logging, datetime,
    get_db_session, to_naive_utc,
    MemberORM, GoalORM, GoalOptionORM, GoalVoteORM, GoalContributionORM
)
from .calculations import round_half_up

logger = logging.getLogger("gym_app")

DRAFT = "draft"
VOTING = "voting"
FUNDRAISING = "fundraising"
COMPLETED = "completed"
CANCELLED = "cancelled"

GOAL_STATUSES = (DRAFT, VOTING, FUNDRAISING, COMPLETED, CANCELLED)
MEMBER_VISIBLE_STATUSES = (VOTING, FUNDRAISING, COMPLETED)


# --- STATUS HELPERS ---

def get_goal_status(goal) -> str:
    """
    Goal status is stored and changed only by explicit transitions.

    An expired voting deadline still reports "voting" until the goal is
    closed, either by an admin or lazily by close_expired_voting.
    """
    return goal.status if goal.status in GOAL_STATUSES else DRAFT


def can_vote(goal, now: Optional[datetime] = None) -> bool:
    if goal.status != VOTING or not goal.voting_ends_at:
        return False
    return (now or datetime.utcnow()) <= goal.voting_ends_at


def should_close_voting(goal, now: Optional[datetime] = None) -> bool:
    if goal.status != VOTING or not goal.voting_ends_at:
        return False
    return (now or datetime.utcnow()) > goal.voting_ends_at


def is_single_option_goal(option_count: int) -> bool:
    return option_count == 1


def calculate_progress(current_amount: int, target_amount: int) -> int:
    if target_amount <= 0:
        return 0
    return min(100, round_half_up(current_amount / target_amount * 100))


def calculate_vote_percentage(vote_count: int, total_votes: int) -> int:
    if total_votes <= 0:
        return 0
    return round_half_up(vote_count / total_votes * 100)


def determine_winner(options):
    """Most votes wins; on a tie the option listed first (lowest display_order) wins."""
    if not options:
        return None
    return sorted(options, key=lambda o: (-(o.vote_count or 0), o.display_order or 0))[0]


def _winning_option(goal: GoalORM) -> Optional[GoalOptionORM]:
    return next((o for o in goal.options if o.id == goal.winning_option_id), None)


def _iso(value):
    return value.isoformat() if value else None


def serialize_goal(goal: GoalORM, now: Optional[datetime] = None) -> dict:
    total_votes = sum(o.vote_count or 0 for o in goal.options)
    winner = _winning_option(goal)
    target = winner.target_amount if winner else None
    return {
        "id": goal.id,
        "name": goal.name,
        "description": goal.description,
        "status": get_goal_status(goal),
        "is_visible": goal.is_visible,
        "voting_ends_at": _iso(goal.voting_ends_at),
        "voting_ended_at": _iso(goal.voting_ended_at),
        "can_vote": can_vote(goal, now),
        "winning_option_id": goal.winning_option_id,
        "current_amount": goal.current_amount or 0,
        "target_amount": target,
        "progress": calculate_progress(goal.current_amount or 0, target) if target else 0,
        "completed_at": _iso(goal.completed_at),
        "total_votes": total_votes,
        "options": [{
            "id": o.id,
            "name": o.name,
            "description": o.description,
            "target_amount": o.target_amount,
            "display_order": o.display_order,
            "vote_count": o.vote_count or 0,
            "percentage": calculate_vote_percentage(o.vote_count or 0, total_votes),
        } for o in goal.options],
    }


class GoalService:
    """Service for fundraising goals and voting."""

    def _get_gym_goal(self, db, gym_id: str, goal_id: str) -> GoalORM:
        goal = db.query(GoalORM).filter(GoalORM.id == goal_id).first()
        if not goal:
            raise HTTPException(status_code=404, detail="Goal not found")
        if goal.gym_id != gym_id:
            raise HTTPException(status_code=403, detail="Access denied")
        return goal

    # --- ADMIN ---

    def list_goals(self, gym_id: str, now: Optional[datetime] = None) -> List[dict]:
        self.close_expired_voting(gym_id, now)
        db = get_db_session()
        try:
            goals = db.query(GoalORM).filter(
                GoalORM.gym_id == gym_id
            ).order_by(GoalORM.created_at.desc()).all()
            return [serialize_goal(g, now) for g in goals]
        finally:
            db.close()

    def get_goal(self, gym_id: str, goal_id: str, now: Optional[datetime] = None) -> dict:
        """Goal with options ranked by votes and contribution history."""
        db = get_db_session()
        try:
            goal = self._get_gym_goal(db, gym_id, goal_id)
            data = serialize_goal(goal, now)
            contributions = db.query(GoalContributionORM).filter(
                GoalContributionORM.goal_id == goal_id
            ).order_by(GoalContributionORM.created_at.desc()).all()
            data["contributions"] = [{
                "id": c.id,
                "amount": c.amount,
                "source": c.source,
                "member_name": c.member_name,
                "note": c.note,
                "created_at": _iso(c.created_at),
            } for c in contributions]
        finally:
            db.close()

        data["vote_breakdown"] = self.get_vote_breakdown(goal_id)
        return data

    def create_goal(self, gym_id: str, data: dict, now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        name = (data.get("name") or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Name cannot be empty")

        options = data.get("options") or []
        if not options:
            raise HTTPException(status_code=400, detail="At least one option is required")

        voting_ends_at = to_naive_utc(data.get("voting_ends_at"))
        if voting_ends_at and voting_ends_at <= now:
            raise HTTPException(status_code=400, detail="Voting deadline must be in the future")

        db = get_db_session()
        try:
            goal = GoalORM(
                id=str(uuid.uuid4()),
                gym_id=gym_id,
                name=name,
                description=(data.get("description") or "").strip() or None,
                status=DRAFT,
                is_visible=data.get("is_visible", True),
                voting_ends_at=voting_ends_at,
                current_amount=0,
                created_at=now
            )
            for index, option in enumerate(options):
                goal.options.append(GoalOptionORM(
                    id=str(uuid.uuid4()),
                    name=option["name"],
                    description=option.get("description"),
                    target_amount=option["target_amount"],
                    display_order=index,
                    vote_count=0
                ))
            db.add(goal)
            db.commit()
            db.refresh(goal)
            logger.info(f"Goal {goal.id} created for gym {gym_id} with {len(options)} option(s)")
            return serialize_goal(goal, now)
        except Exception as e:
            db.rollback()
            logger.error(f"Error creating goal: {e}")
            raise HTTPException(status_code=500, detail="Failed to create goal")
        finally:
            db.close()

    def update_goal(self, gym_id: str, goal_id: str, data: dict, now: Optional[datetime] = None) -> dict:
        """Run an action (publish / close_voting / cancel), add a manual contribution, or edit fields."""
        now = now or datetime.utcnow()
        action = data.get("action")

        if action == "close_voting":
            self._ensure_gym_goal(gym_id, goal_id)
            result = self.select_winner(goal_id, now)
            return {"success": True, "action": "voting_closed", "winning_option": result["winning_option"]}

        if action is None and data.get("add_amount"):
            self._ensure_gym_goal(gym_id, goal_id)
            result = self.add_contribution(
                goal_id, data["add_amount"], "manual", note=data.get("add_note") or "Manual entry", now=now
            )
            return {"success": True, "completed": result["completed"]}

        db = get_db_session()
        try:
            goal = self._get_gym_goal(db, gym_id, goal_id)

            if action == "publish":
                self._publish(goal, now)
                result = {"success": True, "action": "published"}

            elif action == "cancel":
                if goal.status == COMPLETED:
                    raise HTTPException(status_code=400, detail="Completed goals cannot be cancelled")
                goal.status = CANCELLED
                result = {"success": True, "action": "cancelled"}

            else:
                self._apply_field_updates(goal, data, now)
                result = {"success": True}

            db.commit()
            db.refresh(goal)
            result["goal"] = serialize_goal(goal, now)
            return result
        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error updating goal {goal_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update goal")
        finally:
            db.close()

    def _ensure_gym_goal(self, gym_id: str, goal_id: str):
        db = get_db_session()
        try:
            self._get_gym_goal(db, gym_id, goal_id)
        finally:
            db.close()

    def _publish(self, goal: GoalORM, now: datetime):
        if goal.status != DRAFT:
            raise HTTPException(status_code=400, detail="Only draft goals can be published")

        if not goal.options:
            raise HTTPException(status_code=400, detail="Goal has no options")

        if is_single_option_goal(len(goal.options)):
            goal.status = FUNDRAISING
            goal.winning_option_id = goal.options[0].id
            return

        if not goal.voting_ends_at:
            raise HTTPException(status_code=400, detail="Voting deadline is required to publish")
        if goal.voting_ends_at <= now:
            raise HTTPException(status_code=400, detail="Voting deadline must be in the future")
        goal.status = VOTING

    def _apply_field_updates(self, goal: GoalORM, data: dict, now: datetime):
        if data.get("name") is not None:
            if not data["name"].strip():
                raise HTTPException(status_code=400, detail="Name cannot be empty")
            goal.name = data["name"].strip()

        if data.get("description") is not None:
            goal.description = data["description"].strip() or None

        if data.get("is_visible") is not None:
            goal.is_visible = bool(data["is_visible"])

        if "voting_ends_at" in data and data["voting_ends_at"] is not None:
            if goal.status not in (DRAFT, VOTING):
                raise HTTPException(
                    status_code=400,
                    detail="Voting deadline can only be changed for drafts and active votes"
                )
            deadline = to_naive_utc(data["voting_ends_at"])
            if deadline <= now:
                raise HTTPException(status_code=400, detail="Voting deadline must be in the future")
            goal.voting_ends_at = deadline

    def delete_goal(self, gym_id: str, goal_id: str) -> dict:
        db = get_db_session()
        try:
            goal = self._get_gym_goal(db, gym_id, goal_id)

            if goal.status != DRAFT:
                raise HTTPException(status_code=400, detail="Only draft goals can be deleted")

            if db.query(GoalVoteORM).filter(GoalVoteORM.goal_id == goal_id).count() > 0:
                raise HTTPException(status_code=400, detail="Goal has votes and cannot be deleted")

            if db.query(GoalContributionORM).filter(GoalContributionORM.goal_id == goal_id).count() > 0:
                raise HTTPException(status_code=400, detail="Goal has contributions and cannot be deleted")

            db.delete(goal)
            db.commit()
            return {"success": True}
        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error deleting goal {goal_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete goal")
        finally:
            db.close()

    # --- VOTING ---

    def select_winner(self, goal_id: str, now: Optional[datetime] = None) -> dict:
        """Close voting: pick the winning option and move the goal to fundraising."""
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            goal = db.query(GoalORM).filter(GoalORM.id == goal_id).with_for_update().first()
            if not goal:
                raise HTTPException(status_code=404, detail="Goal not found")
            if goal.status != VOTING:
                raise HTTPException(status_code=400, detail="Voting is not active")
            if not goal.options:
                raise HTTPException(status_code=400, detail="Goal has no options")

            winner = determine_winner(goal.options)
            goal.status = FUNDRAISING
            goal.winning_option_id = winner.id
            goal.voting_ended_at = now
            db.commit()

            logger.info(f"Voting closed for goal {goal_id}, winner {winner.id} with {winner.vote_count} votes")
            return {
                "success": True,
                "winning_option": {
                    "id": winner.id,
                    "name": winner.name,
                    "vote_count": winner.vote_count,
                    "target_amount": winner.target_amount,
                }
            }
        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error selecting winner for goal {goal_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to close voting")
        finally:
            db.close()

    def close_expired_voting(self, gym_id: str, now: Optional[datetime] = None) -> int:
        """Close every voting goal of the gym whose deadline has passed. Never raises."""
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            expired_ids = [g.id for g in db.query(GoalORM.id).filter(
                GoalORM.gym_id == gym_id,
                GoalORM.status == VOTING,
                GoalORM.voting_ends_at < now
            ).all()]
        except Exception as e:
            logger.error(f"Error finding expired votes for gym {gym_id}: {e}")
            return 0
        finally:
            db.close()

        closed = 0
        for goal_id in expired_ids:
            try:
                self.select_winner(goal_id, now)
                closed += 1
            except HTTPException as e:
                logger.warning(f"Could not close voting for goal {goal_id}: {e.detail}")
        return closed

    def cast_vote(self, goal_id: str, member_id: str, option_id: str,
                  now: Optional[datetime] = None) -> dict:
        """Cast a vote or move an existing one to another option."""
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            goal = db.query(GoalORM).filter(GoalORM.id == goal_id).first()
            if not goal:
                raise HTTPException(status_code=404, detail="Goal not found")

            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member or member.gym_id != goal.gym_id:
                raise HTTPException(status_code=403, detail="Access denied")

            if goal.status != VOTING:
                raise HTTPException(status_code=400, detail="Voting is not active")

            if goal.voting_ends_at and now > goal.voting_ends_at:
                raise HTTPException(status_code=400, detail="Voting has ended")

            option = db.query(GoalOptionORM).filter(
                GoalOptionORM.id == option_id,
                GoalOptionORM.goal_id == goal_id
            ).first()
            if not option:
                raise HTTPException(status_code=400, detail="Invalid option")

            existing = db.query(GoalVoteORM).filter(
                GoalVoteORM.goal_id == goal_id,
                GoalVoteORM.member_id == member_id
            ).with_for_update().first()

            if existing and existing.option_id == option_id:
                return {"success": True, "changed": False,
                        "previous_option_id": option_id, "new_option_id": option_id}

            previous_option_id = None
            if existing:
                previous_option_id = existing.option_id
                db.query(GoalOptionORM).filter(GoalOptionORM.id == previous_option_id).update(
                    {GoalOptionORM.vote_count: GoalOptionORM.vote_count - 1}, synchronize_session=False
                )
                existing.option_id = option_id
                existing.updated_at = now
            else:
                db.add(GoalVoteORM(
                    id=str(uuid.uuid4()),
                    goal_id=goal_id,
                    member_id=member_id,
                    option_id=option_id,
                    created_at=now,
                    updated_at=now
                ))

            db.query(GoalOptionORM).filter(GoalOptionORM.id == option_id).update(
                {GoalOptionORM.vote_count: GoalOptionORM.vote_count + 1}, synchronize_session=False
            )
            db.commit()
            return {"success": True, "changed": True,
                    "previous_option_id": previous_option_id, "new_option_id": option_id}
        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error casting vote on goal {goal_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to cast vote")
        finally:
            db.close()

    def get_member_vote(self, goal_id: str, member_id: str) -> Optional[str]:
        db = get_db_session()
        try:
            vote = db.query(GoalVoteORM).filter(
                GoalVoteORM.goal_id == goal_id,
                GoalVoteORM.member_id == member_id
            ).first()
            return vote.option_id if vote else None
        finally:
            db.close()

    def get_vote_breakdown(self, goal_id: str) -> dict:
        db = get_db_session()
        try:
            options = db.query(GoalOptionORM).filter(
                GoalOptionORM.goal_id == goal_id
            ).order_by(GoalOptionORM.vote_count.desc(), GoalOptionORM.display_order.asc()).all()

            total_votes = sum(o.vote_count or 0 for o in options)
            return {
                "total_votes": total_votes,
                "options": [{
                    "id": o.id,
                    "name": o.name,
                    "vote_count": o.vote_count or 0,
                    "percentage": calculate_vote_percentage(o.vote_count or 0, total_votes)
                } for o in options]
            }
        finally:
            db.close()

    # --- CONTRIBUTIONS ---

    def add_contribution(self, goal_id: str, amount: int, source: str,
                         member_id: Optional[str] = None, member_name: Optional[str] = None,
                         note: Optional[str] = None, now: Optional[datetime] = None) -> dict:
        """Record a contribution; the goal completes once the winning option's target is reached."""
        now = now or datetime.utcnow()
        if amount <= 0:
            raise HTTPException(status_code=400, detail="Amount must be positive")

        db = get_db_session()
        try:
            goal = db.query(GoalORM).filter(GoalORM.id == goal_id).with_for_update().first()
            if not goal:
                raise HTTPException(status_code=404, detail="Goal not found")
            if goal.status != FUNDRAISING:
                raise HTTPException(status_code=400, detail="Contributions are only possible while fundraising")

            winner = _winning_option(goal)
            if not winner:
                raise HTTPException(status_code=400, detail="Winning option not found")

            db.add(GoalContributionORM(
                id=str(uuid.uuid4()),
                goal_id=goal_id,
                amount=amount,
                source=source,
                member_id=member_id,
                member_name=member_name,
                note=note,
                created_at=now
            ))

            goal.current_amount = (goal.current_amount or 0) + amount
            completed = goal.current_amount >= winner.target_amount
            if completed:
                goal.status = COMPLETED
                goal.completed_at = now
                logger.info(f"Goal {goal_id} reached its target of {winner.target_amount}")

            db.commit()
            return {"success": True, "completed": completed, "current_amount": goal.current_amount}
        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error adding contribution to goal {goal_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to add contribution")
        finally:
            db.close()

    # --- MEMBER ---

    def list_member_goals(self, member_id: str, now: Optional[datetime] = None) -> List[dict]:
        now = now or datetime.utcnow()
        db = get_db_session()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")
            gym_id = member.gym_id
        finally:
            db.close()

        self.close_expired_voting(gym_id, now)

        db = get_db_session()
        try:
            goals = db.query(GoalORM).filter(
                GoalORM.gym_id == gym_id,
                GoalORM.is_visible == True,
                GoalORM.status.in_(MEMBER_VISIBLE_STATUSES)
            ).order_by(GoalORM.created_at.desc()).all()

            votes = {v.goal_id: v.option_id for v in db.query(GoalVoteORM).filter(
                GoalVoteORM.member_id == member_id
            ).all()}

            result = []
            for goal in goals:
                data = serialize_goal(goal, now)
                data["my_vote"] = votes.get(goal.id)
                result.append(data)
            return result
        finally:
            db.close()


# Singleton instance
goal_service = GoalService()


def get_goal_service() -> GoalService:
    """Dependency injection helper."""
    return goal_service
