"""
Services package - organized service modules.
"""
from .base import *
from .auth_service import AuthService, auth_service, get_auth_service
from .points_service import PointsService, points_service, get_points_service
from .challenge_service import ChallengeService, challenge_service, get_challenge_service
from .goal_service import GoalService, goal_service, get_goal_service
from .checkin_service import CheckinService, checkin_service, get_checkin_service
from .log_service import LogService, log_service, get_log_service
from .dashboard_service import DashboardService, dashboard_service, get_dashboard_service

__all__ = [
    'AuthService',
    'auth_service',
    'get_auth_service',
    'PointsService',
    'points_service',
    'get_points_service',
    'ChallengeService',
    'challenge_service',
    'get_challenge_service',
    'GoalService',
    'goal_service',
    'get_goal_service',
    'CheckinService',
    'checkin_service',
    'get_checkin_service',
    'LogService',
    'log_service',
    'get_log_service',
    'DashboardService',
    'dashboard_service',
    'get_dashboard_service',
]
