"""Services layer - ビジネスロジック"""

from mineaction.services.access_policy import GuardDecision, GuardOutcome, RouteGuard
from mineaction.services.action_service import ActionService, filter_actions, is_overdue
from mineaction.services.activity_service import ActivityService
from mineaction.services.audit_service import AuditService, compute_changes
from mineaction.services.dashboard import DashboardService
from mineaction.services.project_service import ProjectService
from mineaction.services.role_registry import RoleRegistry
from mineaction.services.session import AuthSession, SessionState

__all__ = [
    "AuthSession",
    "SessionState",
    "RoleRegistry",
    "RouteGuard",
    "GuardDecision",
    "GuardOutcome",
    "AuditService",
    "compute_changes",
    "ProjectService",
    "ActivityService",
    "ActionService",
    "filter_actions",
    "is_overdue",
    "DashboardService",
]
