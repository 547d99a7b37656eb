"""ダッシュボード API ルート（Admin, Supervisor）

GET /api/dashboard → 200 { total_projects, active_projects, ..., upcoming_actions }
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mineaction.config import AppConfig
from mineaction.entrypoints.api.deps import (
    MANAGER_ROLES,
    get_config,
    get_dashboard_service,
    require_roles,
)
from mineaction.entrypoints.api.routes.actions import ActionResponse, action_response
from mineaction.services.dashboard import DashboardService
from mineaction.services.session import AuthSession

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

_UPCOMING_LIMIT = 5


class DashboardResponse(BaseModel):
    total_projects: int
    active_projects: int
    today_activities: int
    open_actions: int
    closed_actions: int
    overdue_actions: int
    upcoming_actions: list[ActionResponse]


@router.get("", response_model=DashboardResponse)
def get_dashboard(
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    service: DashboardService = Depends(get_dashboard_service),
    config: AppConfig = Depends(get_config),
) -> DashboardResponse:
    now = datetime.now(ZoneInfo(config.app_timezone))
    stats = service.stats(session.identity.uid, now)
    return DashboardResponse(
        total_projects=stats.total_projects,
        active_projects=stats.active_projects,
        today_activities=stats.today_activities,
        open_actions=stats.open_actions,
        closed_actions=stats.closed_actions,
        overdue_actions=stats.overdue_actions,
        upcoming_actions=[action_response(a, now) for a in stats.upcoming_actions[:_UPCOMING_LIMIT]],
    )
