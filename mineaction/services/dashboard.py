"""DashboardService - ダッシュボード用の集計"""

from __future__ import annotations

from datetime import datetime

from mineaction.domain.models import (
    ActionStatus,
    DashboardStats,
    ProjectStatus,
)
from mineaction.services.action_service import ActionService, is_overdue
from mineaction.services.activity_service import ActivityService
from mineaction.services.project_service import ProjectService


class DashboardService:
    """
    ユーザーが関わるプロジェクト・今日の活動・アクションの件数を集計する。

    期限切れ件数は保存ステータスではなく期限日から計算する（is_overdue）。
    日付が欠けたレコードは今日の活動数・期限順の一覧に含めない。
    """

    def __init__(
        self,
        projects: ProjectService,
        activities: ActivityService,
        actions: ActionService,
    ) -> None:
        self._projects = projects
        self._activities = activities
        self._actions = actions

    def stats(self, uid: str, now: datetime) -> DashboardStats:
        projects = self._projects.list_projects_for_user(uid)
        activities = self._activities.list_activities()
        actions = self._actions.list_actions()

        today = now.date()
        upcoming = sorted((a for a in actions if a.due_date is not None), key=lambda a: a.due_date)

        return DashboardStats(
            total_projects=len(projects),
            active_projects=sum(1 for p in projects if p.status is ProjectStatus.ACTIVE),
            today_activities=sum(
                1 for a in activities if a.date is not None and a.date.astimezone(now.tzinfo).date() == today
            ),
            open_actions=sum(1 for a in actions if a.status is not ActionStatus.COMPLETED),
            closed_actions=sum(1 for a in actions if a.status is ActionStatus.COMPLETED),
            overdue_actions=sum(1 for a in actions if is_overdue(a, now)),
            upcoming_actions=upcoming,
        )
