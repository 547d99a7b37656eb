"""ActivityService - 日次活動ログの CRUD"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from mineaction.domain.errors import NotFoundError
from mineaction.domain.models import Activity, Actor, AuditAction, AuditEntityType, to_plain
from mineaction.domain.ports import ActivityRepository, ProjectRepository
from mineaction.services.audit_service import AuditService, compute_changes

logger = logging.getLogger(__name__)


def _describe(activity: Activity) -> str:
    return f"{activity.type.value} / {activity.shift.value} shift / crew {activity.crew}"


class ActivityService:
    """
    Activity は必ず1つの Project に属する。

    削除時に配下の Action は削除しない（カスケードなし）。
    """

    def __init__(
        self,
        repo: ActivityRepository,
        projects: ProjectRepository,
        audit: AuditService,
    ) -> None:
        self._repo = repo
        self._projects = projects
        self._audit = audit

    def create_activity(self, project_id: str, activity: Activity, actor: Actor) -> Activity:
        """
        Raises:
            NotFoundError: 親プロジェクトが存在しない場合
        """
        if self._projects.get(project_id) is None:
            raise NotFoundError("project", project_id)

        created = self._repo.create(
            replace(activity, id="", project_id=project_id, created_by=actor.uid)
        )
        logger.info("Activity created: id=%s, project_id=%s", created.id, project_id)

        self._audit.record_committed(
            AuditEntityType.ACTIVITY,
            AuditAction.CREATE,
            created.id,
            actor,
            details=f"Created activity: {_describe(created)}",
        )
        return created

    def get_activity(self, activity_id: str) -> Activity:
        activity = self._repo.get(activity_id)
        if activity is None:
            raise NotFoundError("activity", activity_id)
        return activity

    def list_by_project(self, project_id: str) -> list[Activity]:
        return self._repo.list_by_project(project_id)

    def list_activities(self) -> list[Activity]:
        return self._repo.list_all()

    def update_activity(self, activity_id: str, fields: dict[str, Any], actor: Actor) -> Activity:
        before = self.get_activity(activity_id)
        changes = compute_changes(to_plain(before), fields)
        self._repo.update(activity_id, fields)
        logger.info("Activity updated: id=%s, fields=%s", activity_id, list(fields))

        self._audit.record_committed(
            AuditEntityType.ACTIVITY,
            AuditAction.UPDATE,
            activity_id,
            actor,
            changes=changes,
            details=f"Updated activity: {_describe(before)}",
        )
        return self.get_activity(activity_id)

    def delete_activity(self, activity_id: str, actor: Actor) -> None:
        before = self.get_activity(activity_id)
        self._repo.delete(activity_id)
        logger.info("Activity deleted: id=%s", activity_id)

        self._audit.record_committed(
            AuditEntityType.ACTIVITY,
            AuditAction.DELETE,
            activity_id,
            actor,
            details=f"Deleted activity: {_describe(before)}",
        )
