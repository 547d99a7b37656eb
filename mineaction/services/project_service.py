"""ProjectService - プロジェクトの CRUD とメンバー管理

users 配列は Project ドキュメントに埋め込まれており、追加・変更・削除は
読み込み → メモリ上で変更 → 配列ごと書き戻し（read-modify-write）で行う。
同時編集時は後勝ちになる（既知の制約。バージョンチェックはしない）。
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from mineaction.domain.errors import NotFoundError
from mineaction.domain.models import (
    Actor,
    AuditAction,
    AuditEntityType,
    Project,
    ProjectRole,
    ProjectUser,
    to_plain,
)
from mineaction.domain.ports import ProjectRepository
from mineaction.services.audit_service import AuditService, compute_changes

logger = logging.getLogger(__name__)


class ProjectService:
    def __init__(self, repo: ProjectRepository, audit: AuditService) -> None:
        self._repo = repo
        self._audit = audit

    def create_project(
        self,
        project: Project,
        actor: Actor,
        users: list[ProjectUser] | None = None,
    ) -> Project:
        """
        プロジェクトを作成する。

        作成者が users に含まれていなければ "Project Manager" として先頭に追加する。
        """
        users = list(users or [])
        if not any(u.id == actor.uid for u in users):
            users.insert(0, ProjectUser(id=actor.uid, role=ProjectRole.PROJECT_MANAGER))

        created = self._repo.create(replace(project, id="", created_by=actor.uid, users=users))
        logger.info("Project created: id=%s, by=%s", created.id, actor.uid)

        self._audit.record_committed(
            AuditEntityType.PROJECT,
            AuditAction.CREATE,
            created.id,
            actor,
            details=f"Created project: {created.name}",
        )
        return created

    def get_project(self, project_id: str) -> Project:
        project = self._repo.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    def list_projects(self) -> list[Project]:
        """全プロジェクトを新しい順で返す"""
        return self._repo.list_all()

    def list_projects_for_user(self, uid: str) -> list[Project]:
        """作成者またはメンバーとして関わるプロジェクト（重複除去・新しい順）"""
        seen: dict[str, Project] = {}
        for project in self._repo.list_by_creator(uid) + self._repo.list_by_member(uid):
            seen.setdefault(project.id, project)
        return sorted(
            seen.values(),
            key=lambda p: p.created_at.timestamp() if p.created_at else 0.0,
            reverse=True,
        )

    def update_project(self, project_id: str, fields: dict[str, Any], actor: Actor) -> Project:
        """
        部分更新。更新前のドキュメントとの差分を監査ログに残す。

        Raises:
            NotFoundError: プロジェクトが存在しない場合
        """
        before = self.get_project(project_id)
        changes = compute_changes(to_plain(before), fields)
        self._repo.update(project_id, fields)
        logger.info("Project updated: id=%s, fields=%s", project_id, list(fields))

        self._audit.record_committed(
            AuditEntityType.PROJECT,
            AuditAction.UPDATE,
            project_id,
            actor,
            changes=changes,
            details=f"Updated project: {fields.get('name', before.name)}",
        )
        return self.get_project(project_id)

    def delete_project(self, project_id: str, actor: Actor) -> None:
        """プロジェクトを削除する（配下の Activity は削除しない）"""
        before = self.get_project(project_id)
        self._repo.delete(project_id)
        logger.info("Project deleted: id=%s", project_id)

        self._audit.record_committed(
            AuditEntityType.PROJECT,
            AuditAction.DELETE,
            project_id,
            actor,
            details=f"Deleted project: {before.name}",
        )

    # ── メンバー管理（users 配列の read-modify-write） ────────────────────────

    def add_user(self, project_id: str, user: ProjectUser, actor: Actor) -> Project:
        before = self.get_project(project_id)
        return self._write_users(before, before.users + [user], actor, f"Added user {user.id}")

    def update_user_role(
        self, project_id: str, user_id: str, role: ProjectRole, actor: Actor
    ) -> Project:
        before = self.get_project(project_id)
        if not any(u.id == user_id for u in before.users):
            raise NotFoundError("project user", user_id)
        users = [replace(u, role=role) if u.id == user_id else u for u in before.users]
        return self._write_users(before, users, actor, f"Changed role of {user_id} to {role.value}")

    def remove_user(self, project_id: str, user_id: str, actor: Actor) -> Project:
        before = self.get_project(project_id)
        users = [u for u in before.users if u.id != user_id]
        return self._write_users(before, users, actor, f"Removed user {user_id}")

    def _write_users(
        self, before: Project, users: list[ProjectUser], actor: Actor, details: str
    ) -> Project:
        changes = compute_changes(to_plain(before), {"users": users})
        self._repo.replace_users(before.id, users)
        logger.info("Project users replaced: id=%s, count=%d", before.id, len(users))

        self._audit.record_committed(
            AuditEntityType.PROJECT,
            AuditAction.UPDATE,
            before.id,
            actor,
            changes=changes,
            details=details,
        )
        return replace(before, users=users)
