"""Firestore Repository Adapter

各 Repository ABC の Firestore 実装。

Firestore コレクション構造:
  users/{uid}              ← ユーザーレコード（role を含む）
  roles/{roleId}           ← カスタムロール（組み込みロールは保存しない）
  projects/{projectId}     ← プロジェクト（users 配列を埋め込み、member_ids は検索用）
  activities/{activityId}  ← 日次活動ログ（project_id で親を参照）
  actions/{actionId}       ← アクション（comments / evidence 配列を埋め込み）
  audit_logs/{logId}       ← 監査ログ（追記のみ）

created_at / updated_at / timestamp は全て SERVER_TIMESTAMP で採番する。
埋め込み配列の要素だけはサーバータイムスタンプが使えないため、
サービス層が付けた created_at をそのまま保存する。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, time, timezone
from typing import Any

from google.api_core import exceptions as gexc
from google.cloud import firestore

from mineaction.domain.errors import NotFoundError, WriteFailedError
from mineaction.domain.models import (
    Action,
    ActionComment,
    ActionEvidence,
    ActionPriority,
    ActionStatus,
    Activity,
    ActivityType,
    AuditAction,
    AuditEntityType,
    AuditLog,
    EvidenceType,
    FieldChange,
    Project,
    ProjectRole,
    ProjectStatus,
    ProjectType,
    ProjectUser,
    RoleDefinition,
    ShiftType,
    UserRecord,
    to_plain,
)
from mineaction.domain.ports import (
    ActionRepository,
    ActivityRepository,
    AuditLogRepository,
    ProjectRepository,
    RoleRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

_USERS = "users"
_ROLES = "roles"
_PROJECTS = "projects"
_ACTIVITIES = "activities"
_ACTIONS = "actions"
_AUDIT_LOGS = "audit_logs"


@contextmanager
def _translate_errors(kind: str, entity_id: str) -> Iterator[None]:
    """google.api_core の例外をドメイン例外に変換する（リトライはしない）"""
    try:
        yield
    except gexc.NotFound as e:
        raise NotFoundError(kind, entity_id) from e
    except gexc.GoogleAPICallError as e:
        logger.exception("Firestore write failed: kind=%s, id=%s", kind, entity_id)
        raise WriteFailedError(f"Failed to write {kind} {entity_id}: {e}") from e


def _to_datetime(value: Any) -> datetime | None:
    """Firestore の Timestamp / ISO 文字列 / date を datetime に正規化する"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _plain_fields(fields: dict[str, Any]) -> dict[str, Any]:
    update = {k: to_plain(v) for k, v in fields.items()}
    update["updated_at"] = firestore.SERVER_TIMESTAMP
    return update


class FirestoreUserRepository(UserRepository):
    """users/{uid} を管理する"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def get_user(self, uid: str) -> UserRecord | None:
        snap = self._db.collection(_USERS).document(uid).get()
        if not snap.exists:
            return None
        return self._dict_to_user(uid, snap.to_dict() or {})

    def create_user(self, record: UserRecord) -> None:
        with _translate_errors("user", record.uid):
            self._db.collection(_USERS).document(record.uid).set(
                {
                    "email": record.email,
                    "display_name": record.display_name,
                    "photo_url": record.photo_url,
                    "role": record.role,
                    "created_at": firestore.SERVER_TIMESTAMP,
                }
            )
        logger.info("Created user: uid=%s", record.uid)

    def update_role(self, uid: str, role: str) -> None:
        with _translate_errors("user", uid):
            self._db.collection(_USERS).document(uid).update(
                {"role": role, "updated_at": firestore.SERVER_TIMESTAMP}
            )
        logger.info("Updated user role: uid=%s, role=%s", uid, role)

    def list_users(self) -> list[UserRecord]:
        snaps = self._db.collection(_USERS).stream()
        return [self._dict_to_user(snap.id, snap.to_dict() or {}) for snap in snaps]

    @staticmethod
    def _dict_to_user(uid: str, data: dict) -> UserRecord:
        return UserRecord(
            uid=uid,
            email=data.get("email"),
            display_name=data.get("display_name"),
            photo_url=data.get("photo_url"),
            role=data.get("role"),
            created_at=_to_datetime(data.get("created_at")),
        )


class FirestoreRoleRepository(RoleRepository):
    """roles/{roleId}（カスタムロールのみ）"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def list_roles(self) -> list[RoleDefinition]:
        snaps = self._db.collection(_ROLES).stream()
        return [self._dict_to_role(snap.id, snap.to_dict() or {}) for snap in snaps]

    def find_by_name(self, name: str) -> RoleDefinition | None:
        snaps = self._db.collection(_ROLES).where("name", "==", name).limit(1).stream()
        for snap in snaps:
            return self._dict_to_role(snap.id, snap.to_dict() or {})
        return None

    def create_role(self, name: str, description: str, routes: list[str]) -> RoleDefinition:
        ref = self._db.collection(_ROLES).document()
        with _translate_errors("role", ref.id):
            ref.set(
                {
                    "name": name,
                    "description": description,
                    "routes": list(routes),
                    "created_at": firestore.SERVER_TIMESTAMP,
                }
            )
        logger.info("Created role: id=%s, name=%s", ref.id, name)
        return RoleDefinition(id=ref.id, name=name, description=description, routes=tuple(routes))

    def update_routes(self, role_id: str, routes: list[str]) -> None:
        with _translate_errors("role", role_id):
            self._db.collection(_ROLES).document(role_id).update(
                {"routes": list(routes), "updated_at": firestore.SERVER_TIMESTAMP}
            )
        logger.info("Updated role routes: id=%s, count=%d", role_id, len(routes))

    @staticmethod
    def _dict_to_role(role_id: str, data: dict) -> RoleDefinition:
        return RoleDefinition(
            id=role_id,
            name=data.get("name") or "",
            description=data.get("description") or "",
            routes=tuple(data.get("routes") or ()),
        )


class FirestoreProjectRepository(ProjectRepository):
    """
    projects/{projectId}

    users 配列とは別に member_ids（UID の配列）を保持し、
    array_contains クエリでメンバーとして参加しているプロジェクトを引く。
    """

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def create(self, project: Project) -> Project:
        ref = self._db.collection(_PROJECTS).document()
        with _translate_errors("project", ref.id):
            ref.set(self._project_to_dict(project))
        logger.info("Created project: id=%s", ref.id)
        return self._dict_to_project(ref.id, ref.get().to_dict() or {})

    def get(self, project_id: str) -> Project | None:
        snap = self._db.collection(_PROJECTS).document(project_id).get()
        if not snap.exists:
            return None
        return self._dict_to_project(project_id, snap.to_dict() or {})

    def list_all(self) -> list[Project]:
        snaps = (
            self._db.collection(_PROJECTS)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .stream()
        )
        return [self._dict_to_project(snap.id, snap.to_dict() or {}) for snap in snaps]

    def list_by_creator(self, uid: str) -> list[Project]:
        snaps = (
            self._db.collection(_PROJECTS)
            .where("created_by", "==", uid)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .stream()
        )
        return [self._dict_to_project(snap.id, snap.to_dict() or {}) for snap in snaps]

    def list_by_member(self, uid: str) -> list[Project]:
        snaps = (
            self._db.collection(_PROJECTS)
            .where("member_ids", "array_contains", uid)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .stream()
        )
        return [self._dict_to_project(snap.id, snap.to_dict() or {}) for snap in snaps]

    def update(self, project_id: str, fields: dict[str, Any]) -> None:
        update = _plain_fields(fields)
        if "users" in fields:
            update["member_ids"] = [u.id for u in fields["users"]]
        with _translate_errors("project", project_id):
            self._db.collection(_PROJECTS).document(project_id).update(update)
        logger.info("Updated project: id=%s, fields=%s", project_id, list(fields))

    def replace_users(self, project_id: str, users: list[ProjectUser]) -> None:
        with _translate_errors("project", project_id):
            self._db.collection(_PROJECTS).document(project_id).update(
                {
                    "users": to_plain(users),
                    "member_ids": [u.id for u in users],
                    "updated_at": firestore.SERVER_TIMESTAMP,
                }
            )
        logger.info("Replaced project users: id=%s, count=%d", project_id, len(users))

    def delete(self, project_id: str) -> None:
        with _translate_errors("project", project_id):
            self._db.collection(_PROJECTS).document(project_id).delete()
        logger.info("Deleted project: id=%s", project_id)

    # ── 変換ヘルパー ──────────────────────────────────────────────────────────

    @staticmethod
    def _project_to_dict(project: Project) -> dict:
        return {
            "name": project.name,
            "description": project.description,
            "type": project.type.value,
            "location": project.location,
            "start_date": project.start_date,
            "end_date": project.end_date,
            "status": project.status.value,
            "created_by": project.created_by,
            "users": to_plain(project.users),
            "member_ids": [u.id for u in project.users],
            "created_at": firestore.SERVER_TIMESTAMP,
            "updated_at": firestore.SERVER_TIMESTAMP,
        }

    @staticmethod
    def _dict_to_project(project_id: str, data: dict) -> Project:
        return Project(
            id=project_id,
            name=data.get("name") or "",
            description=data.get("description") or "",
            type=ProjectType(data.get("type", ProjectType.OTHER.value)),
            location=data.get("location") or "",
            start_date=_to_datetime(data.get("start_date")),
            end_date=_to_datetime(data.get("end_date")),
            status=ProjectStatus(data.get("status", ProjectStatus.PLANNING.value)),
            created_by=data.get("created_by") or "",
            created_at=_to_datetime(data.get("created_at")),
            updated_at=_to_datetime(data.get("updated_at")),
            users=[
                ProjectUser(
                    id=u.get("id") or "",
                    role=ProjectRole(u.get("role", ProjectRole.TEAM_MEMBER.value)),
                    email=u.get("email"),
                    display_name=u.get("display_name"),
                    photo_url=u.get("photo_url"),
                )
                for u in data.get("users") or []
            ],
        )


class FirestoreActivityRepository(ActivityRepository):
    """activities/{activityId}"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def create(self, activity: Activity) -> Activity:
        ref = self._db.collection(_ACTIVITIES).document()
        with _translate_errors("activity", ref.id):
            ref.set(
                {
                    "project_id": activity.project_id,
                    "date": activity.date,
                    "type": activity.type.value,
                    "shift": activity.shift.value,
                    "crew": activity.crew,
                    "remarks": activity.remarks,
                    "created_by": activity.created_by,
                    "created_at": firestore.SERVER_TIMESTAMP,
                    "updated_at": firestore.SERVER_TIMESTAMP,
                }
            )
        logger.info("Created activity: id=%s, project_id=%s", ref.id, activity.project_id)
        return self._dict_to_activity(ref.id, ref.get().to_dict() or {})

    def get(self, activity_id: str) -> Activity | None:
        snap = self._db.collection(_ACTIVITIES).document(activity_id).get()
        if not snap.exists:
            return None
        return self._dict_to_activity(activity_id, snap.to_dict() or {})

    def list_by_project(self, project_id: str) -> list[Activity]:
        snaps = (
            self._db.collection(_ACTIVITIES)
            .where("project_id", "==", project_id)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .stream()
        )
        return [self._dict_to_activity(snap.id, snap.to_dict() or {}) for snap in snaps]

    def list_all(self) -> list[Activity]:
        snaps = (
            self._db.collection(_ACTIVITIES)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .stream()
        )
        return [self._dict_to_activity(snap.id, snap.to_dict() or {}) for snap in snaps]

    def update(self, activity_id: str, fields: dict[str, Any]) -> None:
        with _translate_errors("activity", activity_id):
            self._db.collection(_ACTIVITIES).document(activity_id).update(_plain_fields(fields))
        logger.info("Updated activity: id=%s, fields=%s", activity_id, list(fields))

    def delete(self, activity_id: str) -> None:
        with _translate_errors("activity", activity_id):
            self._db.collection(_ACTIVITIES).document(activity_id).delete()
        logger.info("Deleted activity: id=%s", activity_id)

    @staticmethod
    def _dict_to_activity(activity_id: str, data: dict) -> Activity:
        return Activity(
            id=activity_id,
            project_id=data.get("project_id") or "",
            date=_to_datetime(data.get("date")),
            type=ActivityType(data.get("type", ActivityType.OTHER.value)),
            shift=ShiftType(data.get("shift", ShiftType.MORNING.value)),
            crew=data.get("crew") or "",
            remarks=data.get("remarks"),
            created_by=data.get("created_by") or "",
            created_at=_to_datetime(data.get("created_at")),
            updated_at=_to_datetime(data.get("updated_at")),
        )


class FirestoreActionRepository(ActionRepository):
    """actions/{actionId}（comments / evidence は配列ごと書き換える）"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def create(self, action: Action) -> Action:
        ref = self._db.collection(_ACTIONS).document()
        with _translate_errors("action", ref.id):
            ref.set(
                {
                    "activity_id": action.activity_id,
                    "issue": action.issue,
                    "responsible_person": action.responsible_person,
                    "due_date": action.due_date,
                    "priority": action.priority.value,
                    "status": action.status.value,
                    "comments": to_plain(action.comments),
                    "evidence": to_plain(action.evidence),
                    "created_by": action.created_by,
                    "created_at": firestore.SERVER_TIMESTAMP,
                    "updated_at": firestore.SERVER_TIMESTAMP,
                }
            )
        logger.info("Created action: id=%s, activity_id=%s", ref.id, action.activity_id)
        return self._dict_to_action(ref.id, ref.get().to_dict() or {})

    def get(self, action_id: str) -> Action | None:
        snap = self._db.collection(_ACTIONS).document(action_id).get()
        if not snap.exists:
            return None
        return self._dict_to_action(action_id, snap.to_dict() or {})

    def list_by_activity(self, activity_id: str) -> list[Action]:
        snaps = (
            self._db.collection(_ACTIONS)
            .where("activity_id", "==", activity_id)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .stream()
        )
        return [self._dict_to_action(snap.id, snap.to_dict() or {}) for snap in snaps]

    def list_all(self) -> list[Action]:
        snaps = (
            self._db.collection(_ACTIONS)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .stream()
        )
        return [self._dict_to_action(snap.id, snap.to_dict() or {}) for snap in snaps]

    def update(self, action_id: str, fields: dict[str, Any]) -> None:
        with _translate_errors("action", action_id):
            self._db.collection(_ACTIONS).document(action_id).update(_plain_fields(fields))
        logger.info("Updated action: id=%s, fields=%s", action_id, list(fields))

    def replace_comments(self, action_id: str, comments: list[ActionComment]) -> None:
        self.update(action_id, {"comments": comments})

    def replace_evidence(self, action_id: str, evidence: list[ActionEvidence]) -> None:
        self.update(action_id, {"evidence": evidence})

    def delete(self, action_id: str) -> None:
        with _translate_errors("action", action_id):
            self._db.collection(_ACTIONS).document(action_id).delete()
        logger.info("Deleted action: id=%s", action_id)

    @staticmethod
    def _dict_to_action(action_id: str, data: dict) -> Action:
        return Action(
            id=action_id,
            activity_id=data.get("activity_id") or "",
            issue=data.get("issue") or "",
            responsible_person=data.get("responsible_person") or "",
            due_date=_to_datetime(data.get("due_date")),
            priority=ActionPriority(data.get("priority", ActionPriority.MEDIUM.value)),
            status=ActionStatus(data.get("status", ActionStatus.PENDING.value)),
            created_by=data.get("created_by") or "",
            comments=[
                ActionComment(
                    id=c.get("id") or "",
                    content=c.get("content") or "",
                    created_by=c.get("created_by") or "",
                    created_at=_to_datetime(c.get("created_at")),
                )
                for c in data.get("comments") or []
            ],
            evidence=[
                ActionEvidence(
                    id=e.get("id") or "",
                    type=EvidenceType(e.get("type", EvidenceType.FILE.value)),
                    url=e.get("url") or "",
                    filename=e.get("filename") or "",
                    created_by=e.get("created_by") or "",
                    created_at=_to_datetime(e.get("created_at")),
                )
                for e in data.get("evidence") or []
            ],
            created_at=_to_datetime(data.get("created_at")),
            updated_at=_to_datetime(data.get("updated_at")),
        )


class FirestoreAuditLogRepository(AuditLogRepository):
    """audit_logs/{logId}（追記のみ。更新・削除メソッドは持たない）"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def append(self, entry: AuditLog) -> str:
        ref = self._db.collection(_AUDIT_LOGS).document()
        with _translate_errors("audit log", ref.id):
            ref.set(
                {
                    "type": entry.type.value,
                    "action": entry.action.value,
                    "entity_id": entry.entity_id,
                    "user_id": entry.user_id,
                    "user_name": entry.user_name,
                    "timestamp": firestore.SERVER_TIMESTAMP,
                    "changes": to_plain(entry.changes) if entry.changes is not None else None,
                    "details": entry.details,
                }
            )
        return ref.id

    def list_logs(
        self,
        type: str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditLog]:
        query = self._db.collection(_AUDIT_LOGS)
        if type:
            query = query.where("type", "==", type)
        if entity_id:
            query = query.where("entity_id", "==", entity_id)
        if user_id:
            query = query.where("user_id", "==", user_id)
        if start is not None:
            query = query.where("timestamp", ">=", start)
        if end is not None:
            query = query.where("timestamp", "<", end)
        query = query.order_by("timestamp", direction=firestore.Query.DESCENDING)
        if limit:
            query = query.limit(limit)

        return [self._dict_to_log(snap.id, snap.to_dict() or {}) for snap in query.stream()]

    @staticmethod
    def _dict_to_log(log_id: str, data: dict) -> AuditLog:
        changes = data.get("changes")
        return AuditLog(
            id=log_id,
            type=AuditEntityType(data.get("type")),
            action=AuditAction(data.get("action")),
            entity_id=data.get("entity_id") or "",
            user_id=data.get("user_id") or "",
            user_name=data.get("user_name") or "",
            timestamp=_to_datetime(data.get("timestamp")),
            changes=(
                [
                    FieldChange(
                        field=c.get("field") or "",
                        old_value=c.get("old_value"),
                        new_value=c.get("new_value"),
                    )
                    for c in changes
                ]
                if changes is not None
                else None
            ),
            details=data.get("details"),
        )
