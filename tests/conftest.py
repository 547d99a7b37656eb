"""共通テストフィクスチャ

全テストから利用可能なモックオブジェクト・インメモリ実装・サンプルデータを提供。

モックの作成:
- MagicMock(spec=ABC) でABCのメソッドシグネチャを保持
- 状態を持つ検証（差分・順序・配列追記）にはインメモリ実装を使う
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from mineaction.config import AppConfig
from mineaction.domain.errors import AuthFailure, NotFoundError
from mineaction.domain.models import (
    Action,
    ActionComment,
    ActionEvidence,
    ActionPriority,
    ActionStatus,
    Activity,
    ActivityType,
    AuditLog,
    Identity,
    Project,
    ProjectStatus,
    ProjectType,
    ProjectUser,
    RoleDefinition,
    ShiftType,
    UserRecord,
)
from mineaction.domain.ports import (
    ActionRepository,
    ActivityRepository,
    AuditLogRepository,
    BlobStorage,
    IdentityProvider,
    ProjectRepository,
    RoleRepository,
    SessionListener,
    UserRepository,
)
from mineaction.entrypoints.api.app import app
from mineaction.entrypoints.api.deps import (
    get_action_service,
    get_activity_service,
    get_audit_service,
    get_config,
    get_dashboard_service,
    get_project_service,
    get_session_factory,
    get_user_repo,
)
from mineaction.services.action_service import ActionService
from mineaction.services.activity_service import ActivityService
from mineaction.services.audit_service import AuditService
from mineaction.services.dashboard import DashboardService
from mineaction.services.project_service import ProjectService
from mineaction.services.role_registry import RoleRegistry
from mineaction.services.session import AuthSession

# ========== 時計 ==========


class TickClock:
    """呼ぶたびに1秒進む時計（作成順 = created_at 順にするため）"""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


# ========== インメモリ実装 ==========


class FakeIdentityProvider(IdentityProvider):
    """トークン文字列 → Identity の対応表で sign_in を模倣する"""

    def __init__(self, tokens: dict[str, Identity] | None = None) -> None:
        self.tokens = dict(tokens or {})
        self.listeners: list[SessionListener] = []
        self.signed_out: list[str] = []
        self.sign_out_error: Exception | None = None

    def sign_in(self, credential: str) -> Identity:
        if credential not in self.tokens:
            raise AuthFailure("invalid token")
        identity = self.tokens[credential]
        for listener in list(self.listeners):
            listener(identity)
        return identity

    def sign_out(self, uid: str) -> None:
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.signed_out.append(uid)
        for listener in list(self.listeners):
            listener(None)

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        self.listeners.append(callback)
        return lambda: self.listeners.remove(callback)


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self.records: dict[str, UserRecord] = {}

    def get_user(self, uid: str) -> UserRecord | None:
        return self.records.get(uid)

    def create_user(self, record: UserRecord) -> None:
        self.records[record.uid] = record

    def update_role(self, uid: str, role: str) -> None:
        if uid not in self.records:
            raise NotFoundError("user", uid)
        self.records[uid] = replace(self.records[uid], role=role)

    def list_users(self) -> list[UserRecord]:
        return list(self.records.values())


class InMemoryRoleRepository(RoleRepository):
    def __init__(self) -> None:
        self.roles: list[RoleDefinition] = []

    def list_roles(self) -> list[RoleDefinition]:
        return list(self.roles)

    def find_by_name(self, name: str) -> RoleDefinition | None:
        return next((r for r in self.roles if r.name == name), None)

    def create_role(self, name: str, description: str, routes: list[str]) -> RoleDefinition:
        role = RoleDefinition(
            id=f"role-{len(self.roles) + 1}",
            name=name,
            description=description,
            routes=tuple(routes),
        )
        self.roles.append(role)
        return role

    def update_routes(self, role_id: str, routes: list[str]) -> None:
        self.roles = [replace(r, routes=tuple(routes)) if r.id == role_id else r for r in self.roles]


class _InMemoryStore:
    """id 採番・タイムスタンプ付与・降順一覧の共通部分"""

    prefix = "doc"

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock
        self.items: dict[str, Any] = {}
        self.update_calls: list[tuple[str, dict[str, Any]]] = []

    def _insert(self, item: Any) -> Any:
        now = self._clock()
        stored = replace(
            item, id=f"{self.prefix}-{len(self.items) + 1}", created_at=now, updated_at=now
        )
        self.items[stored.id] = stored
        return stored

    def _desc(self, items: list[Any]) -> list[Any]:
        return sorted(items, key=lambda x: x.created_at, reverse=True)

    def _update(self, entity_id: str, fields: dict[str, Any]) -> None:
        if entity_id not in self.items:
            raise NotFoundError(self.prefix, entity_id)
        self.update_calls.append((entity_id, dict(fields)))
        self.items[entity_id] = replace(
            self.items[entity_id], **fields, updated_at=self._clock()
        )

    def get(self, entity_id: str) -> Any:
        return self.items.get(entity_id)

    def list_all(self) -> list[Any]:
        return self._desc(list(self.items.values()))

    def delete(self, entity_id: str) -> None:
        self.items.pop(entity_id, None)


class InMemoryProjectRepository(_InMemoryStore, ProjectRepository):
    prefix = "project"

    def create(self, project: Project) -> Project:
        return self._insert(project)

    def list_by_creator(self, uid: str) -> list[Project]:
        return self._desc([p for p in self.items.values() if p.created_by == uid])

    def list_by_member(self, uid: str) -> list[Project]:
        return self._desc([p for p in self.items.values() if any(u.id == uid for u in p.users)])

    def update(self, project_id: str, fields: dict[str, Any]) -> None:
        self._update(project_id, fields)

    def replace_users(self, project_id: str, users: list[ProjectUser]) -> None:
        self._update(project_id, {"users": list(users)})


class InMemoryActivityRepository(_InMemoryStore, ActivityRepository):
    prefix = "activity"

    def create(self, activity: Activity) -> Activity:
        return self._insert(activity)

    def list_by_project(self, project_id: str) -> list[Activity]:
        return self._desc([a for a in self.items.values() if a.project_id == project_id])

    def update(self, activity_id: str, fields: dict[str, Any]) -> None:
        self._update(activity_id, fields)


class InMemoryActionRepository(_InMemoryStore, ActionRepository):
    prefix = "action"

    def create(self, action: Action) -> Action:
        return self._insert(action)

    def list_by_activity(self, activity_id: str) -> list[Action]:
        return self._desc([a for a in self.items.values() if a.activity_id == activity_id])

    def update(self, action_id: str, fields: dict[str, Any]) -> None:
        self._update(action_id, fields)

    def replace_comments(self, action_id: str, comments: list[ActionComment]) -> None:
        self._update(action_id, {"comments": list(comments)})

    def replace_evidence(self, action_id: str, evidence: list[ActionEvidence]) -> None:
        self._update(action_id, {"evidence": list(evidence)})


class InMemoryAuditLogRepository(AuditLogRepository):
    def __init__(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock
        self.entries: list[AuditLog] = []
        self.fail_next = False

    def append(self, entry: AuditLog) -> str:
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("audit store unavailable")
        stored = replace(entry, id=f"log-{len(self.entries) + 1}", timestamp=self._clock())
        self.entries.append(stored)
        return stored.id

    def list_logs(
        self,
        type: str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditLog]:
        logs = [
            e
            for e in self.entries
            if (type is None or e.type.value == type)
            and (entity_id is None or e.entity_id == entity_id)
            and (user_id is None or e.user_id == user_id)
            and (start is None or e.timestamp >= start)
            and (end is None or e.timestamp < end)
        ]
        logs.sort(key=lambda e: e.timestamp, reverse=True)
        return logs[:limit] if limit else logs


# ========== フィクスチャ ==========


@pytest.fixture
def clock() -> TickClock:
    return TickClock(datetime(2026, 3, 10, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def role_repo() -> InMemoryRoleRepository:
    return InMemoryRoleRepository()


@pytest.fixture
def project_repo(clock) -> InMemoryProjectRepository:
    return InMemoryProjectRepository(clock)


@pytest.fixture
def activity_repo(clock) -> InMemoryActivityRepository:
    return InMemoryActivityRepository(clock)


@pytest.fixture
def action_repo(clock) -> InMemoryActionRepository:
    return InMemoryActionRepository(clock)


@pytest.fixture
def audit_repo(clock) -> InMemoryAuditLogRepository:
    return InMemoryAuditLogRepository(clock)


@pytest.fixture
def mock_storage() -> MagicMock:
    """BlobStorage のモック（アップロード成功・URL発行成功）"""
    storage = MagicMock(spec=BlobStorage)
    storage.upload.side_effect = lambda path, content, content_type: path
    storage.get_retrievable_url.side_effect = lambda path: f"https://storage.example.com/{path}"
    return storage


@pytest.fixture
def mock_identity_provider() -> MagicMock:
    """IdentityProvider のモック（通知なし）"""
    provider = MagicMock(spec=IdentityProvider)
    provider.on_session_change.return_value = MagicMock()
    return provider


@pytest.fixture
def mock_project_repo() -> MagicMock:
    return MagicMock(spec=ProjectRepository)


@pytest.fixture
def mock_activity_repo() -> MagicMock:
    return MagicMock(spec=ActivityRepository)


@pytest.fixture
def mock_action_repo() -> MagicMock:
    return MagicMock(spec=ActionRepository)


@pytest.fixture
def mock_audit_repo() -> MagicMock:
    repo = MagicMock(spec=AuditLogRepository)
    repo.append.return_value = "log-1"
    return repo


# ========== サンプルデータ ==========


@pytest.fixture
def sample_identity() -> Identity:
    """サンプル Identity: 現場監督"""
    return Identity(
        uid="uid-alice",
        email="alice@example.org",
        display_name="Alice",
        email_verified=True,
    )


@pytest.fixture
def sample_project() -> Project:
    return Project(
        id="",
        name="Northern Clearance",
        description="Area clearance in the northern district",
        type=ProjectType.DEMINING,
        location="Sector 7",
        start_date=datetime(2026, 3, 1, tzinfo=timezone.utc),
        status=ProjectStatus.ACTIVE,
        created_by="",
    )


@pytest.fixture
def sample_activity() -> Activity:
    return Activity(
        id="",
        project_id="",
        date=datetime(2026, 3, 10, 7, 30, tzinfo=timezone.utc),
        type=ActivityType.CLEARANCE,
        shift=ShiftType.MORNING,
        crew="A",
        created_by="",
    )


@pytest.fixture
def sample_action() -> Action:
    return Action(
        id="",
        activity_id="",
        issue="Replace damaged marker posts",
        responsible_person="Bob Smith",
        due_date=datetime(2026, 3, 20, tzinfo=timezone.utc),
        priority=ActionPriority.HIGH,
        status=ActionStatus.PENDING,
        created_by="",
    )


# ========== API テスト用 ==========

API_IDENTITIES = {
    "admin-token": Identity(uid="uid-admin", email="admin@example.org", display_name="Ada"),
    "supervisor-token": Identity(uid="uid-alice", email="alice@example.org", display_name="Alice"),
    "operator-token": Identity(uid="uid-olga", email="olga@example.org"),
}
_API_ROLES = {"uid-admin": "Admin", "uid-alice": "Supervisor", "uid-olga": "Operator"}


def bearer(role: str) -> dict[str, str]:
    """role: "admin" | "supervisor" | "operator" """
    return {"Authorization": f"Bearer {role}-token"}


@pytest.fixture
def api(
    user_repo,
    role_repo,
    project_repo,
    activity_repo,
    action_repo,
    audit_repo,
    mock_storage,
    clock,
):
    """
    インメモリ実装で組み立てたサービスを dependency_overrides で差し込んだテストクライアント。

    Bearer トークン（admin-token / supervisor-token / operator-token）ごとに
    対応するロールのユーザーレコードを用意しておく。
    """
    for uid, role in _API_ROLES.items():
        user_repo.records[uid] = UserRecord(uid=uid, role=role)

    config = AppConfig(project_id="mineaction-test", gcs_bucket_name="evidence-test")
    audit = AuditService(audit_repo)
    projects = ProjectService(project_repo, audit)
    activities = ActivityService(activity_repo, project_repo, audit)
    actions = ActionService(action_repo, activity_repo, audit, mock_storage, clock=clock)

    def _session_factory() -> AuthSession:
        return AuthSession(FakeIdentityProvider(API_IDENTITIES), user_repo, RoleRegistry(role_repo))

    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_session_factory] = lambda: _session_factory
    app.dependency_overrides[get_user_repo] = lambda: user_repo
    app.dependency_overrides[get_audit_service] = lambda: audit
    app.dependency_overrides[get_project_service] = lambda: projects
    app.dependency_overrides[get_activity_service] = lambda: activities
    app.dependency_overrides[get_action_service] = lambda: actions
    app.dependency_overrides[get_dashboard_service] = lambda: DashboardService(
        projects, activities, actions
    )

    with TestClient(app) as client:
        yield SimpleNamespace(
            client=client,
            config=config,
            users=user_repo,
            roles=role_repo,
            projects=project_repo,
            activities=activity_repo,
            actions=action_repo,
            audit=audit_repo,
            storage=mock_storage,
        )

    app.dependency_overrides.clear()
