"""ドメインモデル - 外部依存なしのデータ構造"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

DEFAULT_ROLE = "Operator"
ADMIN_ROLE = "Admin"
SUPERVISOR_ROLE = "Supervisor"
OPERATOR_ROLE = "Operator"


class ProjectType(Enum):
    """プロジェクト種別"""

    DEMINING = "Demining"
    RISK_EDUCATION = "Risk Education"
    VICTIM_ASSISTANCE = "Victim Assistance"
    ADVOCACY = "Advocacy"
    SURVEY = "Survey"
    OTHER = "Other"


class ProjectStatus(Enum):
    PLANNING = "Planning"
    ACTIVE = "Active"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class ProjectRole(Enum):
    """プロジェクト内ロール（システムロールとは別物）"""

    PROJECT_MANAGER = "Project Manager"
    FIELD_SUPERVISOR = "Field Supervisor"
    TECHNICAL_ADVISOR = "Technical Advisor"
    TEAM_MEMBER = "Team Member"
    OBSERVER = "Observer"


class ActivityType(Enum):
    DRILLING = "Drilling"
    BLASTING = "Blasting"
    HAULING = "Hauling"
    EXCAVATION = "Excavation"
    DEMOLITION = "Demolition"
    CLEARANCE = "Clearance"
    SURVEY = "Survey"
    TRAINING = "Training"
    OTHER = "Other"


class ShiftType(Enum):
    MORNING = "Morning"
    AFTERNOON = "Afternoon"
    NIGHT = "Night"


class ActionPriority(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class ActionStatus(Enum):
    """
    アクションのステータス。

    OVERDUE はユーザーが設定する保存値。期限切れ判定の表示用計算
    （services.action_service.is_overdue）とは独立している。
    """

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    OVERDUE = "Overdue"


class EvidenceType(Enum):
    PHOTO = "photo"
    FILE = "file"


class AuditEntityType(Enum):
    ACTION = "action"
    ACTIVITY = "activity"
    PROJECT = "project"


class AuditAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# ─── 認証・ロール ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Identity:
    """IDプロバイダーが発行する認証済みID（アプリ側からは読み取り専用）"""

    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None
    email_verified: bool = False
    creation_time: datetime | None = None
    last_sign_in_time: datetime | None = None


@dataclass(frozen=True)
class Actor:
    """変更操作の実行者（監査ログの userId / userName）"""

    uid: str
    name: str = ""


@dataclass(frozen=True)
class UserRecord:
    """users/{uid} に永続化されるユーザーレコード"""

    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None
    role: str | None = DEFAULT_ROLE
    created_at: datetime | None = None


@dataclass(frozen=True)
class RoleDefinition:
    """ロール名 → アクセス可能なルート一覧"""

    id: str
    name: str
    description: str = ""
    routes: tuple[str, ...] = ()


# 組み込みロール（メモリ上のみ。RouteGuard のテーブルとは内容が異なる）
BUILTIN_ROLES: tuple[RoleDefinition, ...] = (
    RoleDefinition(
        id="admin",
        name=ADMIN_ROLE,
        description="Full system access",
        routes=("/admin", "/profile", "/reports", "/analytics", "/settings"),
    ),
    RoleDefinition(
        id="supervisor",
        name=SUPERVISOR_ROLE,
        description="Supervise operations",
        routes=("/profile", "/reports", "/analytics"),
    ),
    RoleDefinition(
        id="operator",
        name=OPERATOR_ROLE,
        description="Basic operations",
        routes=("/profile",),
    ),
)


@dataclass(frozen=True)
class RouteAccess:
    """ナビゲーション制御用の (パスプレフィックスまたは ":param" パターン, 許可ロール) ペア"""

    path: str
    name: str
    allowed_roles: tuple[str, ...]
    description: str = ""


# ─── プロジェクト・活動・アクション ───────────────────────────────────────────


@dataclass(frozen=True)
class ProjectUser:
    """Project.users に埋め込まれるメンバー"""

    id: str  # Firebase Auth UID
    role: ProjectRole
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    type: ProjectType
    location: str
    start_date: datetime
    status: ProjectStatus
    created_by: str
    description: str = ""
    end_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    users: list[ProjectUser] = field(default_factory=list)


@dataclass(frozen=True)
class Activity:
    id: str
    project_id: str
    date: datetime | None  # 欠損ドキュメントでは None
    type: ActivityType
    shift: ShiftType
    crew: str
    created_by: str
    remarks: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ActionComment:
    id: str
    content: str
    created_by: str
    created_at: datetime


@dataclass(frozen=True)
class ActionEvidence:
    id: str
    type: EvidenceType
    url: str
    filename: str
    created_by: str
    created_at: datetime


@dataclass(frozen=True)
class Action:
    id: str
    activity_id: str
    issue: str
    responsible_person: str
    due_date: datetime | None  # 欠損ドキュメントでは None
    priority: ActionPriority
    status: ActionStatus
    created_by: str
    comments: list[ActionComment] = field(default_factory=list)
    evidence: list[ActionEvidence] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ActionFilters:
    """
    アクション一覧のクライアントサイドフィルター。

    全て省略可能。指定された条件の AND（積集合）で絞り込む。
    """

    statuses: tuple[ActionStatus, ...] = ()
    priorities: tuple[ActionPriority, ...] = ()
    responsible_person: str = ""
    due_from: datetime | None = None
    due_to: datetime | None = None


# ─── 監査ログ ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FieldChange:
    """監査ログのフィールド差分"""

    field: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class AuditLog:
    """auditLogs コレクションのエントリ（追記のみ・不変）"""

    id: str
    type: AuditEntityType
    action: AuditAction
    entity_id: str
    user_id: str
    user_name: str
    timestamp: datetime | None = None
    changes: list[FieldChange] | None = None
    details: str | None = None


@dataclass(frozen=True)
class DailySummary:
    """1日分（ローカル日付の [0:00, 翌日 0:00)）の監査ログ集計"""

    day: date
    start: datetime
    end: datetime
    counts: dict[str, dict[str, int]]  # {"action": {"create": 1, ...}, ...}
    recent: list[AuditLog] = field(default_factory=list)


@dataclass(frozen=True)
class DashboardStats:
    total_projects: int
    active_projects: int
    today_activities: int
    open_actions: int
    closed_actions: int
    overdue_actions: int
    upcoming_actions: list[Action] = field(default_factory=list)


def to_plain(value: Any) -> Any:
    """Enum / dataclass / list を Firestore に書ける素の値に変換する（datetime はそのまま）"""
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    return value
