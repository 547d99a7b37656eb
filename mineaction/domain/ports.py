"""Ports - 外部コラボレーターとの契約（ABC）

各Port（抽象基底クラス）は外部サービスとの契約を定義します。
実装クラス（Adapter）はこれらのABCを継承し、全ての抽象メソッドを実装する必要があります。

- IdentityProvider: Firebase Auth 等
- *Repository: Firestore 等のドキュメントストア（タイムスタンプはストア側で採番）
- BlobStorage: Cloud Storage 等
- RecordExporter: スプレッドシート / PDF 生成
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from mineaction.domain.models import (
    Action,
    ActionComment,
    ActionEvidence,
    Activity,
    AuditLog,
    Identity,
    Project,
    ProjectUser,
    RoleDefinition,
    UserRecord,
)

SessionListener = Callable[[Identity | None], None]


class IdentityProvider(ABC):
    """認証プロバイダー（Firebase Auth等）"""

    @abstractmethod
    def sign_in(self, credential: str) -> Identity:
        """資格情報（IDトークン等）を検証して Identity を返す。失敗時は AuthFailure"""
        pass

    @abstractmethod
    def sign_out(self, uid: str) -> None:
        """セッションを終了する"""
        pass

    @abstractmethod
    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        """セッション変化の通知を購読する。購読解除関数を返す"""
        pass


class UserRepository(ABC):
    """users コレクション"""

    @abstractmethod
    def get_user(self, uid: str) -> UserRecord | None:
        """ユーザーレコードを取得。存在しない場合は None"""
        pass

    @abstractmethod
    def create_user(self, record: UserRecord) -> None:
        pass

    @abstractmethod
    def update_role(self, uid: str, role: str) -> None:
        """ロールを更新。ユーザーが存在しない場合は NotFoundError"""
        pass

    @abstractmethod
    def list_users(self) -> list[UserRecord]:
        pass


class RoleRepository(ABC):
    """roles コレクション（カスタムロール）"""

    @abstractmethod
    def list_roles(self) -> list[RoleDefinition]:
        pass

    @abstractmethod
    def find_by_name(self, name: str) -> RoleDefinition | None:
        pass

    @abstractmethod
    def create_role(self, name: str, description: str, routes: list[str]) -> RoleDefinition:
        pass

    @abstractmethod
    def update_routes(self, role_id: str, routes: list[str]) -> None:
        pass


class ProjectRepository(ABC):
    """projects コレクション"""

    @abstractmethod
    def create(self, project: Project) -> Project:
        """プロジェクトを作成し、採番済みIDとタイムスタンプを含むレコードを返す"""
        pass

    @abstractmethod
    def get(self, project_id: str) -> Project | None:
        pass

    @abstractmethod
    def list_all(self) -> list[Project]:
        """作成日時の降順"""
        pass

    @abstractmethod
    def list_by_creator(self, uid: str) -> list[Project]:
        pass

    @abstractmethod
    def list_by_member(self, uid: str) -> list[Project]:
        pass

    @abstractmethod
    def update(self, project_id: str, fields: dict[str, Any]) -> None:
        """部分更新（updated_at はストア側で更新）。存在しない場合は NotFoundError"""
        pass

    @abstractmethod
    def replace_users(self, project_id: str, users: list[ProjectUser]) -> None:
        """users 配列を丸ごと書き換える"""
        pass

    @abstractmethod
    def delete(self, project_id: str) -> None:
        pass


class ActivityRepository(ABC):
    """activities コレクション"""

    @abstractmethod
    def create(self, activity: Activity) -> Activity:
        pass

    @abstractmethod
    def get(self, activity_id: str) -> Activity | None:
        pass

    @abstractmethod
    def list_by_project(self, project_id: str) -> list[Activity]:
        """作成日時の降順"""
        pass

    @abstractmethod
    def list_all(self) -> list[Activity]:
        pass

    @abstractmethod
    def update(self, activity_id: str, fields: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def delete(self, activity_id: str) -> None:
        pass


class ActionRepository(ABC):
    """actions コレクション（comments / evidence は埋め込み配列）"""

    @abstractmethod
    def create(self, action: Action) -> Action:
        pass

    @abstractmethod
    def get(self, action_id: str) -> Action | None:
        pass

    @abstractmethod
    def list_by_activity(self, activity_id: str) -> list[Action]:
        """作成日時の降順"""
        pass

    @abstractmethod
    def list_all(self) -> list[Action]:
        """作成日時の降順（フィルターなし）"""
        pass

    @abstractmethod
    def update(self, action_id: str, fields: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def replace_comments(self, action_id: str, comments: list[ActionComment]) -> None:
        pass

    @abstractmethod
    def replace_evidence(self, action_id: str, evidence: list[ActionEvidence]) -> None:
        pass

    @abstractmethod
    def delete(self, action_id: str) -> None:
        pass


class AuditLogRepository(ABC):
    """auditLogs コレクション（追記のみ）"""

    @abstractmethod
    def append(self, entry: AuditLog) -> str:
        """エントリを追記（timestamp はストア側で採番）。IDを返す"""
        pass

    @abstractmethod
    def list_logs(
        self,
        type: str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditLog]:
        """条件に合うエントリを timestamp の降順で返す。start は含み、end は含まない"""
        pass


class BlobStorage(ABC):
    """バイナリファイルのアップロード・URL取得（GCS等）"""

    @abstractmethod
    def upload(self, blob_path: str, content: bytes, content_type: str) -> str:
        """ファイルをアップロード。ストレージパス（blob_path）を返す"""
        pass

    @abstractmethod
    def get_retrievable_url(self, blob_path: str) -> str:
        """ダウンロード可能なURLを返す"""
        pass

    @abstractmethod
    def delete(self, blob_path: str) -> None:
        pass


class RecordExporter(ABC):
    """レコード一覧をダウンロード可能なファイルに変換する"""

    media_type: str = "application/octet-stream"
    extension: str = ""

    @abstractmethod
    def export(
        self,
        records: list[Activity] | list[Action],
        kind: str,
        project_names: dict[str, str] | None = None,
    ) -> bytes:
        """
        Args:
            records: 出力するレコード（この順序で行になる）
            kind: "activities" | "actions"
            project_names: project_id → プロジェクト名（activities の Project 列用）
        """
        pass
