"""FastAPI 依存性注入

Firebase Auth JWT 検証・AuthSession の生成と、Firestore リポジトリ /
サービスの初期化を担当する。
各ルートは Depends() でこのモジュールの関数を呼び出して
セッション・実行者（Actor）・サービスインスタンスを受け取る。
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from zoneinfo import ZoneInfo

import firebase_admin
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import credentials as fb_creds
from google.cloud import firestore

from mineaction.adapters.cloud_storage import GCSBlobStorage
from mineaction.adapters.exporters import PdfExporter, SpreadsheetExporter
from mineaction.adapters.firebase_identity import FirebaseIdentityProvider
from mineaction.adapters.firestore_repository import (
    FirestoreActionRepository,
    FirestoreActivityRepository,
    FirestoreAuditLogRepository,
    FirestoreProjectRepository,
    FirestoreRoleRepository,
    FirestoreUserRepository,
)
from mineaction.config import AppConfig
from mineaction.domain.models import ADMIN_ROLE, OPERATOR_ROLE, SUPERVISOR_ROLE, Actor
from mineaction.domain.ports import RecordExporter
from mineaction.services.access_policy import RouteGuard
from mineaction.services.action_service import ActionService
from mineaction.services.activity_service import ActivityService
from mineaction.services.audit_service import AuditService
from mineaction.services.dashboard import DashboardService
from mineaction.services.project_service import ProjectService
from mineaction.services.role_registry import RoleRegistry
from mineaction.services.session import AuthSession, SessionState

logger = logging.getLogger(__name__)

ALL_ROLES = (ADMIN_ROLE, SUPERVISOR_ROLE, OPERATOR_ROLE)
MANAGER_ROLES = (ADMIN_ROLE, SUPERVISOR_ROLE)

# ── 設定（プロセス内で1回のみ読み込む） ──────────────────────────────────────────

_config: AppConfig | None = None


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


# ── Firebase Admin 初期化（プロセス内で1回のみ） ────────────────────────────────

_firebase_app: firebase_admin.App | None = None


def _get_firebase_app() -> firebase_admin.App:
    global _firebase_app
    if _firebase_app is None:
        try:
            _firebase_app = firebase_admin.get_app()
        except ValueError:
            cred = fb_creds.ApplicationDefault()
            project_id = os.environ.get("PROJECT_ID")
            _firebase_app = firebase_admin.initialize_app(
                cred,
                options={"projectId": project_id} if project_id else {},
            )
            logger.info("Firebase Admin initialized project=%s", project_id)
    return _firebase_app


# ── Firestore クライアント（シングルトン） ──────────────────────────────────────

_firestore_client: firestore.Client | None = None


def _get_firestore_client() -> firestore.Client:
    global _firestore_client
    if _firestore_client is None:
        _firestore_client = firestore.Client()
        logger.info("Firestore client initialized")
    return _firestore_client


# ── リポジトリ・アダプター依存 ─────────────────────────────────────────────────


def get_identity_provider() -> FirebaseIdentityProvider:
    """IdentityProvider を返す依存関数（リクエストごとに新しいリスナー集合）"""
    return FirebaseIdentityProvider(_get_firebase_app())


def get_user_repo() -> FirestoreUserRepository:
    return FirestoreUserRepository(_get_firestore_client())


def get_role_registry() -> RoleRegistry:
    """未読み込みの RoleRegistry を返す（カスタムロールはサインイン時に AuthSession が読み込む）"""
    return RoleRegistry(FirestoreRoleRepository(_get_firestore_client()))


def get_blob_storage(config: AppConfig = Depends(get_config)) -> GCSBlobStorage:
    return GCSBlobStorage(bucket_name=config.gcs_bucket_name)


def get_exporter(format: str = "xlsx") -> RecordExporter:
    """クエリパラメータ format=xlsx|pdf に応じた RecordExporter を返す"""
    if format == "xlsx":
        return SpreadsheetExporter()
    if format == "pdf":
        return PdfExporter()
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Unsupported export format: {format}",
    )


# ── サービス依存 ───────────────────────────────────────────────────────────────


def get_audit_service(config: AppConfig = Depends(get_config)) -> AuditService:
    return AuditService(
        FirestoreAuditLogRepository(_get_firestore_client()),
        tz=ZoneInfo(config.app_timezone),
    )


def get_project_service(audit: AuditService = Depends(get_audit_service)) -> ProjectService:
    return ProjectService(FirestoreProjectRepository(_get_firestore_client()), audit)


def get_activity_service(audit: AuditService = Depends(get_audit_service)) -> ActivityService:
    db = _get_firestore_client()
    return ActivityService(
        FirestoreActivityRepository(db), FirestoreProjectRepository(db), audit
    )


def get_action_service(
    audit: AuditService = Depends(get_audit_service),
    storage: GCSBlobStorage = Depends(get_blob_storage),
) -> ActionService:
    db = _get_firestore_client()
    return ActionService(
        FirestoreActionRepository(db), FirestoreActivityRepository(db), audit, storage
    )


def get_dashboard_service(
    projects: ProjectService = Depends(get_project_service),
    activities: ActivityService = Depends(get_activity_service),
    actions: ActionService = Depends(get_action_service),
) -> DashboardService:
    return DashboardService(projects, activities, actions)


def get_route_guard() -> RouteGuard:
    return RouteGuard()


# ── 認証・セッション ────────────────────────────────────────────────────────────

_bearer = HTTPBearer()


def _new_session() -> AuthSession:
    return AuthSession(get_identity_provider(), get_user_repo(), get_role_registry())


def get_session_factory() -> Callable[[], AuthSession]:
    """未サインインの AuthSession を作るファクトリ（POST /api/session 用）"""
    return _new_session


def get_session(
    creds: HTTPAuthorizationCredentials = Depends(_bearer),
    factory: Callable[[], AuthSession] = Depends(get_session_factory),
) -> AuthSession:
    """
    Authorization: Bearer <id_token> を検証して、リクエストスコープの AuthSession を返す。

    Raises:
        HTTPException(401): トークンが無効な場合
    """
    session = factory()
    if session.sign_in(creds.credentials) is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired Firebase ID token",
        )
    return session


def get_actor(session: AuthSession = Depends(get_session)) -> Actor:
    """監査ログ用の実行者（表示名 → メール → uid の順で名前を決める）"""
    identity = session.identity
    return Actor(uid=identity.uid, name=identity.display_name or identity.email or identity.uid)


def require_roles(*roles: str) -> Callable[..., AuthSession]:
    """
    指定ロールのいずれかを要求する依存関数を作る。

    使い方:
        session: AuthSession = Depends(require_roles(ADMIN_ROLE, SUPERVISOR_ROLE))

    Raises:
        HTTPException(403): ロール未解決、またはロールが roles に含まれない場合
    """

    def _dependency(session: AuthSession = Depends(get_session)) -> AuthSession:
        if not session.has_role(roles):
            logger.warning(
                "Role check failed: uid=%s, role=%s, required=%s",
                session.identity.uid if session.identity else None,
                session.role,
                roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This operation requires one of roles: {', '.join(roles)}",
            )
        return session

    return _dependency


def require_role_resolved(session: AuthSession = Depends(get_session)) -> AuthSession:
    """ロールが解決済み（AUTHENTICATED）であることを要求する"""
    if session.state is not SessionState.AUTHENTICATED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No role assigned to this user",
        )
    return session
