"""AuthSession - 「誰がサインインしていて何ができるか」の単一の情報源

アプリ全体のグローバル状態ではなく、明示的にスコープされたオブジェクトとして扱う。
API ではリクエストごとに deps.get_session() が生成し、logout() で破棄される。

状態遷移:
    LOADING → UNAUTHENTICATED | AUTHENTICATED | AUTHENTICATED_NO_ROLE

遷移は IDプロバイダーのセッション変化通知と sign_in / logout / set_user_role のみで起こる。
初回のロール取得に失敗した場合はロールなしの認証済み状態になる（エラーにはしない）。
"""

from __future__ import annotations

import logging
from enum import Enum

from mineaction.domain.errors import AuthFailure
from mineaction.domain.models import (
    ADMIN_ROLE,
    DEFAULT_ROLE,
    Identity,
    RoleDefinition,
    UserRecord,
)
from mineaction.domain.ports import IdentityProvider, UserRepository
from mineaction.services.role_registry import RoleRegistry

logger = logging.getLogger(__name__)


class SessionState(Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    AUTHENTICATED_NO_ROLE = "authenticated_no_role"


def ensure_user_record(
    users: UserRepository, identity: Identity, default_role: str = DEFAULT_ROLE
) -> str:
    """
    初回サインイン時にユーザーレコードを作成し、解決済みロールを返す。

    - レコードがなければ default_role で作成
    - ロールが未設定（None / 空）なら default_role で補完
    - 既存の非 null ロールは決して上書きしない
    """
    record = users.get_user(identity.uid)
    if record is None:
        users.create_user(
            UserRecord(
                uid=identity.uid,
                email=identity.email,
                display_name=identity.display_name,
                photo_url=identity.photo_url,
                role=default_role,
            )
        )
        logger.info("User record created: uid=%s, role=%s", identity.uid, default_role)
        return default_role

    if not record.role:
        users.update_role(identity.uid, default_role)
        logger.info("User role backfilled: uid=%s, role=%s", identity.uid, default_role)
        return default_role

    return record.role


class AuthSession:
    """
    現在の Identity・解決済みロール・ロールレジストリを保持する。

    ロール判定の述語（has_role / has_route_access）を他の層に提供する。
    """

    def __init__(
        self,
        provider: IdentityProvider,
        users: UserRepository,
        registry: RoleRegistry,
    ) -> None:
        self._provider = provider
        self._users = users
        self._registry = registry
        self._identity: Identity | None = None
        self._role: str | None = None
        self._state = SessionState.LOADING
        self._unsubscribe = provider.on_session_change(self.handle_session_change)

    # ── 状態 ────────────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def role(self) -> str | None:
        return self._role

    @property
    def roles(self) -> list[RoleDefinition]:
        return self._registry.roles

    @property
    def registry(self) -> RoleRegistry:
        return self._registry

    # ── ライフサイクル ──────────────────────────────────────────────────────

    def handle_session_change(self, identity: Identity | None) -> None:
        """IDプロバイダーからのセッション変化通知"""
        if identity is None:
            self._identity = None
            self._role = None
            self._state = SessionState.UNAUTHENTICATED
            return

        self._identity = identity
        self._resolve_role(identity)
        self._registry.load()

    def sign_in(self, credential: str) -> Identity | None:
        """
        サインインしてロールを解決する。

        Returns:
            Identity。失敗時は None（状態は変更しない）
        """
        try:
            identity = self._provider.sign_in(credential)
        except AuthFailure as e:
            logger.warning("Sign-in rejected: %s", e)
            return None
        except Exception:
            logger.exception("Error during sign in")
            return None

        # プロバイダーが通知済みでも同じ Identity なら再解決しない
        if self._identity != identity or self._state == SessionState.LOADING:
            self.handle_session_change(identity)
        return identity

    def logout(self) -> None:
        """プロバイダーのセッションを終了し、ローカル状態を必ずクリアする"""
        identity = self._identity
        try:
            if identity is not None:
                self._provider.sign_out(identity.uid)
        except Exception:
            logger.exception("Error during logout: uid=%s", identity.uid if identity else None)
        finally:
            self._identity = None
            self._role = None
            self._state = SessionState.UNAUTHENTICATED
            self._unsubscribe()

    def _resolve_role(self, identity: Identity) -> None:
        try:
            self._role = ensure_user_record(self._users, identity)
        except Exception:
            logger.exception("Error fetching user role: uid=%s", identity.uid)
            self._role = None
        self._state = (
            SessionState.AUTHENTICATED if self._role else SessionState.AUTHENTICATED_NO_ROLE
        )

    # ── ロール判定 ──────────────────────────────────────────────────────────

    def has_role(self, candidates: list[str] | tuple[str, ...]) -> bool:
        """ロールが解決済みで、かつ candidates に含まれる場合のみ True"""
        return self._role is not None and self._role in candidates

    def has_route_access(self, path: str) -> bool:
        """
        ロールレジストリに基づくルートアクセス判定。

        Admin は常に True。それ以外はロール定義の routes に path が
        完全一致で含まれるかを見る（RouteGuard のプレフィックス一致とは別物）。
        """
        if not self._role:
            return False
        if self._role == ADMIN_ROLE:
            return True
        definition = self._registry.find(self._role)
        if definition is None:
            return False
        return path in definition.routes

    def set_user_role(self, role: str | None) -> bool:
        """
        現在のユーザー自身のロールを更新する。例外は投げない。

        Returns:
            成功時 True
        """
        if self._identity is None or not role:
            return False
        try:
            self._users.update_role(self._identity.uid, role)
        except Exception:
            logger.exception("Error updating role: uid=%s", self._identity.uid)
            return False
        self._role = role
        self._state = SessionState.AUTHENTICATED
        logger.info("User role set: uid=%s, role=%s", self._identity.uid, role)
        return True

    def refresh_roles(self) -> list[RoleDefinition]:
        return self._registry.load()
