"""Firebase Auth Adapter

IdentityProvider ABC の Firebase Admin SDK 実装。

サーバー側のサインインは「クライアントが Firebase Auth で取得した ID トークンの検証」。
サインアウトはリフレッシュトークンの失効で表現する。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

import firebase_admin
import firebase_admin.auth as fb_auth

from mineaction.domain.errors import AuthFailure
from mineaction.domain.models import Identity
from mineaction.domain.ports import IdentityProvider, SessionListener

logger = logging.getLogger(__name__)


def _from_millis(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class FirebaseIdentityProvider(IdentityProvider):
    """
    Firebase Auth を使った IdentityProvider 実装。

    セッション変化はこのインスタンスを購読しているリスナーにのみ通知する
    （プロセス全体のグローバルな購読は持たない）。
    """

    def __init__(self, app: firebase_admin.App | None = None) -> None:
        """
        Args:
            app: 初期化済みの Firebase App（省略時はデフォルトアプリ）
        """
        self._app = app
        self._listeners: list[SessionListener] = []

    def sign_in(self, credential: str) -> Identity:
        """
        ID トークンを検証し、Firebase Auth のユーザー情報から Identity を作る。

        Raises:
            AuthFailure: トークンが無効・失効している、サインアウトで取り消し済み、
                ユーザーが無効化されている、またはユーザーが存在しない場合
        """
        try:
            # check_revoked: sign_out() 後の ID トークンを拒否する
            decoded = fb_auth.verify_id_token(credential, app=self._app, check_revoked=True)
            user = fb_auth.get_user(decoded["uid"], app=self._app)
        except (
            ValueError,
            fb_auth.InvalidIdTokenError,
            fb_auth.RevokedIdTokenError,
            fb_auth.UserDisabledError,
            fb_auth.UserNotFoundError,
        ) as e:
            logger.warning("Invalid Firebase ID token: %s", e)
            raise AuthFailure("Invalid or expired Firebase ID token") from e

        metadata = user.user_metadata
        identity = Identity(
            uid=user.uid,
            email=user.email,
            display_name=user.display_name,
            photo_url=user.photo_url,
            email_verified=bool(user.email_verified),
            creation_time=_from_millis(metadata.creation_timestamp if metadata else None),
            last_sign_in_time=_from_millis(metadata.last_sign_in_timestamp if metadata else None),
        )
        self._notify(identity)
        return identity

    def sign_out(self, uid: str) -> None:
        fb_auth.revoke_refresh_tokens(uid, app=self._app)
        logger.info("Refresh tokens revoked: uid=%s", uid)
        self._notify(None)

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _notify(self, identity: Identity | None) -> None:
        for listener in list(self._listeners):
            listener(identity)
