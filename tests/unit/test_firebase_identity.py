"""FirebaseIdentityProvider のユニットテスト

firebase_admin.auth をパッチし、トークン検証・通知・購読解除を検証する。
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from firebase_admin import auth as fb_auth
from mineaction.adapters.firebase_identity import FirebaseIdentityProvider
from mineaction.domain.errors import AuthFailure

_AUTH = "mineaction.adapters.firebase_identity.fb_auth"


def _firebase_user() -> MagicMock:
    user = MagicMock()
    user.uid = "uid-alice"
    user.email = "alice@example.org"
    user.display_name = "Alice"
    user.photo_url = None
    user.email_verified = True
    user.user_metadata.creation_timestamp = 1767225600000  # 2026-01-01T00:00:00Z
    user.user_metadata.last_sign_in_timestamp = None
    return user


class TestSignIn:
    def test_valid_token_builds_identity(self):
        with patch(f"{_AUTH}.verify_id_token", return_value={"uid": "uid-alice"}), patch(
            f"{_AUTH}.get_user", return_value=_firebase_user()
        ):
            identity = FirebaseIdentityProvider().sign_in("token")

        assert identity.uid == "uid-alice"
        assert identity.email_verified is True
        assert identity.creation_time == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert identity.last_sign_in_time is None

    def test_invalid_token_raises_auth_failure(self):
        with patch(f"{_AUTH}.verify_id_token", side_effect=ValueError("malformed")):
            with pytest.raises(AuthFailure):
                FirebaseIdentityProvider().sign_in("garbage")

    def test_revocation_is_checked(self):
        """sign_out で取り消されたトークンを拒否できるよう check_revoked=True で検証する"""
        with patch(f"{_AUTH}.verify_id_token", return_value={"uid": "uid-alice"}) as verify, patch(
            f"{_AUTH}.get_user", return_value=_firebase_user()
        ):
            FirebaseIdentityProvider().sign_in("token")

        verify.assert_called_once_with("token", app=None, check_revoked=True)

    @pytest.mark.parametrize(
        "error",
        [
            fb_auth.RevokedIdTokenError("revoked"),
            fb_auth.UserDisabledError("disabled"),
        ],
    )
    def test_revoked_or_disabled_raises_auth_failure(self, error):
        with patch(f"{_AUTH}.verify_id_token", side_effect=error):
            with pytest.raises(AuthFailure):
                FirebaseIdentityProvider().sign_in("token")

    def test_deleted_user_raises_auth_failure(self):
        with patch(f"{_AUTH}.verify_id_token", return_value={"uid": "uid-gone"}), patch(
            f"{_AUTH}.get_user", side_effect=fb_auth.UserNotFoundError("gone")
        ):
            with pytest.raises(AuthFailure):
                FirebaseIdentityProvider().sign_in("token")

    def test_listeners_are_notified(self):
        provider = FirebaseIdentityProvider()
        received = []
        provider.on_session_change(received.append)

        with patch(f"{_AUTH}.verify_id_token", return_value={"uid": "uid-alice"}), patch(
            f"{_AUTH}.get_user", return_value=_firebase_user()
        ):
            identity = provider.sign_in("token")

        assert received == [identity]


class TestSignOut:
    def test_revokes_tokens_and_notifies_none(self):
        provider = FirebaseIdentityProvider()
        received = []
        provider.on_session_change(received.append)

        with patch(f"{_AUTH}.revoke_refresh_tokens") as revoke:
            provider.sign_out("uid-alice")

        revoke.assert_called_once_with("uid-alice", app=None)
        assert received == [None]

    def test_unsubscribe_stops_notifications(self):
        provider = FirebaseIdentityProvider()
        received = []
        unsubscribe = provider.on_session_change(received.append)

        unsubscribe()
        unsubscribe()  # 2回目も例外にならない
        with patch(f"{_AUTH}.revoke_refresh_tokens"):
            provider.sign_out("uid-alice")

        assert received == []
