"""RouteGuard のユニットテスト

静的ルートテーブルのプレフィックス一致と、ロールレジストリとの独立性を検証する。
"""

import pytest
from mineaction.domain.models import RouteAccess
from mineaction.services.access_policy import (
    SIGN_IN_PATH,
    UNAUTHORIZED_PATH,
    GuardOutcome,
    RouteGuard,
    path_matches,
)


@pytest.fixture
def guard():
    return RouteGuard()


class TestDecide:
    def test_no_identity_redirects_to_sign_in(self, guard):
        decision = guard.decide("/projects", None, None)

        assert decision.outcome is GuardOutcome.REDIRECT_SIGN_IN
        assert decision.redirect_to == SIGN_IN_PATH == "/"

    def test_no_role_is_unauthorized(self, guard, sample_identity):
        """ロール未解決はどのエントリにも許可されない"""
        decision = guard.decide("/projects", sample_identity, None)

        assert decision.outcome is GuardOutcome.REDIRECT_UNAUTHORIZED
        assert decision.redirect_to == UNAUTHORIZED_PATH

    def test_operator_allowed_on_project_detail(self, guard, sample_identity):
        decision = guard.decide("/projects/123", sample_identity, "Operator")

        assert decision.allowed
        assert decision.matched == ("/projects",)

    def test_operator_cannot_edit_project(self, guard, sample_identity):
        """/projects/:projectId/edit は Admin / Supervisor のみ"""
        decision = guard.decide("/projects/123/edit", sample_identity, "Operator")

        assert decision.outcome is GuardOutcome.REDIRECT_UNAUTHORIZED
        assert set(decision.matched) == {"/projects/:projectId/edit", "/projects"}

    def test_supervisor_can_edit_project(self, guard, sample_identity):
        assert guard.decide("/projects/123/edit", sample_identity, "Supervisor").allowed

    def test_every_matching_entry_must_allow(self, guard, sample_identity):
        """/projects/new は /projects/new と /projects の両方に一致し、両方が許可する必要がある"""
        decision = guard.decide("/projects/new", sample_identity, "Operator")

        assert decision.outcome is GuardOutcome.REDIRECT_UNAUTHORIZED
        assert set(decision.matched) == {"/projects/new", "/projects"}

    def test_supervisor_can_create_projects(self, guard, sample_identity):
        assert guard.decide("/projects/new", sample_identity, "Supervisor").allowed

    def test_admin_only_settings(self, guard, sample_identity):
        assert guard.decide("/settings", sample_identity, "Admin").allowed
        assert not guard.decide("/settings", sample_identity, "Supervisor").allowed

    def test_unmatched_path_is_allowed(self, guard, sample_identity):
        """テーブルに一致しないパス（/profile）は誰でも表示できる"""
        decision = guard.decide("/profile", sample_identity, "Operator")

        assert decision.allowed
        assert decision.matched == ()

    def test_unmatched_path_without_role_is_allowed(self, guard, sample_identity):
        assert guard.decide("/profile", sample_identity, None).allowed


class TestPrefixMatching:
    def test_raw_prefix_matches_suffix_without_slash(self, guard):
        """/projectsX は /projects に一致する（生の startswith）"""
        assert [e.path for e in guard.matching_entries("/projectsX")] == ["/projects"]

    def test_shorter_path_does_not_match(self, guard):
        assert guard.matching_entries("/project") == []

    def test_custom_table(self, sample_identity):
        guard = RouteGuard((RouteAccess("/vault", "Vault", ("Medic",)),))

        assert guard.decide("/vault/1", sample_identity, "Medic").allowed
        assert not guard.decide("/vault/1", sample_identity, "Admin").allowed


class TestPatternMatching:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/projects/123/edit", True),
            ("/projects/123/edit/history", True),
            ("/projects/123", False),
            ("/projects//edit", False),
            ("/projects/123/editor", False),
        ],
    )
    def test_param_segment(self, path, expected):
        assert path_matches("/projects/:projectId/edit", path) is expected

    def test_plain_entry_keeps_raw_prefix(self):
        assert path_matches("/projects", "/projectsX") is True
