"""RouteGuard - ナビゲーションごとの表示可否判定

静的なルートテーブル（RouteAccess のリスト）に対してプレフィックス一致で判定する。
永続化されたロールレジストリ（AuthSession.has_route_access）とは独立した
もう1つのアクセス規則であり、両者は意図的に統合していない。

プレフィックス判定は生の str.startswith で行う:
  "/projects/123/edit" は "/projects" に一致する
  "/project"          は "/projects" に一致しない
  "/projectsX"        は "/projects" に一致する（互換性のため維持）

":" で始まるセグメントを含むパス（"/projects/:projectId/edit"）はパターンとして
セグメント単位で照合する。":projectId" は空でない任意の1セグメントに一致し、
パターンより後ろのセグメントは前方一致として許容する。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from mineaction.domain.models import (
    ADMIN_ROLE,
    OPERATOR_ROLE,
    SUPERVISOR_ROLE,
    Identity,
    RouteAccess,
)

SIGN_IN_PATH = "/"
UNAUTHORIZED_PATH = "/unauthorized"

_ALL = (ADMIN_ROLE, SUPERVISOR_ROLE, OPERATOR_ROLE)
_MANAGERS = (ADMIN_ROLE, SUPERVISOR_ROLE)

DEFAULT_ROUTE_TABLE: tuple[RouteAccess, ...] = (
    RouteAccess("/dashboard", "Dashboard", _MANAGERS, "Overview of projects, activities, and actions"),
    RouteAccess("/projects/new", "New Project", _MANAGERS, "Create a project"),
    RouteAccess("/projects/:projectId/edit", "Edit Project", _MANAGERS, "Edit an existing project"),
    RouteAccess("/projects", "Projects", _ALL, "Project management and tracking"),
    RouteAccess("/activities", "Activities Log", _ALL, "Daily activity logging and monitoring"),
    RouteAccess("/action-tracker", "Action Tracker", _ALL, "Track and manage action items"),
    RouteAccess("/reports", "Reports", _MANAGERS, "Generate and export reports"),
    RouteAccess("/admin", "Settings", (ADMIN_ROLE,), "System settings and user management"),
    RouteAccess("/settings", "Settings", (ADMIN_ROLE,), "Admin-only settings page"),
    RouteAccess("/tasks", "Tasks", _ALL, "Accessible to all users with roles"),
)


def path_matches(pattern: str, path: str) -> bool:
    """ルートテーブルのパス（プレフィックスまたはパターン）が path に一致するか"""
    if ":" not in pattern:
        return path.startswith(pattern)

    pattern_segments = pattern.split("/")
    path_segments = path.split("/")
    if len(path_segments) < len(pattern_segments):
        return False
    for expected, actual in zip(pattern_segments, path_segments):
        if expected.startswith(":"):
            if not actual:
                return False
        elif expected != actual:
            return False
    return True


class GuardOutcome(Enum):
    ALLOW = "allow"
    REDIRECT_SIGN_IN = "redirect_sign_in"
    REDIRECT_UNAUTHORIZED = "redirect_unauthorized"


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    redirect_to: str | None = None
    matched: tuple[str, ...] = ()  # 一致したテーブルエントリのパス

    @property
    def allowed(self) -> bool:
        return self.outcome is GuardOutcome.ALLOW


class RouteGuard:
    """静的ルートテーブルに基づくナビゲーションガード"""

    def __init__(self, table: tuple[RouteAccess, ...] = DEFAULT_ROUTE_TABLE) -> None:
        self._table = table

    def matching_entries(self, path: str) -> list[RouteAccess]:
        return [entry for entry in self._table if path_matches(entry.path, path)]

    def decide(self, path: str, identity: Identity | None, role: str | None) -> GuardDecision:
        """
        1. Identity なし → サインインページ（"/"）へ
        2. 一致した全エントリがロールを許可していなければ → "/unauthorized" へ
           （ロール未解決はどのエントリにも含まれない扱い）
        3. それ以外 → 表示
        """
        if identity is None:
            return GuardDecision(GuardOutcome.REDIRECT_SIGN_IN, SIGN_IN_PATH)

        matched = self.matching_entries(path)
        matched_paths = tuple(e.path for e in matched)
        for entry in matched:
            if role is None or role not in entry.allowed_roles:
                return GuardDecision(
                    GuardOutcome.REDIRECT_UNAUTHORIZED, UNAUTHORIZED_PATH, matched_paths
                )
        return GuardDecision(GuardOutcome.ALLOW, None, matched_paths)
