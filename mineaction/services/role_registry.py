"""RoleRegistry - ロール名 → アクセス可能ルートの対応表"""

from __future__ import annotations

import logging

from mineaction.domain.errors import DuplicateRoleError, NotFoundError
from mineaction.domain.models import BUILTIN_ROLES, RoleDefinition
from mineaction.domain.ports import RoleRepository

logger = logging.getLogger(__name__)

_BUILTIN_IDS = frozenset(r.id for r in BUILTIN_ROLES)


class RoleRegistry:
    """
    組み込みロール（Admin / Supervisor / Operator）と Firestore のカスタムロールを統合する。

    - 組み込みロールはメモリ上のみ。常に先頭に並ぶ
    - 組み込みロールと同じIDのカスタムロールは無視する
    - 読み込み失敗時は組み込みロールのみで継続する
    """

    def __init__(self, repo: RoleRepository) -> None:
        self._repo = repo
        self._roles: list[RoleDefinition] = list(BUILTIN_ROLES)

    @property
    def roles(self) -> list[RoleDefinition]:
        return list(self._roles)

    def load(self) -> list[RoleDefinition]:
        """カスタムロールを読み込み直す"""
        try:
            custom = self._repo.list_roles()
        except Exception:
            logger.exception("Failed to load custom roles; using built-in roles only")
            self._roles = list(BUILTIN_ROLES)
            return self.roles

        self._roles = list(BUILTIN_ROLES) + [r for r in custom if r.id not in _BUILTIN_IDS]
        logger.info("Loaded roles: builtin=%d, custom=%d", len(BUILTIN_ROLES), len(self._roles) - len(BUILTIN_ROLES))
        return self.roles

    def find(self, name: str) -> RoleDefinition | None:
        """ロール名で検索する"""
        for role in self._roles:
            if role.name == name:
                return role
        return None

    def create_role(self, name: str, description: str, routes: list[str]) -> RoleDefinition:
        """
        カスタムロールを作成する。

        Raises:
            DuplicateRoleError: 同名のロール（組み込み含む）が既に存在する場合
        """
        name = name.strip()
        if any(r.name == name for r in BUILTIN_ROLES) or self._repo.find_by_name(name):
            raise DuplicateRoleError(name)

        role = self._repo.create_role(name, description, list(routes or []))
        self._roles.append(role)
        logger.info("Role created: id=%s, name=%s", role.id, role.name)
        return role

    def update_role_access(self, role_id: str, routes: list[str]) -> RoleDefinition:
        """
        カスタムロールのルート一覧を更新する。

        Raises:
            NotFoundError: 組み込みロール、または存在しないロールの場合
        """
        current = next((r for r in self._roles if r.id == role_id), None)
        if current is None or role_id in _BUILTIN_IDS:
            raise NotFoundError("role", role_id)

        self._repo.update_routes(role_id, list(routes))
        updated = RoleDefinition(
            id=current.id,
            name=current.name,
            description=current.description,
            routes=tuple(routes),
        )
        self._roles = [updated if r.id == role_id else r for r in self._roles]
        logger.info("Role access updated: id=%s, routes=%s", role_id, routes)
        return updated
