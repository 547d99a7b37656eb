"""セッション API ルート

POST   /api/session         → 200 { uid, role, state, roles, ... }  サインイン
GET    /api/session         → 200 現在のセッション
DELETE /api/session         → 204 ログアウト
PUT    /api/session/role    → 200 自分のロールを設定（セルフサービス）
GET    /api/access/check    → 200 { guard, has_route_access }
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from mineaction.config import AppConfig
from mineaction.domain.models import ADMIN_ROLE, RoleDefinition
from mineaction.entrypoints.api.deps import (
    get_config,
    get_route_guard,
    get_session,
    get_session_factory,
)
from mineaction.services.access_policy import RouteGuard
from mineaction.services.session import AuthSession

logger = logging.getLogger(__name__)
router = APIRouter(tags=["session"])


class SignInRequest(BaseModel):
    id_token: str


class RoleResponse(BaseModel):
    id: str
    name: str
    description: str
    routes: list[str]


class SessionResponse(BaseModel):
    uid: str | None
    email: str | None
    display_name: str | None
    photo_url: str | None
    email_verified: bool
    role: str | None
    state: str
    roles: list[RoleResponse]


class SetRoleRequest(BaseModel):
    role: str


class AccessCheckResponse(BaseModel):
    path: str
    outcome: str
    redirect_to: str | None
    matched: list[str]
    has_route_access: bool


def role_response(role: RoleDefinition) -> RoleResponse:
    return RoleResponse(
        id=role.id, name=role.name, description=role.description, routes=list(role.routes)
    )


def _to_response(session: AuthSession) -> SessionResponse:
    identity = session.identity
    return SessionResponse(
        uid=identity.uid if identity else None,
        email=identity.email if identity else None,
        display_name=identity.display_name if identity else None,
        photo_url=identity.photo_url if identity else None,
        email_verified=identity.email_verified if identity else False,
        role=session.role,
        state=session.state.value,
        roles=[role_response(r) for r in session.roles],
    )


@router.post("/session", response_model=SessionResponse)
def sign_in(
    body: SignInRequest,
    factory: Callable[[], AuthSession] = Depends(get_session_factory),
) -> SessionResponse:
    """
    Firebase ID トークンでサインインする。

    初回サインイン時は users/{uid} を "Operator" ロールで作成する。
    ロール取得に失敗してもサインイン自体は成功する（role: null）。
    """
    session = factory()
    if session.sign_in(body.id_token) is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired Firebase ID token",
        )
    logger.info("Signed in: uid=%s, role=%s", session.identity.uid, session.role)
    return _to_response(session)


@router.get("/session", response_model=SessionResponse)
def get_current_session(session: AuthSession = Depends(get_session)) -> SessionResponse:
    return _to_response(session)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
def sign_out(session: AuthSession = Depends(get_session)) -> None:
    """リフレッシュトークンを失効させる（失敗してもローカル状態は必ず破棄）"""
    session.logout()


@router.put("/session/role", response_model=SessionResponse)
def set_own_role(
    body: SetRoleRequest,
    session: AuthSession = Depends(get_session),
    config: AppConfig = Depends(get_config),
) -> SessionResponse:
    """
    自分のロールを設定する。

    ALLOW_SELF_ROLE_ASSIGNMENT=false の場合は Admin のみ実行できる。
    """
    if not config.allow_self_role_assignment and not session.has_role((ADMIN_ROLE,)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Self-service role assignment is disabled",
        )
    if session.registry.find(body.role) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role: {body.role}",
        )
    if not session.set_user_role(body.role):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update role",
        )
    return _to_response(session)


@router.get("/access/check", response_model=AccessCheckResponse)
def check_access(
    path: str,
    session: AuthSession = Depends(get_session),
    guard: RouteGuard = Depends(get_route_guard),
) -> AccessCheckResponse:
    """
    ナビゲーションガード（静的テーブル・プレフィックス一致）と
    ロールレジストリ（完全一致）の2つの判定結果を並べて返す。
    """
    decision = guard.decide(path, session.identity, session.role)
    return AccessCheckResponse(
        path=path,
        outcome=decision.outcome.value,
        redirect_to=decision.redirect_to,
        matched=list(decision.matched),
        has_route_access=session.has_route_access(path),
    )
