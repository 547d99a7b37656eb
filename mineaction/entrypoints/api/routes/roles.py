"""ロール・ユーザー管理 API ルート

GET  /api/roles                → 200 [RoleDefinition...]
POST /api/roles                → 201 RoleDefinition            （Admin）
PUT  /api/roles/{id}/routes    → 200 RoleDefinition            （Admin）
GET  /api/users                → 200 [UserRecord...]           （Admin）
PUT  /api/users/{uid}/role     → 200 UserRecord                （Admin）
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from mineaction.adapters.firestore_repository import FirestoreUserRepository
from mineaction.domain.errors import NotFoundError
from mineaction.domain.models import ADMIN_ROLE, UserRecord
from mineaction.entrypoints.api.deps import get_session, get_user_repo, require_roles
from mineaction.entrypoints.api.routes.session import RoleResponse, role_response
from mineaction.services.session import AuthSession

logger = logging.getLogger(__name__)
router = APIRouter(tags=["roles"])


class CreateRoleRequest(BaseModel):
    name: str
    description: str = ""
    routes: list[str] = []


class UpdateRoutesRequest(BaseModel):
    routes: list[str]


class UserResponse(BaseModel):
    uid: str
    email: str | None
    display_name: str | None
    photo_url: str | None
    role: str | None


class UpdateUserRoleRequest(BaseModel):
    role: str


def _user_response(record: UserRecord) -> UserResponse:
    return UserResponse(
        uid=record.uid,
        email=record.email,
        display_name=record.display_name,
        photo_url=record.photo_url,
        role=record.role,
    )


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(session: AuthSession = Depends(get_session)) -> list[RoleResponse]:
    """組み込みロール → カスタムロールの順で返す"""
    return [role_response(r) for r in session.roles]


@router.post("/roles", status_code=status.HTTP_201_CREATED, response_model=RoleResponse)
def create_role(
    body: CreateRoleRequest,
    session: AuthSession = Depends(require_roles(ADMIN_ROLE)),
) -> RoleResponse:
    """カスタムロールを作成する（同名は 409）"""
    if not body.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Role name is required"
        )
    role = session.registry.create_role(body.name, body.description, body.routes)
    return role_response(role)


@router.put("/roles/{role_id}/routes", response_model=RoleResponse)
def update_role_routes(
    role_id: str,
    body: UpdateRoutesRequest,
    session: AuthSession = Depends(require_roles(ADMIN_ROLE)),
) -> RoleResponse:
    """カスタムロールのアクセス可能ルートを置き換える（組み込みロールは 404）"""
    return role_response(session.registry.update_role_access(role_id, body.routes))


@router.get("/users", response_model=list[UserResponse])
def list_users(
    session: AuthSession = Depends(require_roles(ADMIN_ROLE)),
    users: FirestoreUserRepository = Depends(get_user_repo),
) -> list[UserResponse]:
    return [_user_response(u) for u in users.list_users()]


@router.put("/users/{uid}/role", response_model=UserResponse)
def update_user_role(
    uid: str,
    body: UpdateUserRoleRequest,
    session: AuthSession = Depends(require_roles(ADMIN_ROLE)),
    users: FirestoreUserRepository = Depends(get_user_repo),
) -> UserResponse:
    """他ユーザーのロールを変更する"""
    if session.registry.find(body.role) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown role: {body.role}"
        )
    users.update_role(uid, body.role)
    logger.info("User role changed by admin: uid=%s, role=%s, by=%s", uid, body.role, session.identity.uid)

    record = users.get_user(uid)
    if record is None:
        raise NotFoundError("user", uid)
    return _user_response(record)
