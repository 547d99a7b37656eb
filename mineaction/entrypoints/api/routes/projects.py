"""プロジェクト API ルート

GET    /api/projects                     → 200 [Project...]   （?mine=true で自分が関わるもののみ）
POST   /api/projects                     → 201 Project        （Admin, Supervisor）
GET    /api/projects/{id}                → 200 Project
PATCH  /api/projects/{id}                → 200 Project        （Admin, Supervisor）
DELETE /api/projects/{id}                → 204                （Admin, Supervisor）
POST   /api/projects/{id}/users          → 201 Project        （Admin, Supervisor）
PUT    /api/projects/{id}/users/{uid}    → 200 Project        （Admin, Supervisor）
DELETE /api/projects/{id}/users/{uid}    → 200 Project        （Admin, Supervisor）
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from mineaction.domain.models import (
    Actor,
    Project,
    ProjectRole,
    ProjectStatus,
    ProjectType,
    ProjectUser,
)
from mineaction.entrypoints.api.deps import (
    ALL_ROLES,
    MANAGER_ROLES,
    get_actor,
    get_project_service,
    require_roles,
)
from mineaction.services.project_service import ProjectService
from mineaction.services.session import AuthSession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/projects", tags=["projects"])


# ── リクエスト / レスポンス ──────────────────────────────────────────────────────


class ProjectUserModel(BaseModel):
    id: str
    role: ProjectRole
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None


class ProjectCreateRequest(BaseModel):
    name: str
    description: str = ""
    type: ProjectType
    location: str
    start_date: datetime
    end_date: datetime | None = None
    status: ProjectStatus = ProjectStatus.PLANNING
    users: list[ProjectUserModel] = []


class ProjectUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    type: ProjectType | None = None
    location: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: ProjectStatus | None = None


class ProjectUserRoleRequest(BaseModel):
    role: ProjectRole


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: str
    type: ProjectType
    location: str
    start_date: datetime | None
    end_date: datetime | None
    status: ProjectStatus
    created_by: str
    created_at: datetime | None
    updated_at: datetime | None
    users: list[ProjectUserModel]


def _to_user(model: ProjectUserModel) -> ProjectUser:
    return ProjectUser(
        id=model.id,
        role=model.role,
        email=model.email,
        display_name=model.display_name,
        photo_url=model.photo_url,
    )


def _to_response(project: Project) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        description=project.description,
        type=project.type,
        location=project.location,
        start_date=project.start_date,
        end_date=project.end_date,
        status=project.status,
        created_by=project.created_by,
        created_at=project.created_at,
        updated_at=project.updated_at,
        users=[
            ProjectUserModel(
                id=u.id,
                role=u.role,
                email=u.email,
                display_name=u.display_name,
                photo_url=u.photo_url,
            )
            for u in project.users
        ],
    )


# ── エンドポイント ────────────────────────────────────────────────────────────────


@router.get("", response_model=list[ProjectResponse])
def list_projects(
    mine: bool = False,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ProjectService = Depends(get_project_service),
) -> list[ProjectResponse]:
    """全プロジェクト（mine=true なら作成者またはメンバーのもの）を新しい順で返す"""
    if mine:
        projects = service.list_projects_for_user(session.identity.uid)
    else:
        projects = service.list_projects()
    return [_to_response(p) for p in projects]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ProjectResponse)
def create_project(
    body: ProjectCreateRequest,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    """作成者は自動的に Project Manager としてメンバーに加わる"""
    project = Project(
        id="",
        name=body.name,
        description=body.description,
        type=body.type,
        location=body.location,
        start_date=body.start_date,
        end_date=body.end_date,
        status=body.status,
        created_by=actor.uid,
    )
    created = service.create_project(project, actor, [_to_user(u) for u in body.users])
    return _to_response(created)


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return _to_response(service.get_project(project_id))


@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    body: ProjectUpdateRequest,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    """送られたフィールドのみ更新する（差分は監査ログへ）"""
    fields = body.model_dump(exclude_unset=True)
    return _to_response(service.update_project(project_id, fields, actor))


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: str,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ProjectService = Depends(get_project_service),
) -> None:
    service.delete_project(project_id, actor)


# ── メンバー管理 ────────────────────────────────────────────────────────────────


@router.post(
    "/{project_id}/users", status_code=status.HTTP_201_CREATED, response_model=ProjectResponse
)
def add_project_user(
    project_id: str,
    body: ProjectUserModel,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return _to_response(service.add_user(project_id, _to_user(body), actor))


@router.put("/{project_id}/users/{user_id}", response_model=ProjectResponse)
def update_project_user_role(
    project_id: str,
    user_id: str,
    body: ProjectUserRoleRequest,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return _to_response(service.update_user_role(project_id, user_id, body.role, actor))


@router.delete("/{project_id}/users/{user_id}", response_model=ProjectResponse)
def remove_project_user(
    project_id: str,
    user_id: str,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ProjectService = Depends(get_project_service),
) -> ProjectResponse:
    return _to_response(service.remove_user(project_id, user_id, actor))
