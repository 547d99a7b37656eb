"""活動ログ API ルート

GET    /api/projects/{id}/activities   → 200 [Activity...]
POST   /api/projects/{id}/activities   → 201 Activity
GET    /api/activities                 → 200 [Activity...]
GET    /api/activities/{id}            → 200 Activity
PATCH  /api/activities/{id}            → 200 Activity
DELETE /api/activities/{id}            → 204
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from mineaction.domain.models import Activity, ActivityType, Actor, ShiftType
from mineaction.entrypoints.api.deps import (
    ALL_ROLES,
    get_activity_service,
    get_actor,
    require_roles,
)
from mineaction.services.activity_service import ActivityService
from mineaction.services.session import AuthSession

logger = logging.getLogger(__name__)
router = APIRouter(tags=["activities"])


class ActivityCreateRequest(BaseModel):
    date: datetime
    type: ActivityType
    shift: ShiftType
    crew: str
    remarks: str | None = None


class ActivityUpdateRequest(BaseModel):
    date: datetime | None = None
    type: ActivityType | None = None
    shift: ShiftType | None = None
    crew: str | None = None
    remarks: str | None = None


class ActivityResponse(BaseModel):
    id: str
    project_id: str
    date: datetime | None
    type: ActivityType
    shift: ShiftType
    crew: str
    remarks: str | None
    created_by: str
    created_at: datetime | None
    updated_at: datetime | None


def _to_response(activity: Activity) -> ActivityResponse:
    return ActivityResponse(
        id=activity.id,
        project_id=activity.project_id,
        date=activity.date,
        type=activity.type,
        shift=activity.shift,
        crew=activity.crew,
        remarks=activity.remarks,
        created_by=activity.created_by,
        created_at=activity.created_at,
        updated_at=activity.updated_at,
    )


@router.get("/projects/{project_id}/activities", response_model=list[ActivityResponse])
def list_project_activities(
    project_id: str,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ActivityService = Depends(get_activity_service),
) -> list[ActivityResponse]:
    return [_to_response(a) for a in service.list_by_project(project_id)]


@router.post(
    "/projects/{project_id}/activities",
    status_code=status.HTTP_201_CREATED,
    response_model=ActivityResponse,
)
def create_activity(
    project_id: str,
    body: ActivityCreateRequest,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActivityService = Depends(get_activity_service),
) -> ActivityResponse:
    """親プロジェクトが存在しない場合は 404"""
    activity = Activity(
        id="",
        project_id=project_id,
        date=body.date,
        type=body.type,
        shift=body.shift,
        crew=body.crew,
        remarks=body.remarks,
        created_by=actor.uid,
    )
    return _to_response(service.create_activity(project_id, activity, actor))


@router.get("/activities", response_model=list[ActivityResponse])
def list_activities(
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ActivityService = Depends(get_activity_service),
) -> list[ActivityResponse]:
    return [_to_response(a) for a in service.list_activities()]


@router.get("/activities/{activity_id}", response_model=ActivityResponse)
def get_activity(
    activity_id: str,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ActivityService = Depends(get_activity_service),
) -> ActivityResponse:
    return _to_response(service.get_activity(activity_id))


@router.patch("/activities/{activity_id}", response_model=ActivityResponse)
def update_activity(
    activity_id: str,
    body: ActivityUpdateRequest,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActivityService = Depends(get_activity_service),
) -> ActivityResponse:
    fields = body.model_dump(exclude_unset=True)
    return _to_response(service.update_activity(activity_id, fields, actor))


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_activity(
    activity_id: str,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActivityService = Depends(get_activity_service),
) -> None:
    """配下のアクションは削除しない"""
    service.delete_activity(activity_id, actor)
