"""アクション API ルート

GET    /api/activities/{id}/actions     → 200 [Action...]
POST   /api/activities/{id}/actions     → 201 Action
GET    /api/actions                     → 200 [Action...]  （?status=&priority=&responsible_person=&due_from=&due_to=）
GET    /api/actions/{id}                → 200 Action
PATCH  /api/actions/{id}                → 200 Action
DELETE /api/actions/{id}                → 204
PUT    /api/actions/{id}/status         → 200 Action        監査ログあり
PUT    /api/actions/{id}/quick-status   → 204               監査ログなし（一覧からのインライン変更）
POST   /api/actions/{id}/comments       → 201 ActionComment
POST   /api/actions/{id}/evidence       → 201 ActionEvidence（multipart/form-data）
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Form, Query, UploadFile, status
from pydantic import BaseModel

from mineaction.domain.models import (
    Action,
    ActionComment,
    ActionEvidence,
    ActionFilters,
    ActionPriority,
    ActionStatus,
    Actor,
    EvidenceType,
)
from mineaction.entrypoints.api.deps import (
    ALL_ROLES,
    get_action_service,
    get_actor,
    require_roles,
)
from mineaction.services.action_service import ActionService, is_overdue
from mineaction.services.session import AuthSession

logger = logging.getLogger(__name__)
router = APIRouter(tags=["actions"])


# ── リクエスト / レスポンス ──────────────────────────────────────────────────────


class ActionCreateRequest(BaseModel):
    issue: str
    responsible_person: str
    due_date: datetime
    priority: ActionPriority = ActionPriority.MEDIUM
    status: ActionStatus = ActionStatus.PENDING


class ActionUpdateRequest(BaseModel):
    issue: str | None = None
    responsible_person: str | None = None
    due_date: datetime | None = None
    priority: ActionPriority | None = None
    status: ActionStatus | None = None


class StatusRequest(BaseModel):
    status: ActionStatus


class CommentRequest(BaseModel):
    content: str


class CommentResponse(BaseModel):
    id: str
    content: str
    created_by: str
    created_at: datetime | None


class EvidenceResponse(BaseModel):
    id: str
    type: EvidenceType
    url: str
    filename: str
    created_by: str
    created_at: datetime | None


class ActionResponse(BaseModel):
    id: str
    activity_id: str
    issue: str
    responsible_person: str
    due_date: datetime | None
    priority: ActionPriority
    status: ActionStatus
    is_overdue: bool
    created_by: str
    created_at: datetime | None
    updated_at: datetime | None
    comments: list[CommentResponse]
    evidence: list[EvidenceResponse]


def _comment_response(comment: ActionComment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        content=comment.content,
        created_by=comment.created_by,
        created_at=comment.created_at,
    )


def _evidence_response(evidence: ActionEvidence) -> EvidenceResponse:
    return EvidenceResponse(
        id=evidence.id,
        type=evidence.type,
        url=evidence.url,
        filename=evidence.filename,
        created_by=evidence.created_by,
        created_at=evidence.created_at,
    )


def action_response(action: Action, now: datetime | None = None) -> ActionResponse:
    now = now or datetime.now().astimezone()
    return ActionResponse(
        id=action.id,
        activity_id=action.activity_id,
        issue=action.issue,
        responsible_person=action.responsible_person,
        due_date=action.due_date,
        priority=action.priority,
        status=action.status,
        is_overdue=is_overdue(action, now),
        created_by=action.created_by,
        created_at=action.created_at,
        updated_at=action.updated_at,
        comments=[_comment_response(c) for c in action.comments],
        evidence=[_evidence_response(e) for e in action.evidence],
    )


def _aware(value: datetime | None) -> datetime | None:
    """タイムゾーンなしの日時は UTC とみなす"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ── CRUD ──────────────────────────────────────────────────────────────────────


@router.get("/activities/{activity_id}/actions", response_model=list[ActionResponse])
def list_activity_actions(
    activity_id: str,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ActionService = Depends(get_action_service),
) -> list[ActionResponse]:
    return [action_response(a) for a in service.list_by_activity(activity_id)]


@router.post(
    "/activities/{activity_id}/actions",
    status_code=status.HTTP_201_CREATED,
    response_model=ActionResponse,
)
def create_action(
    activity_id: str,
    body: ActionCreateRequest,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActionService = Depends(get_action_service),
) -> ActionResponse:
    """親 Activity が存在しない場合は 404"""
    action = Action(
        id="",
        activity_id=activity_id,
        issue=body.issue,
        responsible_person=body.responsible_person,
        due_date=body.due_date,
        priority=body.priority,
        status=body.status,
        created_by=actor.uid,
    )
    return action_response(service.create_action(activity_id, action, actor))


@router.get("/actions", response_model=list[ActionResponse])
def list_actions(
    status_filter: list[ActionStatus] = Query(default=[], alias="status"),
    priority: list[ActionPriority] = Query(default=[]),
    responsible_person: str = "",
    due_from: datetime | None = None,
    due_to: datetime | None = None,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ActionService = Depends(get_action_service),
) -> list[ActionResponse]:
    """全アクションを取得し、指定された条件の AND で絞り込む"""
    filters = ActionFilters(
        statuses=tuple(status_filter),
        priorities=tuple(priority),
        responsible_person=responsible_person,
        due_from=_aware(due_from),
        due_to=_aware(due_to),
    )
    return [action_response(a) for a in service.list_actions(filters)]


@router.get("/actions/{action_id}", response_model=ActionResponse)
def get_action(
    action_id: str,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ActionService = Depends(get_action_service),
) -> ActionResponse:
    return action_response(service.get_action(action_id))


@router.patch("/actions/{action_id}", response_model=ActionResponse)
def update_action(
    action_id: str,
    body: ActionUpdateRequest,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActionService = Depends(get_action_service),
) -> ActionResponse:
    fields = body.model_dump(exclude_unset=True)
    return action_response(service.update_action(action_id, fields, actor))


@router.delete("/actions/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_action(
    action_id: str,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActionService = Depends(get_action_service),
) -> None:
    service.delete_action(action_id, actor)


# ── ステータス ─────────────────────────────────────────────────────────────────


@router.put("/actions/{action_id}/status", response_model=ActionResponse)
def change_status(
    action_id: str,
    body: StatusRequest,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActionService = Depends(get_action_service),
) -> ActionResponse:
    """ステータスを変更し、差分を監査ログに残す"""
    return action_response(service.change_status(action_id, body.status, actor))


@router.put("/actions/{action_id}/quick-status", status_code=status.HTTP_204_NO_CONTENT)
def set_status(
    action_id: str,
    body: StatusRequest,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    service: ActionService = Depends(get_action_service),
) -> None:
    """一覧画面からのインライン変更（監査ログなし）"""
    service.set_status(action_id, body.status)


# ── コメント・エビデンス ───────────────────────────────────────────────────────


@router.post(
    "/actions/{action_id}/comments",
    status_code=status.HTTP_201_CREATED,
    response_model=CommentResponse,
)
def add_comment(
    action_id: str,
    body: CommentRequest,
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActionService = Depends(get_action_service),
) -> CommentResponse:
    return _comment_response(service.add_comment(action_id, body.content, actor))


@router.post(
    "/actions/{action_id}/evidence",
    status_code=status.HTTP_201_CREATED,
    response_model=EvidenceResponse,
)
async def add_evidence(
    action_id: str,
    file: UploadFile,
    evidence_type: EvidenceType | None = Form(default=None),
    session: AuthSession = Depends(require_roles(*ALL_ROLES)),
    actor: Actor = Depends(get_actor),
    service: ActionService = Depends(get_action_service),
) -> EvidenceResponse:
    """
    写真またはファイルをアップロードしてアクションに紐付ける。

    evidence_type を省略した場合は Content-Type が image/* なら photo、それ以外は file。
    アップロード失敗時は 502（アクションは変更されない）。
    """
    content = await file.read()
    content_type = file.content_type or "application/octet-stream"
    if evidence_type is None:
        evidence_type = (
            EvidenceType.PHOTO if content_type.startswith("image/") else EvidenceType.FILE
        )
    evidence = service.add_evidence(
        action_id,
        content,
        file.filename or "evidence",
        content_type,
        evidence_type,
        actor,
    )
    return _evidence_response(evidence)
