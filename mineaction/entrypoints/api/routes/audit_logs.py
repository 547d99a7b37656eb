"""監査ログ API ルート（Admin, Supervisor）

GET /api/audit-logs                  → 200 [AuditLog...]  （?type=&entity_id=&user_id=&start=&end=&limit=）
GET /api/audit-logs/daily-summary    → 200 DailySummary   （?day=YYYY-MM-DD、省略時は今日）
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mineaction.domain.models import AuditAction, AuditEntityType, AuditLog
from mineaction.entrypoints.api.deps import MANAGER_ROLES, get_audit_service, require_roles
from mineaction.services.audit_service import AuditService
from mineaction.services.session import AuthSession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


class FieldChangeResponse(BaseModel):
    field: str
    old_value: Any
    new_value: Any


class AuditLogResponse(BaseModel):
    id: str
    type: AuditEntityType
    action: AuditAction
    entity_id: str
    user_id: str
    user_name: str
    timestamp: datetime | None
    changes: list[FieldChangeResponse] | None
    details: str | None


class DailySummaryResponse(BaseModel):
    day: date
    start: datetime
    end: datetime
    counts: dict[str, dict[str, int]]
    recent: list[AuditLogResponse]


def _to_response(log: AuditLog) -> AuditLogResponse:
    return AuditLogResponse(
        id=log.id,
        type=log.type,
        action=log.action,
        entity_id=log.entity_id,
        user_id=log.user_id,
        user_name=log.user_name,
        timestamp=log.timestamp,
        changes=(
            [
                FieldChangeResponse(field=c.field, old_value=c.old_value, new_value=c.new_value)
                for c in log.changes
            ]
            if log.changes is not None
            else None
        ),
        details=log.details,
    )


@router.get("", response_model=list[AuditLogResponse])
def list_audit_logs(
    type: AuditEntityType | None = None,
    entity_id: str | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    service: AuditService = Depends(get_audit_service),
) -> list[AuditLogResponse]:
    """条件に合う監査ログを新しい順で返す（start は含み、end は含まない）"""
    logs = service.get_logs(
        entity_type=type,
        entity_id=entity_id,
        user_id=user_id,
        start=start,
        end=end,
        limit=limit,
    )
    return [_to_response(log) for log in logs]


@router.get("/daily-summary", response_model=DailySummaryResponse)
def daily_summary(
    day: date | None = None,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    service: AuditService = Depends(get_audit_service),
) -> DailySummaryResponse:
    """APP_TIMEZONE における指定日の 0:00 から翌日 0:00 の直前までを集計する"""
    summary = service.daily_summary(day)
    return DailySummaryResponse(
        day=summary.day,
        start=summary.start,
        end=summary.end,
        counts=summary.counts,
        recent=[_to_response(log) for log in summary.recent],
    )
