"""エクスポート API ルート（Admin, Supervisor）

GET /api/exports/activities?format=xlsx|pdf  → 200 ファイル
GET /api/exports/actions?format=xlsx|pdf     → 200 ファイル
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from mineaction.adapters.exporters import EXPORT_KINDS
from mineaction.domain.ports import RecordExporter
from mineaction.entrypoints.api.deps import (
    MANAGER_ROLES,
    get_action_service,
    get_activity_service,
    get_exporter,
    get_project_service,
    require_roles,
)
from mineaction.services.action_service import ActionService
from mineaction.services.activity_service import ActivityService
from mineaction.services.project_service import ProjectService
from mineaction.services.session import AuthSession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/exports", tags=["exports"])


@router.get("/{kind}")
def export_records(
    kind: str,
    session: AuthSession = Depends(require_roles(*MANAGER_ROLES)),
    exporter: RecordExporter = Depends(get_exporter),
    projects: ProjectService = Depends(get_project_service),
    activities: ActivityService = Depends(get_activity_service),
    actions: ActionService = Depends(get_action_service),
) -> Response:
    """
    活動ログまたはアクションの一覧をファイルとしてダウンロードさせる。

    ファイル名: {kind}_export_{YYYY-MM-DD}.{ext}
    """
    if kind not in EXPORT_KINDS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown export kind: {kind}"
        )

    if kind == "activities":
        project_names = {p.id: p.name for p in projects.list_projects()}
        content = exporter.export(activities.list_activities(), kind, project_names)
    else:
        content = exporter.export(actions.list_actions(), kind)

    filename = f"{kind}_export_{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.{exporter.extension}"
    logger.info("Export generated: kind=%s, format=%s, uid=%s", kind, exporter.extension, session.identity.uid)
    return Response(
        content=content,
        media_type=exporter.media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
