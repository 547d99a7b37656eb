"""FastAPI アプリケーション

MineAction バックエンド API。
Cloud Run Service として動作し、Firebase Auth で認証する。

エンドポイント一覧:
  POST   /api/session
  GET    /api/session
  DELETE /api/session
  PUT    /api/session/role
  GET    /api/access/check
  GET    /api/roles
  POST   /api/roles
  PUT    /api/roles/{id}/routes
  GET    /api/users
  PUT    /api/users/{uid}/role
  GET    /api/projects
  POST   /api/projects
  GET    /api/projects/{id}
  PATCH  /api/projects/{id}
  DELETE /api/projects/{id}
  POST   /api/projects/{id}/users
  PUT    /api/projects/{id}/users/{uid}
  DELETE /api/projects/{id}/users/{uid}
  GET    /api/projects/{id}/activities
  POST   /api/projects/{id}/activities
  GET    /api/activities
  GET    /api/activities/{id}
  PATCH  /api/activities/{id}
  DELETE /api/activities/{id}
  GET    /api/activities/{id}/actions
  POST   /api/activities/{id}/actions
  GET    /api/actions
  GET    /api/actions/{id}
  PATCH  /api/actions/{id}
  DELETE /api/actions/{id}
  PUT    /api/actions/{id}/status
  PUT    /api/actions/{id}/quick-status
  POST   /api/actions/{id}/comments
  POST   /api/actions/{id}/evidence
  GET    /api/audit-logs
  GET    /api/audit-logs/daily-summary
  GET    /api/dashboard
  GET    /api/exports/{kind}
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from mineaction.domain.errors import (
    AuthFailure,
    DuplicateRoleError,
    MineActionError,
    NotFoundError,
    PartialFailure,
    PermissionDenied,
    UploadFailedError,
    WriteFailedError,
)
from mineaction.entrypoints.api.routes import (
    actions,
    activities,
    audit_logs,
    dashboard,
    exports,
    projects,
    roles,
    session,
)
from mineaction.logging_config import setup_logging

# ── ロギング初期化 ───────────────────────────────────────────────────────────
setup_logging()
logger = logging.getLogger(__name__)

# ── FastAPI アプリ ───────────────────────────────────────────────────────────
app = FastAPI(
    title="MineAction API",
    description="地雷対策プロジェクトの活動ログ・アクション管理 API",
    version="1.0.0",
)

# ── ドメイン例外 → HTTP ステータス ───────────────────────────────────────────────
# 上から順に isinstance で判定する（PartialFailure / WriteFailedError は 500）

_ERROR_STATUS: tuple[tuple[type[MineActionError], int], ...] = (
    (NotFoundError, 404),
    (PermissionDenied, 403),
    (AuthFailure, 401),
    (DuplicateRoleError, 409),
    (UploadFailedError, 502),
    (PartialFailure, 500),
    (WriteFailedError, 500),
)


@app.exception_handler(MineActionError)
async def _handle_domain_error(request: Request, exc: MineActionError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500
    )
    content: dict = {"detail": str(exc)}
    if isinstance(exc, PartialFailure):
        content["entity_id"] = exc.entity_id
    if status_code >= 500:
        logger.error(
            "Domain error: %s %s - %s", request.method, request.url.path, exc
        )
    else:
        logger.info(
            "Domain error: %s %s - %s", request.method, request.url.path, exc
        )
    return JSONResponse(status_code=status_code, content=content)


# ── グローバル例外ミドルウェア ──────────────────────────────────────────────────
# 【登録順の注意】
#   add_middleware は後から登録したものが外側になる（insert(0, ...) のため）。
#   このミドルウェアを CORSMiddleware より先に登録することで内側に配置し、
#   500 レスポンスが CORSMiddleware を通過して CORS ヘッダーが付与される。
#
# スタック: ServerErrorMiddleware → CORSMiddleware → このMW → ExceptionMiddleware → Routes


@app.middleware("http")
async def _catch_unhandled_exceptions(
    request: Request, call_next: Callable[[Request], Response]
) -> Response:
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(
            "Unhandled exception: %s %s - %s",
            request.method,
            request.url.path,
            exc,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# ── CORS（Web フロントエンドからのリクエストを許可） ─────────────────────────
# CORS_ORIGINS 環境変数でカンマ区切りのオリジンを指定可能
_extra_origins = [
    o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_extra_origins if _extra_origins else ["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# ── ルーター登録 ─────────────────────────────────────────────────────────────
_PREFIX = "/api"

app.include_router(session.router, prefix=_PREFIX)
app.include_router(roles.router, prefix=_PREFIX)
app.include_router(projects.router, prefix=_PREFIX)
app.include_router(activities.router, prefix=_PREFIX)
app.include_router(actions.router, prefix=_PREFIX)
app.include_router(audit_logs.router, prefix=_PREFIX)
app.include_router(dashboard.router, prefix=_PREFIX)
app.include_router(exports.router, prefix=_PREFIX)


@app.get("/health")
async def health() -> dict:
    """ヘルスチェックエンドポイント（Cloud Run の起動確認用）"""
    return {"status": "ok"}


logger.info("MineAction API started")
