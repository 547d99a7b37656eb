"""ActionService - 是正・予防アクションの CRUD・コメント・エビデンス

comments / evidence は Action ドキュメントの埋め込み配列。
追記は「現在の配列を読む → メモリ上で末尾に追加 → 配列ごと書き戻す」で行うため
同時追記は後勝ちになる（既知の制約）。
"""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from mineaction.domain.errors import NotFoundError, PartialFailure, UploadFailedError
from mineaction.domain.models import (
    Action,
    ActionComment,
    ActionEvidence,
    ActionFilters,
    ActionStatus,
    Actor,
    AuditAction,
    AuditEntityType,
    EvidenceType,
    to_plain,
)
from mineaction.domain.ports import ActionRepository, ActivityRepository, BlobStorage
from mineaction.logging_config import log_fields
from mineaction.services.audit_service import AuditService, compute_changes

logger = logging.getLogger(__name__)


def filter_actions(actions: list[Action], filters: ActionFilters | None) -> list[Action]:
    """
    取得済みのアクション一覧にフィルターを適用する（純粋関数）。

    - 各条件を独立に適用した結果の積集合を、元の順序のまま返す
    - 入力リストは変更しない
    - statuses / priorities は空なら条件なし
    - responsible_person は大文字小文字を無視した部分一致
    - due_from / due_to は両端を含む（期限日のないアクションは期間指定時に除外）
    """
    if filters is None:
        return list(actions)

    person = filters.responsible_person.lower()

    def _match(action: Action) -> bool:
        if filters.statuses and action.status not in filters.statuses:
            return False
        if filters.priorities and action.priority not in filters.priorities:
            return False
        if person and person not in action.responsible_person.lower():
            return False
        has_range = filters.due_from is not None or filters.due_to is not None
        if has_range and action.due_date is None:
            return False
        if filters.due_from is not None and action.due_date < filters.due_from:
            return False
        if filters.due_to is not None and action.due_date > filters.due_to:
            return False
        return True

    return [a for a in actions if _match(a)]


def is_overdue(action: Action, now: datetime) -> bool:
    """
    表示用の期限切れ判定。

    Completed 以外で、期限日が今日の 0:00 より前なら True。
    保存されたステータス（ActionStatus.OVERDUE）とは独立に計算する。
    期限日のないアクションは期限切れにならない。
    """
    if action.status is ActionStatus.COMPLETED or action.due_date is None:
        return False
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return action.due_date < start_of_today


def evidence_path(action_id: str, evidence_id: str, filename: str) -> str:
    """エビデンスの保存先: actions/{action_id}/evidence/{evidence_id}.{ext}"""
    ext = os.path.splitext(filename)[1]
    return f"actions/{action_id}/evidence/{evidence_id}{ext}"


class ActionService:
    def __init__(
        self,
        repo: ActionRepository,
        activities: ActivityRepository,
        audit: AuditService,
        storage: BlobStorage,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Args:
            repo: アクションリポジトリ
            activities: 親 Activity の存在確認用
            audit: 監査ログ
            storage: エビデンスの保存先
            clock: 埋め込み配列要素の created_at 用（配列内ではサーバータイムスタンプが使えない）
        """
        self._repo = repo
        self._activities = activities
        self._audit = audit
        self._storage = storage
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── CRUD ────────────────────────────────────────────────────────────────

    def create_action(self, activity_id: str, action: Action, actor: Actor) -> Action:
        """
        Raises:
            NotFoundError: 親 Activity が存在しない場合
        """
        if self._activities.get(activity_id) is None:
            raise NotFoundError("activity", activity_id)

        created = self._repo.create(
            replace(
                action,
                id="",
                activity_id=activity_id,
                created_by=actor.uid,
                comments=[],
                evidence=[],
            )
        )
        logger.info("Action created: id=%s, activity_id=%s", created.id, activity_id)

        self._audit.record_committed(
            AuditEntityType.ACTION,
            AuditAction.CREATE,
            created.id,
            actor,
            details=f"Created action: {created.issue}",
        )
        return created

    def get_action(self, action_id: str) -> Action:
        action = self._repo.get(action_id)
        if action is None:
            raise NotFoundError("action", action_id)
        return action

    def list_by_activity(self, activity_id: str) -> list[Action]:
        return self._repo.list_by_activity(activity_id)

    def list_actions(self, filters: ActionFilters | None = None) -> list[Action]:
        """全件を取得してからクライアントサイドで絞り込む"""
        return filter_actions(self._repo.list_all(), filters)

    def update_action(self, action_id: str, fields: dict[str, Any], actor: Actor) -> Action:
        before = self.get_action(action_id)
        changes = compute_changes(to_plain(before), fields)
        self._repo.update(action_id, fields)
        logger.info("Action updated: id=%s, fields=%s", action_id, list(fields))

        self._audit.record_committed(
            AuditEntityType.ACTION,
            AuditAction.UPDATE,
            action_id,
            actor,
            changes=changes,
            details=f"Updated action: {fields.get('issue', before.issue)}",
        )
        return self.get_action(action_id)

    def delete_action(self, action_id: str, actor: Actor) -> None:
        before = self.get_action(action_id)
        self._repo.delete(action_id)
        logger.info("Action deleted: id=%s", action_id)

        self._audit.record_committed(
            AuditEntityType.ACTION,
            AuditAction.DELETE,
            action_id,
            actor,
            details=f"Deleted action: {before.issue}",
        )

    # ── ステータス変更（2系統） ──────────────────────────────────────────────

    def set_status(self, action_id: str, status: ActionStatus) -> None:
        """
        一覧画面からのインライン変更用。status と updated_at のみ更新し、監査ログは残さない。
        """
        self._repo.update(action_id, {"status": status})
        logger.info("Action status set (unaudited): id=%s, status=%s", action_id, status.value)

    def change_status(self, action_id: str, status: ActionStatus, actor: Actor) -> Action:
        """ステータス変更を通常の更新として扱い、差分を監査ログに残す"""
        return self.update_action(action_id, {"status": status}, actor)

    # ── コメント・エビデンス ────────────────────────────────────────────────

    def add_comment(self, action_id: str, content: str, actor: Actor) -> ActionComment:
        """コメントを末尾に追加する（既存コメントの順序・内容は維持、重複除去なし）"""
        action = self.get_action(action_id)
        comment = ActionComment(
            id=str(uuid.uuid4()),
            content=content,
            created_by=actor.uid,
            created_at=self._clock(),
        )
        self._repo.replace_comments(action_id, list(action.comments) + [comment])
        logger.info(
            "Comment added: action_id=%s, comment_id=%s, total=%d",
            action_id,
            comment.id,
            len(action.comments) + 1,
        )
        return comment

    def add_evidence(
        self,
        action_id: str,
        content: bytes,
        filename: str,
        content_type: str,
        evidence_type: EvidenceType,
        actor: Actor,
    ) -> ActionEvidence:
        """
        エビデンスをアップロードし、Action の evidence 配列に追加する。

        1. ストレージにアップロード
        2. 取得可能なURLを発行（失敗したらアップロード済みファイルを削除）
        3. evidence 配列に追記
        1〜2 が失敗した場合は 3 を行わない。

        Raises:
            NotFoundError: Action が存在しない場合
            UploadFailedError: アップロードまたはURL発行に失敗した場合（Action は無変更）
            PartialFailure: アップロード後のメタデータ追記に失敗した場合
        """
        self.get_action(action_id)

        evidence_id = str(uuid.uuid4())
        path = evidence_path(action_id, evidence_id, filename)
        try:
            self._storage.upload(path, content, content_type)
        except Exception as e:
            logger.exception("Evidence upload failed: action_id=%s, path=%s", action_id, path)
            raise UploadFailedError(f"Failed to upload evidence: {filename}") from e

        try:
            url = self._storage.get_retrievable_url(path)
        except Exception as e:
            logger.exception("Evidence URL issue failed: action_id=%s, path=%s", action_id, path)
            self._storage.delete(path)
            raise UploadFailedError(f"Failed to issue URL for evidence: {filename}") from e

        evidence = ActionEvidence(
            id=evidence_id,
            type=evidence_type,
            url=url,
            filename=filename,
            created_by=actor.uid,
            created_at=self._clock(),
        )
        try:
            current = self.get_action(action_id)
            self._repo.replace_evidence(action_id, list(current.evidence) + [evidence])
        except Exception as e:
            logger.exception(
                "Evidence metadata append failed after upload: action_id=%s, path=%s",
                action_id,
                path,
                extra=log_fields(partial_failure=True, action_id=action_id, blob_path=path),
            )
            raise PartialFailure(
                f"Evidence uploaded to {path} but metadata append failed", action_id
            ) from e

        logger.info(
            "Evidence added: action_id=%s, evidence_id=%s",
            action_id,
            evidence_id,
            extra=log_fields(action_id=action_id, evidence_id=evidence_id, blob_path=path),
        )
        return evidence
