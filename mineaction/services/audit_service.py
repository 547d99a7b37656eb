"""AuditService - 監査ログの書き込みと参照

作成・更新・削除の各操作の後に1件ずつ追記する。追記のみで、読み戻して
ドメインオブジェクトに反映することはない。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any

from mineaction.domain.errors import PartialFailure
from mineaction.domain.models import (
    Actor,
    AuditAction,
    AuditEntityType,
    AuditLog,
    DailySummary,
    FieldChange,
    to_plain,
)
from mineaction.domain.ports import AuditLogRepository
from mineaction.logging_config import log_fields

logger = logging.getLogger(__name__)

# 差分対象外（書き込みのたびにストアが更新する）
_UNDIFFED_FIELDS = frozenset({"updated_at"})

_RECENT_LIMIT = 10


def compute_changes(before: Mapping[str, Any], partial: Mapping[str, Any]) -> list[FieldChange]:
    """
    更新前のレコードと部分更新から差分リストを作る。

    partial のキー順に、値が変わるフィールドだけを返す。
    before に存在しないフィールドの旧値は None。

    Args:
        before: 更新前のレコード（to_plain 済みの dict）
        partial: 更新するフィールドのみを含む dict

    Returns:
        list[FieldChange]
    """
    changes: list[FieldChange] = []
    for key, new_value in partial.items():
        if key in _UNDIFFED_FIELDS:
            continue
        old_value = to_plain(before.get(key))
        new_plain = to_plain(new_value)
        if old_value != new_plain:
            changes.append(FieldChange(field=key, old_value=old_value, new_value=new_plain))
    return changes


def day_window(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """ローカル日付の [00:00, 翌日 00:00) を返す（end は含まない）"""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


class AuditService:
    """
    監査ログの追記と参照。

    追記に失敗した場合の例外は呼び出し元にそのまま伝播する。
    主書き込みのロールバックは行わない（呼び出し元で PartialFailure に変換する）。
    """

    def __init__(self, repo: AuditLogRepository, tz: tzinfo = timezone.utc) -> None:
        """
        Args:
            repo: 監査ログリポジトリ
            tz: 日次サマリーの日付境界に使うタイムゾーン
        """
        self._repo = repo
        self._tz = tz

    def record(
        self,
        entity_type: AuditEntityType,
        action: AuditAction,
        entity_id: str,
        actor: Actor,
        changes: list[FieldChange] | None = None,
        details: str | None = None,
    ) -> str:
        """監査ログを1件追記し、IDを返す"""
        entry = AuditLog(
            id="",
            type=entity_type,
            action=action,
            entity_id=entity_id,
            user_id=actor.uid,
            user_name=actor.name,
            changes=changes,
            details=details,
        )
        log_id = self._repo.append(entry)
        logger.info(
            "Audit log recorded: type=%s, action=%s, entity_id=%s, user=%s",
            entity_type.value,
            action.value,
            entity_id,
            actor.uid,
            extra=log_fields(
                audit_log_id=log_id,
                entity_type=entity_type,
                audit_action=action,
                entity_id=entity_id,
                user_id=actor.uid,
            ),
        )
        return log_id

    def record_committed(
        self,
        entity_type: AuditEntityType,
        action: AuditAction,
        entity_id: str,
        actor: Actor,
        changes: list[FieldChange] | None = None,
        details: str | None = None,
    ) -> str:
        """
        コミット済みの主書き込みに対する監査ログを追記する。

        Raises:
            PartialFailure: 監査ログの追記に失敗した場合（主書き込みは残る）
        """
        try:
            return self.record(entity_type, action, entity_id, actor, changes, details)
        except Exception as e:
            logger.exception(
                "Audit log write failed after committed %s: type=%s, entity_id=%s",
                action.value,
                entity_type.value,
                entity_id,
                extra=log_fields(
                    partial_failure=True,
                    entity_type=entity_type,
                    audit_action=action,
                    entity_id=entity_id,
                ),
            )
            raise PartialFailure(
                f"{entity_type.value} {action.value} committed but audit log write failed",
                entity_id,
            ) from e

    def get_logs(
        self,
        entity_type: AuditEntityType | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditLog]:
        """条件で絞り込んだ監査ログを新しい順で返す"""
        return self._repo.list_logs(
            type=entity_type.value if entity_type else None,
            entity_id=entity_id,
            user_id=user_id,
            start=start,
            end=end,
            limit=limit,
        )

    def daily_summary(self, day: date | None = None) -> DailySummary:
        """
        指定日（省略時は今日）の監査ログを {エンティティ種別, 操作} ごとに集計する。

        Returns:
            DailySummary: 件数は全組み合わせを 0 で初期化済み
        """
        if day is None:
            day = datetime.now(self._tz).date()
        start, end = day_window(day, self._tz)
        logs = self.get_logs(start=start, end=end)

        counts = {
            t.value: {a.value: 0 for a in AuditAction} for t in AuditEntityType
        }
        for log in logs:
            counts[log.type.value][log.action.value] += 1

        return DailySummary(
            day=day,
            start=start,
            end=end,
            counts=counts,
            recent=logs[:_RECENT_LIMIT],
        )
