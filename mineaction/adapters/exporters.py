"""Exporter Adapters

RecordExporter ABC の実装。Activity / Action の一覧をスプレッドシート（xlsx）または
PDF に変換する。列構成は種別ごとに固定で、行の順序は入力順をそのまま使う。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from io import BytesIO
from xml.sax.saxutils import escape

from openpyxl import Workbook
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from mineaction.domain.models import Action, Activity
from mineaction.domain.ports import RecordExporter

logger = logging.getLogger(__name__)

EXPORT_KINDS = ("activities", "actions")

ACTIVITY_COLUMNS = ["Date", "Time", "Project", "Type", "Shift", "Crew", "Remarks"]
ACTION_COLUMNS = ["Issue", "Status", "Priority", "Due Date", "Responsible Person", "Created At"]


def _fmt_date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def _fmt_time(value: datetime | None) -> str:
    return value.strftime("%H:%M:%S") if value else ""


def export_rows(
    records: list[Activity] | list[Action],
    kind: str,
    project_names: dict[str, str] | None = None,
) -> tuple[list[str], list[list[str]]]:
    """
    種別ごとの固定列でヘッダーと行を作る。

    Raises:
        ValueError: kind が "activities" / "actions" 以外の場合
    """
    names = project_names or {}
    if kind == "activities":
        rows = [
            [
                _fmt_date(a.date),
                _fmt_time(a.date),
                names.get(a.project_id, ""),
                a.type.value,
                a.shift.value,
                a.crew,
                a.remarks or "",
            ]
            for a in records
        ]
        return list(ACTIVITY_COLUMNS), rows
    if kind == "actions":
        rows = [
            [
                a.issue,
                a.status.value,
                a.priority.value,
                _fmt_date(a.due_date),
                a.responsible_person,
                _fmt_date(a.created_at),
            ]
            for a in records
        ]
        return list(ACTION_COLUMNS), rows
    raise ValueError(f"Unknown export kind: {kind}")


class SpreadsheetExporter(RecordExporter):
    """openpyxl で1シートの xlsx を生成する。シート名は種別の先頭大文字"""

    media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    extension = "xlsx"

    def export(
        self,
        records: list[Activity] | list[Action],
        kind: str,
        project_names: dict[str, str] | None = None,
    ) -> bytes:
        columns, rows = export_rows(records, kind, project_names)

        wb = Workbook()
        ws = wb.active
        ws.title = kind.capitalize()
        ws.append(columns)
        for row in rows:
            ws.append(row)

        buffer = BytesIO()
        wb.save(buffer)
        logger.info("Spreadsheet exported: kind=%s, rows=%d", kind, len(rows))
        return buffer.getvalue()


class PdfExporter(RecordExporter):
    """reportlab で「<Kind> Report」見出し付きの表を生成する"""

    media_type = "application/pdf"
    extension = "pdf"

    def __init__(self, now: datetime | None = None) -> None:
        """
        Args:
            now: "Generated on" に表示する日時（省略時は現在時刻）
        """
        self._now = now

    def export(
        self,
        records: list[Activity] | list[Action],
        kind: str,
        project_names: dict[str, str] | None = None,
    ) -> bytes:
        columns, rows = export_rows(records, kind, project_names)
        generated = self._now or datetime.now(timezone.utc)

        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=landscape(A4),
            leftMargin=15 * mm,
            rightMargin=15 * mm,
            topMargin=15 * mm,
            bottomMargin=15 * mm,
            title=f"{kind.capitalize()} Report",
        )
        styles = getSampleStyleSheet()
        cell_style = styles["BodyText"]

        table = Table(
            [columns] + [[Paragraph(escape(v), cell_style) for v in row] for row in rows],
            repeatRows=1,
        )
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2f3b52")),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ]
            )
        )

        story = [
            Paragraph(f"{kind.capitalize()} Report", styles["Title"]),
            Paragraph(f"Generated on: {generated.strftime('%Y-%m-%d')}", styles["Normal"]),
            Spacer(1, 6 * mm),
            table,
        ]
        doc.build(story)
        logger.info("PDF exported: kind=%s, rows=%d", kind, len(rows))
        return buffer.getvalue()
