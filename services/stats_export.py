"""Excel export of promotion statistics."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from core.logger import get_logger
from database.models import Promotion
from services.stats_aggregator import DailyStats, PrizeStats, StatsSummary, StatsWindow

logger = get_logger(__name__)

HEADER_FILL = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF", size=12)
TITLE_FONT = Font(bold=True, size=14)
BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin'),
)


def _write_table(ws, headers: Sequence[str], rows: Sequence[Sequence[Any]], start_row: int = 1) -> None:
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=start_row, column=col_idx, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = BORDER
    for row_offset, values in enumerate(rows, start=1):
        for col_idx, value in enumerate(values, start=1):
            ws.cell(row=start_row + row_offset, column=col_idx, value=value).border = BORDER
    for col_idx in range(1, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = 22


def build_workbook(
    promotion: Promotion,
    summary: StatsSummary,
    daily: Sequence[DailyStats],
    prizes: Sequence[PrizeStats],
    window: Optional[StatsWindow] = None,
) -> Workbook:
    wb = Workbook()

    ws = wb.active
    ws.title = "Summary"
    ws['A1'] = f"{promotion.name} ({promotion.variant.value})"
    ws['A1'].font = TITLE_FONT
    ws.merge_cells('A1:B1')

    ws['A3'] = "Period"
    start = window.start.strftime('%Y-%m-%d') if window and window.start else "all time"
    end = window.end.strftime('%Y-%m-%d') if window and window.end else "now"
    ws['B3'] = f"{start} - {end}"
    ws['A3'].font = Font(bold=True)

    summary_rows = [
        ("Participants", summary.total_participants),
        ("Unique participants", summary.unique_participants),
        ("Wins", summary.total_wins),
        ("Redemptions", summary.total_redemptions),
        ("Conversion rate, %", summary.conversion_rate),
        ("Revenue", summary.total_revenue),
        ("Average session, s", summary.average_session_duration),
        ("Disqualified", summary.disqualified),
    ]
    _write_table(ws, ("Metric", "Value"), summary_rows, start_row=5)

    ws2 = wb.create_sheet("Daily")
    _write_table(
        ws2,
        ("Day", "Participants", "Wins", "Redemptions", "Revenue"),
        [(d.day, d.participants, d.wins, d.redemptions, d.revenue) for d in daily],
    )

    ws3 = wb.create_sheet("Prizes")
    _write_table(
        ws3,
        ("Prize", "Name", "Awarded", "Redeemed", "Revenue"),
        [(p.prize_id, p.prize_name, p.awarded, p.redeemed, p.revenue) for p in prizes],
    )
    return wb


def export_stats_xlsx(
    promotion: Promotion,
    breakdowns: Dict[str, Any],
    window: Optional[StatsWindow] = None,
    folder: Optional[str] = None,
) -> bytes:
    """Render the workbook to bytes, also saving it under ``folder`` when given."""
    wb = build_workbook(
        promotion,
        breakdowns["summary"],
        breakdowns["daily"],
        breakdowns["prizes"],
        window,
    )
    buffer = BytesIO()
    wb.save(buffer)
    content = buffer.getvalue()

    if folder:
        target_dir = Path(folder)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f"promotion_{promotion.id}_stats.xlsx"
        target.write_bytes(content)
        logger.info(f"Stats for promotion {promotion.id} exported to {target}")
    return content
