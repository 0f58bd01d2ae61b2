"""
Activity log export renderers.

Both renderers are pure: the same events, stats, exporter and generation
time always produce the same output. Events are expected newest first, as
returned by get_recent_activities.
"""
from datetime import date, datetime, timezone
from io import BytesIO
from typing import NamedTuple, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from masjid_dashboard.schemas import ActivityLogSchema, ActivityStats

REPORT_TITLE = "Activity Logs Export Report"
SYSTEM_NAME = "Masjid Dashboard Activity Logs"
COLUMNS = ("Date & Time", "User", "Role", "Action", "Details")
FAILED_PREFIX = "[FAILED] "

# PDF geometry (points, origin bottom-left)
PAGE_WIDTH, PAGE_HEIGHT = letter
MARGIN = 50
TOP_Y = PAGE_HEIGHT - MARGIN
BOTTOM_Y = 92
COLUMN_WIDTHS = (100, 80, 50, 140, 200)
HEADER_ROW_HEIGHT = 20
ROW_HEIGHT = 15
SEPARATOR_EVERY = 5
SEPARATOR_GAP = 5
ROW_FONT_SIZE = 8


class Exporter(NamedTuple):
    username: str
    role: str


class RowSlot(NamedTuple):
    page: int         # 0 = the page the table starts on
    y: float          # text baseline
    separator: bool   # draw a rule under this row


def export_filename(count: int, ext: str, today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"activity-logs-export-{today.isoformat()}-{count}-records.{ext}"


def export_details(event: ActivityLogSchema) -> str:
    details = event.details or ""
    if event.success is False:
        return f"{FAILED_PREFIX}{details}"
    return details


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _row_time(dt: datetime) -> str:
    return _as_utc(dt).strftime("%Y-%m-%d %H:%M:%S")


def _long_time(dt: datetime) -> str:
    return _as_utc(dt).strftime("%B %d, %Y %H:%M:%S UTC")


def _date_range(events: Sequence[ActivityLogSchema]) -> str:
    if not events:
        return "N/A to N/A"
    oldest = _as_utc(events[-1].timestamp).date().isoformat()
    newest = _as_utc(events[0].timestamp).date().isoformat()
    return f"{oldest} to {newest}"


def _summary_lines(events: Sequence[ActivityLogSchema], stats: ActivityStats) -> list[str]:
    return [
        f"Total Records in Export: {len(events)}",
        f"Total Activities in System: {stats.total_activities}",
        f"Unique Users in System: {stats.unique_user_count}",
        f"Admin Actions: {stats.admin_count}",
        f"User Actions: {stats.user_count}",
        f"Guest Actions: {stats.guest_count}",
    ]


def _footer_lines(
    events: Sequence[ActivityLogSchema], exporter: Exporter, generated_at: datetime
) -> list[str]:
    return [
        f"Export completed at: {_long_time(generated_at)}",
        f"File contains {len(events)} activity records",
        f"Date range: {_date_range(events)}",
        f"Generated by: {exporter.username}",
        f"System: {SYSTEM_NAME}",
    ]


# ── CSV ───────────────────────────────────────────────────────────────────────

def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def csv_row(event: ActivityLogSchema) -> str:
    return ",".join([
        _row_time(event.timestamp),
        _quote(event.user or "Unknown"),
        _quote(event.role or "Unknown"),
        _quote(event.action or "Unknown Action"),
        _quote(export_details(event)),
    ])


def render_csv(
    events: Sequence[ActivityLogSchema],
    stats: ActivityStats,
    exporter: Exporter,
    generated_at: datetime,
) -> str:
    lines = [
        REPORT_TITLE,
        f"Generated on: {_long_time(generated_at)}",
        f"Exported by: {exporter.username} ({exporter.role})",
        "",
        "Summary Statistics:",
        *(f"- {line}" for line in _summary_lines(events, stats)),
        "",
        "Detailed Activity Log:",
        ",".join(COLUMNS),
        *(csv_row(event) for event in events),
        "",
        "Export Information:",
        *(f"- {line}" for line in _footer_lines(events, exporter, generated_at)),
    ]
    return "\n".join(lines) + "\n"


# ── PDF ───────────────────────────────────────────────────────────────────────

def layout_rows(count: int, first_y: float) -> list[RowSlot]:
    """Place table rows, breaking to a new page once the cursor drops below
    BOTTOM_Y. Continuation pages start under a repeated header row."""
    slots = []
    page = 0
    y = first_y
    for index in range(count):
        if y < BOTTOM_Y:
            page += 1
            y = TOP_Y - HEADER_ROW_HEIGHT
        separator = (index + 1) % SEPARATOR_EVERY == 0
        slots.append(RowSlot(page, y, separator))
        y -= ROW_HEIGHT
        if separator:
            y -= SEPARATOR_GAP
    return slots


def _fit(text: str, width: float, font: str = "Helvetica", size: int = ROW_FONT_SIZE) -> str:
    text = " ".join(text.split())
    limit = width - 4
    if stringWidth(text, font, size) <= limit:
        return text
    ellipsis = "..."
    while text and stringWidth(text + ellipsis, font, size) > limit:
        text = text[:-1]
    return text + ellipsis


def _column_x(index: int) -> float:
    return MARGIN + sum(COLUMN_WIDTHS[:index])


def _draw_page_number(c: canvas.Canvas) -> None:
    c.saveState()
    c.setFont("Helvetica", 8)
    c.setFillColor(colors.HexColor("#7f8c8d"))
    c.drawCentredString(PAGE_WIDTH / 2, 30, f"Page {c.getPageNumber()}")
    c.restoreState()


def _draw_table_header(c: canvas.Canvas, y: float) -> None:
    c.setFont("Helvetica-Bold", 9)
    c.setFillColor(colors.HexColor("#2c3e50"))
    for index, header in enumerate(COLUMNS):
        c.drawString(_column_x(index), y, header)


def _new_page(c: canvas.Canvas) -> None:
    _draw_page_number(c)
    c.showPage()


def render_pdf(
    events: Sequence[ActivityLogSchema],
    stats: ActivityStats,
    exporter: Exporter,
    generated_at: datetime,
) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter, invariant=1)
    c.setTitle(REPORT_TITLE)
    c.setAuthor(exporter.username)

    y = TOP_Y - 14
    c.setFont("Helvetica-Bold", 22)
    c.drawCentredString(PAGE_WIDTH / 2, y, REPORT_TITLE)
    y -= 40

    c.setFont("Helvetica", 12)
    c.drawString(MARGIN, y, f"Generated on: {_long_time(generated_at)}")
    y -= 16
    c.drawString(MARGIN, y, f"Exported by: {exporter.username} ({exporter.role})")
    y -= 32

    c.setFont("Helvetica-Bold", 14)
    c.drawString(MARGIN, y, "Summary Statistics:")
    y -= 18
    c.setFont("Helvetica", 10)
    for line in _summary_lines(events, stats):
        c.drawString(MARGIN + 10, y, f"• {line}")
        y -= 14
    y -= 20

    c.setFont("Helvetica-Bold", 14)
    c.drawString(MARGIN, y, "Detailed Activity Log:")
    y -= 24

    _draw_table_header(c, y)
    y -= HEADER_ROW_HEIGHT

    page = 0
    c.setFont("Helvetica", ROW_FONT_SIZE)
    c.setFillColor(colors.HexColor("#34495e"))
    for event, slot in zip(events, layout_rows(len(events), y)):
        if slot.page != page:
            _new_page(c)
            page = slot.page
            _draw_table_header(c, TOP_Y)
            c.setFont("Helvetica", ROW_FONT_SIZE)
            c.setFillColor(colors.HexColor("#34495e"))

        cells = (
            _row_time(event.timestamp),
            event.user or "Unknown",
            event.role or "Unknown",
            event.action or "Unknown Action",
            export_details(event),
        )
        for index, cell in enumerate(cells):
            c.drawString(_column_x(index), slot.y, _fit(cell, COLUMN_WIDTHS[index]))

        if slot.separator:
            rule_y = slot.y - ROW_HEIGHT + 8
            c.saveState()
            c.setStrokeColor(colors.HexColor("#bdc3c7"))
            c.setLineWidth(0.5)
            c.line(MARGIN, rule_y, MARGIN + sum(COLUMN_WIDTHS), rule_y)
            c.restoreState()

    # Summary page
    _new_page(c)
    y = TOP_Y
    c.setFont("Helvetica", 10)
    c.setFillColor(colors.HexColor("#7f8c8d"))
    c.drawString(MARGIN, y, "Export Information:")
    y -= 18
    c.setFont("Helvetica", 9)
    for line in _footer_lines(events, exporter, generated_at):
        c.drawString(MARGIN + 10, y, f"• {line}")
        y -= 13
    _draw_page_number(c)
    c.showPage()
    c.save()
    return buffer.getvalue()
