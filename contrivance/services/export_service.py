"""
Discovery session export rendering (JSON, CSV, Excel).

Each response flattens to one record; list values and vendor/sizing maps
become delimited strings so the record fits a single spreadsheet row.
"""

import csv
import io
import json
import logging
import re
from datetime import datetime, timezone
from typing import NamedTuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv", "xlsx")

CONTENT_TYPES = {
    "json": "application/json",
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

# (record key, header label)
EXPORT_COLUMNS = (
    ("question_id", "Question ID"),
    ("question_title", "Question Title"),
    ("question_type", "Question Type"),
    ("response_value", "Response Value"),
    ("vendors", "Vendors Selected"),
    ("sizing", "Sizing Selected"),
)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


class ExportResult(NamedTuple):
    payload: bytes
    content_type: str
    filename: str


# ── Flattening ─────────────────────────────────────────────────────────────

def _scalar_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def flatten_value(value) -> str:
    """Arrays join with ``"; "``; scalars become text; None becomes ``""``."""
    if isinstance(value, (list, tuple)):
        return "; ".join(_scalar_text(v) for v in value)
    return _scalar_text(value)


def flatten_vendors(vendor_selections: dict | None) -> str:
    """``{"Firewall": ["A", "B"], "EDR": ["C"]}`` → ``"Firewall: A | B; EDR: C"``."""
    parts = []
    for category, vendors in (vendor_selections or {}).items():
        if not vendors:
            continue
        if not isinstance(vendors, list):
            vendors = [vendors]
        parts.append(f"{category}: {' | '.join(_scalar_text(v) for v in vendors)}")
    return "; ".join(parts)


def flatten_sizing(sizing_selections: dict | None) -> str:
    """``{"users": 500, "sites": 3}`` → ``"users=500; sites=3"``."""
    return "; ".join(f"{k}={_scalar_text(v)}" for k, v in (sizing_selections or {}).items())


def flatten_response(response: dict) -> dict:
    return {
        "question_id": response.get("question_id") or "",
        "question_title": response.get("question_title") or "",
        "question_type": response.get("question_type") or "",
        "response_value": flatten_value(response.get("response_value")),
        "vendors": flatten_vendors(response.get("vendor_selections")),
        "sizing": flatten_sizing(response.get("sizing_selections")),
    }


def export_filename(account_name: str, session_id: int, fmt: str, when: datetime | None = None) -> str:
    """``discovery_<account-slug>_<session-id>_<YYYYMMDD>.<ext>``"""
    when = when or datetime.now(timezone.utc)
    slug = re.sub(r"[^a-z0-9]+", "-", (account_name or "").lower()).strip("-") or "account"
    return f"discovery_{slug}_{session_id}_{when.strftime('%Y%m%d')}.{fmt}"


# ── Renderers ──────────────────────────────────────────────────────────────

def render_json(session: dict, records: list[dict], notes: list[dict]) -> bytes:
    document = {
        "session": session,
        "records": records,
        "notes": notes,
        "exported_at": datetime.now(timezone.utc).isoformat(),
    }
    return json.dumps(document, ensure_ascii=False, indent=2, default=str).encode("utf-8")


def render_csv(records: list[dict]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow([label for _key, label in EXPORT_COLUMNS])
    for record in records:
        writer.writerow([record.get(key, "") for key, _label in EXPORT_COLUMNS])
    return buf.getvalue().encode("utf-8")


def render_xlsx(session: dict, records: list[dict]) -> bytes:
    """Styled workbook: title block, then one row per response."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Discovery"

    ws["A1"] = f"Discovery: {session.get('account_name', '')} ({session.get('vertical', '')})"
    ws["A1"].font = Font(size=14, bold=True)
    ws["A2"] = (
        f"Status: {session.get('status', '')}  |  "
        f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    )
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    header_row = 4
    for col, (_key, label) in enumerate(EXPORT_COLUMNS, 1):
        cell = ws.cell(row=header_row, column=col, value=label)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER

    for offset, record in enumerate(records, 1):
        for col, (key, _label) in enumerate(EXPORT_COLUMNS, 1):
            cell = ws.cell(row=header_row + offset, column=col, value=record.get(key, ""))
            cell.border = THIN_BORDER
            cell.alignment = Alignment(wrap_text=True, vertical="top")

    for col, width in enumerate((28, 40, 16, 40, 50, 30), 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def render_export(fmt: str, session: dict, responses: list[dict], notes: list[dict]) -> ExportResult:
    """Render a session in *fmt*; the caller has already validated the format."""
    records = [flatten_response(r) for r in responses]
    if fmt == "json":
        payload = render_json(session, records, notes)
    elif fmt == "csv":
        payload = render_csv(records)
    else:
        payload = render_xlsx(session, records)
    filename = export_filename(session.get("account_name", ""), session["id"], fmt)
    logger.debug("Rendered %s export session=%s bytes=%d", fmt, session["id"], len(payload))
    return ExportResult(payload=payload, content_type=CONTENT_TYPES[fmt], filename=filename)
