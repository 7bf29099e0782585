from __future__ import annotations
from typing import List, Dict, Any, Optional
from io import BytesIO
from datetime import datetime

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from openpyxl.styles import Font, Alignment


def _write_table(ws, rows: List[Dict[str, Any]], start_row: int = 1) -> int:
    """Writes header + rows starting at start_row; returns the next free row."""
    if not rows:
        ws.cell(row=start_row, column=1, value="No data")
        return start_row + 1

    headers = list(rows[0].keys())
    header_font = Font(bold=True)
    for col_idx, h in enumerate(headers, start=1):
        cell = ws.cell(row=start_row, column=col_idx, value=h)
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center", vertical="center")

    row_idx = start_row
    for r in rows:
        row_idx += 1
        for col_idx, h in enumerate(headers, start=1):
            ws.cell(row=row_idx, column=col_idx, value=r.get(h))
    return row_idx + 1


def _autosize(ws):
    for col_idx in range(1, ws.max_column + 1):
        max_len = 0
        for row_idx in range(1, ws.max_row + 1):
            v = ws.cell(row=row_idx, column=col_idx).value
            if v is None:
                continue
            max_len = max(max_len, len(str(v)))
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max_len + 2, 60)


def sheets_to_xlsx_bytes(sheets: Dict[str, List[Dict[str, Any]]], summary: Optional[Dict[str, Any]] = None) -> bytes:
    """
    sheets: sheet name -> list of row dicts
    summary: key/value pairs written on a leading "Summary" sheet
    """
    wb = Workbook()
    first = wb.active

    if summary is not None:
        first.title = "Summary"
        bold = Font(bold=True)
        for i, (k, v) in enumerate(summary.items(), start=1):
            first.cell(row=i, column=1, value=k).font = bold
            first.cell(row=i, column=2, value=v)
        _autosize(first)
        first = None

    for name, rows in sheets.items():
        if first is not None:
            ws = first
            ws.title = name[:31]
            first = None
        else:
            ws = wb.create_sheet(title=name[:31])
        _write_table(ws, rows)
        _autosize(ws)

    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def make_filename(prefix: str = "report") -> str:
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{ts}.xlsx"
