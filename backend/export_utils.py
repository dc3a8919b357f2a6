"""Turn report rows (column label -> scalar) into downloadable CSV/XLSX files."""
import csv
import io
from io import BytesIO
from typing import Dict, List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

EXPORT_FORMATS = ("xlsx", "csv")

MEDIA_TYPES = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}


def _headers(rows: List[Dict]) -> List[str]:
    headers: List[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    return headers


def create_csv_export(rows: List[Dict]) -> BytesIO:
    output = BytesIO()
    # BOM so spreadsheet apps pick up UTF-8
    output.write(b"\xef\xbb\xbf")
    headers = _headers(rows)
    text_output = io.StringIO()
    writer = csv.DictWriter(text_output, fieldnames=headers, quoting=csv.QUOTE_MINIMAL)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    output.write(text_output.getvalue().encode("utf-8"))
    output.seek(0)
    return output


def create_excel_export(rows: List[Dict], sheet_name: str = "Data") -> BytesIO:
    headers = _headers(rows)
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name

    for col_idx, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        cell.alignment = Alignment(horizontal="center", vertical="center")

    for row_idx, row in enumerate(rows, 2):
        for col_idx, header in enumerate(headers, 1):
            ws.cell(row=row_idx, column=col_idx, value=row.get(header))

    for column in ws.columns:
        max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
        ws.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)

    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return output


def build_export(rows: List[Dict], export_format: str, sheet_name: str = "Data") -> BytesIO:
    if export_format == "csv":
        return create_csv_export(rows)
    return create_excel_export(rows, sheet_name)
