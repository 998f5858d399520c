"""
BOQ workbook import.

Expected layout per sheet (columns A-E):
    S.No | Description | Location | Unit | Quantity

A whole-number S.No starts a headline, a decimal S.No (1.1, 1.2, ...) is a
line item of the current headline. Each sheet becomes one package.
"""
import logging
import math
from io import BytesIO
from typing import List, Optional

from openpyxl import load_workbook
from pydantic import BaseModel

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 10
HEADER_MARKERS = ("s.no", "sl.no")


class ParsedLineItem(BaseModel):
    item_number: str
    description: str = ""
    location: str = ""
    unit: str = ""
    quantity: float = 0


class ParsedHeadline(BaseModel):
    serial_number: int
    name: str
    line_items: List[ParsedLineItem] = []


class ParsedPackage(BaseModel):
    package_name: str
    headlines: List[ParsedHeadline] = []


class BOQParseResult(BaseModel):
    success: bool
    packages: List[ParsedPackage] = []
    warnings: List[str] = []
    error: Optional[str] = None


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _quantity(value) -> float:
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            quantity = float(value)
        else:
            quantity = float(_text(value) or 0)
    except (ValueError, OverflowError):
        return 0.0
    return quantity if math.isfinite(quantity) else 0.0


def _serial(value) -> Optional[float]:
    """Column A as a number; None for blanks, text and non-finite values"""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        serial = float(value) if isinstance(value, (int, float)) else float(_text(value))
    except (ValueError, OverflowError):
        return None
    return serial if math.isfinite(serial) else None


def _item_number(raw, serial: float) -> str:
    # keep "1.10" as typed; numeric cells render through repr of the float
    if isinstance(raw, str):
        return raw.strip()
    return repr(serial) if serial != int(serial) else str(int(serial))


def _is_header(cell) -> bool:
    first = _text(cell).lower()
    return any(marker in first for marker in HEADER_MARKERS) or first == "sno"


def parse_sheet(rows: List[tuple], sheet_name: str, warnings: List[str]) -> Optional[ParsedPackage]:
    package_name = sheet_name
    for row in rows[:2]:
        if row and isinstance(row[0], str) and row[0].strip() and not _is_header(row[0]):
            package_name = row[0].strip()
            break

    header_index = None
    for i, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        if row and len(row) >= 4 and _is_header(row[0]):
            header_index = i
            break

    if header_index is None:
        warnings.append(f'No header row found in sheet "{sheet_name}"')
        return None

    headlines: List[ParsedHeadline] = []
    current: Optional[ParsedHeadline] = None

    for row in rows[header_index + 1:]:
        if not row or len(row) < 2:
            continue
        cells = list(row) + [None] * (5 - len(row))
        serial = _serial(cells[0])
        if serial is None:
            continue

        description = _text(cells[1])
        if serial == int(serial):
            if current is not None:
                headlines.append(current)
            current = ParsedHeadline(
                serial_number=int(serial),
                name=description or f"Item {int(serial)}",
            )
            continue

        item = ParsedLineItem(
            item_number=_item_number(cells[0], serial),
            description=description,
            location=_text(cells[2]),
            unit=_text(cells[3]),
            quantity=_quantity(cells[4]),
        )
        if current is None:
            current = ParsedHeadline(
                serial_number=math.floor(serial),
                name=f"Item {math.floor(serial)}",
            )
        current.line_items.append(item)

    if current is not None:
        headlines.append(current)

    if not headlines:
        warnings.append(f'No BOQ headlines found in sheet "{sheet_name}"')
        return None

    return ParsedPackage(package_name=package_name, headlines=headlines)


def parse_boq_workbook(content: bytes) -> BOQParseResult:
    """Parse every sheet of an .xlsx BOQ; never raises on bad input"""
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        logger.warning(f"BOQ workbook could not be opened: {e}")
        return BOQParseResult(
            success=False,
            error="Failed to parse Excel file. Please check the file format.",
        )

    packages: List[ParsedPackage] = []
    warnings: List[str] = []
    try:
        for ws in wb.worksheets:
            rows = [row for row in ws.iter_rows(values_only=True)]
            if len(rows) < 3:
                warnings.append(f'Sheet "{ws.title}" has insufficient data')
                continue
            parsed = parse_sheet(rows, ws.title, warnings)
            if parsed is not None:
                packages.append(parsed)
    finally:
        wb.close()

    if not packages:
        return BOQParseResult(
            success=False,
            warnings=warnings,
            error="No valid BOQ data found in the Excel file",
        )
    return BOQParseResult(success=True, packages=packages, warnings=warnings)
