"""
Spreadsheet accessor - read-only view of a workbook for the extractor.

The extractor only needs three capabilities: look up a worksheet by name,
report the populated column range and return a cell's displayed text. This
module defines those capabilities as protocols and provides an openpyxl
implementation.
"""

import logging
import re
import zipfile
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Context, Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple

import openpyxl
from openpyxl.styles.numbers import is_date_format
from openpyxl.utils.exceptions import InvalidFileException

from services.errors import CellReadError, WorkbookUnavailable, WorksheetNotFound

logger = logging.getLogger(__name__)

# Digit placeholders of a number format section (e.g. "#,##0.00")
NUMBER_TOKEN_PATTERN = re.compile(r'[#0?,.]+')

# Bracketed format tokens such as colors and locales ([Red], [$-409])
BRACKET_TOKEN_PATTERN = re.compile(r'\[[^\]]*\]')

# Scientific notation is rendered as General
SCIENTIFIC_PATTERN = re.compile(r'E[+-]', re.IGNORECASE)

# Wide enough to quantize any float without InvalidOperation
ROUNDING_CONTEXT = Context(prec=400, rounding=ROUND_HALF_UP)

# Date format tokens; quoted and escaped literals and padding come first
DATE_TOKEN_PATTERN = re.compile(r'"[^"]*"|\\.|_.|\*.|am/pm|a/p|y+|m+|d+|h+|s+|.', re.IGNORECASE)

# Day zero of the 1900 date system, used to render bare times
EXCEL_EPOCH = date(1899, 12, 30)


class SheetHandle(Protocol):
    """Read access to one worksheet."""

    name: str

    def cell_text(self, row: int, column: int) -> str:
        ...

    def populated_column_range(self) -> Tuple[int, int]:
        ...


class WorkbookHandle(Protocol):
    """An opened workbook."""

    def worksheet(self, name: str) -> SheetHandle:
        ...

    def close(self) -> None:
        ...


class SpreadsheetAccessor(Protocol):
    """Opens workbooks by path."""

    def open_workbook(self, path: str) -> WorkbookHandle:
        ...


def _format_general(value: float) -> str:
    if float(value).is_integer() and abs(value) < 1e15:
        return str(int(value))
    return format(value, '.15g')


def _render_number(value: float, token: str) -> str:
    integer_part, _, fraction = token.partition('.')
    required = fraction.count('0')
    decimals = sum(1 for ch in fraction if ch in '0#?')

    # Excel works to 15 significant digits and rounds halves away from zero
    rounded = Decimal(format(value, '.15g')).quantize(Decimal(1).scaleb(-decimals), context=ROUNDING_CONTEXT)
    if ',' in integer_part:
        text = f"{rounded:,.{decimals}f}"
    else:
        text = f"{rounded:.{decimals}f}"

    # Optional fraction digits ('#') are dropped when zero
    if decimals > required:
        whole, _, digits = text.partition('.')
        digits = digits.rstrip('0')
        if len(digits) < required:
            digits = digits.ljust(required, '0')
        text = f"{whole}.{digits}" if digits else whole

    if '0' not in integer_part and text.lstrip('-').startswith('0.'):
        text = text.replace('0.', '.', 1)

    return text


def _render_section(value: float, section: str) -> str:
    """Render a number through one section of an Excel number format."""
    section = BRACKET_TOKEN_PATTERN.sub('', section)
    unquoted = re.sub(r'"[^"]*"', '', section)
    if '%' in unquoted:
        value = value * 100

    out = []
    rendered_number = False
    i = 0
    while i < len(section):
        ch = section[i]
        if ch == '"':
            end = section.find('"', i + 1)
            end = len(section) if end == -1 else end
            out.append(section[i + 1:end])
            i = end + 1
        elif ch == '\\':
            out.append(section[i + 1:i + 2])
            i += 2
        elif ch == '_':
            # Padding the width of the next character
            out.append(' ')
            i += 2
        elif ch == '*':
            # Repeat-fill character; no column width to fill here
            i += 2
        elif ch in '#0?,.':
            match = NUMBER_TOKEN_PATTERN.match(section, i)
            token = match.group(0)
            if not any(c in token for c in '0#'):
                out.append(' ' * token.count('?'))
            elif not rendered_number:
                out.append(_render_number(value, token))
                rendered_number = True
            i = match.end()
        else:
            out.append(ch)
            i += 1

    return ''.join(out)


def format_number(value: float, number_format: Optional[str]) -> str:
    """
    Approximate the text Excel displays for a number.

    Supports the positive/negative/zero sections, grouping, fixed and optional
    decimals, percentages, literals and the padding used by accounting
    formats (which is how a zero renders as " $-   ").
    """
    number_format = number_format or 'General'
    sections = number_format.split(';')

    if value < 0 and len(sections) > 1:
        section, value = sections[1], abs(value)
    elif value == 0 and len(sections) > 2:
        section = sections[2]
    else:
        section = sections[0]

    if section.strip().lower() in ('general', '', '@'):
        return _format_general(value)
    if SCIENTIFIC_PATTERN.search(re.sub(r'"[^"]*"', '', section)):
        return _format_general(value)

    return _render_section(value, section)


def _is_minute_token(tokens, index: int) -> bool:
    """An 'm'/'mm' token means minutes right after an hour or before seconds."""
    for previous in reversed(tokens[:index]):
        if previous[0] in 'hH':
            return True
        if previous[0] in 'yYdDmMsS':
            break
    for following in tokens[index + 1:]:
        if following[0] in 'sS':
            return True
        if following[0] in 'yYdDmMhH':
            break
    return False


def format_date(value: datetime, number_format: str) -> str:
    """
    Render a date/time through an Excel date format such as "m/d/yyyy" or
    "dd-mmm-yy h:mm AM/PM". Elapsed-time ([h]) and fractional second
    tokens are not supported.
    """
    section = BRACKET_TOKEN_PATTERN.sub('', number_format.split(';')[0])
    tokens = DATE_TOKEN_PATTERN.findall(section)
    twelve_hour = any(token.lower() in ('am/pm', 'a/p') for token in tokens)

    out = []
    for index, token in enumerate(tokens):
        lower = token.lower()
        if token.startswith('"'):
            out.append(token[1:-1])
        elif token.startswith('\\'):
            out.append(token[1:])
        elif lower[0] == 'y':
            out.append(f"{value.year % 100:02d}" if len(lower) <= 2 else f"{value.year:04d}")
        elif lower[0] == 'm' and len(lower) <= 2 and _is_minute_token(tokens, index):
            out.append(f"{value.minute:0{len(lower)}d}")
        elif lower == 'm':
            out.append(str(value.month))
        elif lower == 'mm':
            out.append(f"{value.month:02d}")
        elif lower == 'mmm':
            out.append(value.strftime('%b'))
        elif lower == 'mmmmm':
            out.append(value.strftime('%B')[0])
        elif lower.startswith('mmmm'):
            out.append(value.strftime('%B'))
        elif lower == 'd':
            out.append(str(value.day))
        elif lower == 'dd':
            out.append(f"{value.day:02d}")
        elif lower == 'ddd':
            out.append(value.strftime('%a'))
        elif lower.startswith('dddd'):
            out.append(value.strftime('%A'))
        elif lower[0] == 'h':
            hour = (value.hour % 12 or 12) if twelve_hour else value.hour
            out.append(f"{hour:0{min(len(lower), 2)}d}")
        elif lower[0] == 's':
            out.append(f"{value.second:0{min(len(lower), 2)}d}")
        elif lower == 'am/pm':
            out.append('AM' if value.hour < 12 else 'PM')
        elif lower == 'a/p':
            out.append('A' if value.hour < 12 else 'P')
        elif token.startswith('_'):
            out.append(' ')
        elif token.startswith('*'):
            continue
        else:
            out.append(token)

    return ''.join(out)


def format_cell_text(value: Any, number_format: Optional[str] = None) -> str:
    """Return the displayed text for a cell value."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date, time)) and number_format and is_date_format(number_format):
        if isinstance(value, time):
            value = datetime.combine(EXCEL_EPOCH, value)
        elif not isinstance(value, datetime):
            value = datetime.combine(value, time(0))
        return format_date(value, number_format)
    if isinstance(value, datetime):
        if value.time() == time(0):
            return value.strftime('%Y-%m-%d')
        return value.strftime('%Y-%m-%d %H:%M:%S')
    if isinstance(value, date):
        return value.strftime('%Y-%m-%d')
    if isinstance(value, time):
        return value.strftime('%H:%M:%S')
    if isinstance(value, (int, float, Decimal)):
        return format_number(float(value), number_format)
    return str(value)


class OpenpyxlSheet:
    """
    Snapshot of a worksheet's displayed cell text.

    openpyxl's ``Worksheet.cell`` creates cells on lookup, so concurrent reads
    against a live worksheet are unsafe. The text of every populated cell is
    captured once here and later reads are dictionary lookups.
    """

    def __init__(self, worksheet):
        self.name = worksheet.title
        self._min_column = worksheet.min_column
        self._max_column = worksheet.max_column
        self._cells: Dict[Tuple[int, int], str] = {}

        for row in worksheet.iter_rows():
            for cell in row:
                if cell.value is None:
                    continue
                self._cells[(cell.row, cell.column)] = format_cell_text(
                    cell.value, cell.number_format
                )

        logger.debug(f"Loaded sheet '{self.name}': {len(self._cells)} populated cells, "
                     f"columns {self._min_column}-{self._max_column}")

    def cell_text(self, row: int, column: int) -> str:
        if row < 1 or column < 1:
            raise CellReadError(
                f"Invalid cell coordinates ({row}, {column})",
                worksheet=self.name, row=row, column=column
            )
        return self._cells.get((row, column), '')

    def populated_column_range(self) -> Tuple[int, int]:
        return self._min_column, self._max_column


class OpenpyxlWorkbook:
    """Workbook handle backed by an openpyxl workbook loaded with cached values."""

    def __init__(self, workbook, path: str):
        self._workbook = workbook
        self.path = path
        self._sheets: Dict[str, OpenpyxlSheet] = {}

    def worksheet(self, name: str) -> OpenpyxlSheet:
        if name in self._sheets:
            return self._sheets[name]

        title = name if name in self._workbook.sheetnames else None
        if title is None:
            # Excel treats sheet names case-insensitively
            title = next(
                (candidate for candidate in self._workbook.sheetnames
                 if candidate.lower() == (name or '').lower()),
                None
            )
        if title is None:
            logger.error(f"Worksheet '{name}' not found in {self.path}")
            raise WorksheetNotFound(
                f"Worksheet '{name}' not found",
                worksheet=name, available=list(self._workbook.sheetnames)
            )

        sheet = OpenpyxlSheet(self._workbook[title])
        self._sheets[name] = sheet
        return sheet

    def close(self) -> None:
        self._workbook.close()

    def __enter__(self) -> 'OpenpyxlWorkbook':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class OpenpyxlAccessor:
    """Opens .xlsx/.xlsm workbooks with openpyxl."""

    def open_workbook(self, path: str) -> OpenpyxlWorkbook:
        if not Path(path).is_file():
            raise WorkbookUnavailable(f"Workbook not found: {path}", path=path)

        logger.info(f"Opening workbook: {path}")
        try:
            workbook = openpyxl.load_workbook(path, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError) as e:
            logger.error(f"Could not open workbook {path}: {e}")
            raise WorkbookUnavailable(f"Could not open workbook: {e}", path=path) from e

        return OpenpyxlWorkbook(workbook, path)
