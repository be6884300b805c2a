"""
Extraction Service - Build per-company records from a columnar worksheet.

The source worksheet lists one company per column: the company name sits in
a fixed header row and each attribute lives in a configurable row. Columns
are scanned concurrently and the records are sorted by company name so the
result does not depend on completion order.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

from backend.models.report import COMPANY_NAME_KEY, FieldMapping, Record, ResultSet
from services.errors import CellReadError
from services.spreadsheet import SheetHandle, WorkbookHandle

logger = logging.getLogger(__name__)

# Default layout of the finance report workbook
DEFAULT_HEADER_ROW = 2
DEFAULT_FIRST_COLUMN = 6
DEFAULT_EMPTY_SENTINEL = '$-'
DEFAULT_MAX_WORKERS = 8


class ExtractionService:
    """
    Extract company records from a worksheet.

    Each entity column is processed by its own task; the tasks only share
    the result list, which is appended to under a lock.
    """

    def __init__(
        self,
        header_row: int = DEFAULT_HEADER_ROW,
        first_column: int = DEFAULT_FIRST_COLUMN,
        empty_sentinel: str = DEFAULT_EMPTY_SENTINEL,
        max_workers: int = DEFAULT_MAX_WORKERS
    ):
        """
        Initialize extraction service.

        Args:
            header_row: Row holding company names (1-based)
            first_column: First entity column (1-based); earlier columns hold labels
            empty_sentinel: Cell text meaning "no data", stored as an empty string
            max_workers: Upper bound on concurrent column tasks
        """
        self.header_row = header_row
        self.first_column = first_column
        self.empty_sentinel = empty_sentinel
        self.max_workers = max(1, max_workers)

    def entity_columns(self, sheet: SheetHandle) -> range:
        """Columns that may hold an entity, from the first entity column to the last populated one."""
        start, end = sheet.populated_column_range()
        return range(max(self.first_column, start), end + 1)

    def normalize_value(self, text: str) -> str:
        """Map the "no data" sentinel to an empty string; pass anything else through untrimmed."""
        if text.strip() == self.empty_sentinel:
            return ''
        return text

    def extract_column(
        self,
        sheet: SheetHandle,
        column: int,
        field_mappings: Sequence[FieldMapping]
    ) -> Optional[Record]:
        """
        Build the record for one column.

        Returns None when the header cell is blank (spacer or unused column).
        A failed attribute read is logged and the attribute left out.
        """
        try:
            company_name = sheet.cell_text(self.header_row, column).strip()
        except CellReadError as e:
            logger.error(f"Could not read company name at row {self.header_row}, "
                         f"column {column} of '{sheet.name}': {e}")
            return None

        if not company_name:
            return None

        record: Record = {COMPANY_NAME_KEY: company_name}

        for mapping in field_mappings:
            try:
                text = sheet.cell_text(mapping.row_number, column)
            except CellReadError as e:
                logger.error(f"Skipping '{mapping.field_name}' for {company_name} "
                             f"(row {mapping.row_number}, column {column}): {e}")
                continue

            record[mapping.key] = self.normalize_value(text)

        return record

    def extract(
        self,
        workbook: WorkbookHandle,
        worksheet_name: str,
        field_mappings: Sequence[FieldMapping]
    ) -> ResultSet:
        """
        Extract one record per company column of a worksheet.

        Args:
            workbook: Opened workbook handle
            worksheet_name: Worksheet to scan
            field_mappings: Attribute name to source row pairs

        Returns:
            ResultSet sorted by company name

        Raises:
            WorksheetNotFound: If the worksheet does not exist
        """
        started = time.perf_counter()
        sheet = workbook.worksheet(worksheet_name)
        columns = self.entity_columns(sheet)

        results: List[Tuple[int, Record]] = []
        results_lock = threading.Lock()

        def _scan(column: int) -> None:
            record = self.extract_column(sheet, column, field_mappings)
            if record is None:
                return
            with results_lock:
                results.append((column, record))

        if len(columns) > 0:
            workers = min(self.max_workers, len(columns))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(_scan, column) for column in columns]
                for future in futures:
                    future.result()

        # Column index breaks ties between duplicate company names
        results.sort(key=lambda item: (item[1][COMPANY_NAME_KEY], item[0]))
        result_set = ResultSet.from_records([record for _, record in results])

        elapsed = time.perf_counter() - started
        logger.info(f"Extracted {len(result_set)} companies from '{worksheet_name}' "
                    f"({len(columns)} columns, {len(field_mappings)} fields) in {elapsed:.3f}s")

        return result_set
