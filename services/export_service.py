"""
Export Service - Write extraction results to a downloadable workbook.
"""

import io
import logging
from typing import Mapping, Sequence, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from backend.models.report import ColumnSchema, ResultSet
from services.errors import EmptyResultSet, SerializationFailure

logger = logging.getLogger(__name__)

DEFAULT_SHEET_NAME = 'Results'
XLSX_MEDIA_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

HEADER_FONT = Font(bold=True)
HEADER_ALIGNMENT = Alignment(horizontal='center', vertical='center')
HEADER_FILL = PatternFill(fill_type='solid', start_color='D3D3D3', end_color='D3D3D3')
DATA_ALIGNMENT = Alignment(horizontal='left', vertical='center')

# Padding added to the widest value when sizing a column
COLUMN_WIDTH_PADDING = 2


class ExportService:
    """Serialize result sets to .xlsx bytes."""

    def __init__(self, sheet_name: str = DEFAULT_SHEET_NAME):
        self.sheet_name = sheet_name

    def serialize(self, results: Union[ResultSet, Sequence[Mapping[str, str]]]) -> bytes:
        """
        Build a workbook with one header row and one row per record.

        The column order comes from the first record. Records missing a
        column get a blank cell; keys outside the schema are not written.

        Args:
            results: ResultSet, or records in the order they should appear

        Returns:
            The .xlsx file contents

        Raises:
            EmptyResultSet: If there are no records
            SerializationFailure: If the workbook cannot be built
        """
        result_set = results if isinstance(results, ResultSet) else ResultSet.from_records(results)

        if result_set.is_empty:
            raise EmptyResultSet()

        schema = result_set.schema or ColumnSchema.from_record(result_set[0])

        try:
            return self._build_workbook(schema, result_set)
        except Exception as e:
            logger.error(f"Excel generation failed: {e}", exc_info=True)
            raise SerializationFailure(f"Failed to generate the Excel file: {e}") from e

    def _build_workbook(self, schema: ColumnSchema, result_set: ResultSet) -> bytes:
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = self.sheet_name

        widths = [len(column) for column in schema]

        for col_idx, column in enumerate(schema, 1):
            cell = worksheet.cell(row=1, column=col_idx, value=column)
            cell.data_type = 's'
            cell.font = HEADER_FONT
            cell.alignment = HEADER_ALIGNMENT
            cell.fill = HEADER_FILL

        for row_idx, record in enumerate(result_set, 2):
            for col_idx, value in enumerate(schema.row_values(record), 1):
                cell = worksheet.cell(row=row_idx, column=col_idx, value=value)
                if isinstance(value, str):
                    # Text starting with "=" stays text, never a formula
                    cell.data_type = 's'
                cell.alignment = DATA_ALIGNMENT
                widths[col_idx - 1] = max(widths[col_idx - 1], len(str(value)))

        for col_idx, width in enumerate(widths, 1):
            worksheet.column_dimensions[get_column_letter(col_idx)].width = width + COLUMN_WIDTH_PADDING

        buffer = io.BytesIO()
        workbook.save(buffer)

        logger.info(f"Generated Excel file: {len(result_set)} rows, {len(schema)} columns, "
                    f"{buffer.tell()} bytes")

        return buffer.getvalue()
