"""
Report router - Extract company data and download it as Excel.

This module provides the extraction endpoint (JSON records) and the
download endpoint (.xlsx file) for the configured report workbook.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Response

from api.config import settings
from api.dependencies import get_cache_gate, get_export_service, get_file_path
from api.schemas.common import ErrorResponse
from api.schemas.report_schema import ReportRequest
from services.cache_service import CacheGate
from services.errors import EmptyResultSet
from services.export_service import XLSX_MEDIA_TYPE, ExportService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/report', tags=['report'])

ERROR_RESPONSES = {
    400: {'model': ErrorResponse, 'description': 'Invalid request or unknown worksheet'},
    500: {'model': ErrorResponse, 'description': 'Workbook could not be processed'}
}


@router.post('/extractdata', response_model=List[Dict[str, str]], responses=ERROR_RESPONSES)
def extract_data(
    request: ReportRequest,
    gate: CacheGate = Depends(get_cache_gate),
    file_path: str = Depends(get_file_path)
):
    """
    Extract one record per company from a worksheet.

    Each record holds `companyName` plus one key per requested field
    (lower-cased). Records are sorted by company name. Results are cached
    per worksheet for 30 minutes.

    **Example:**
    ```bash
    curl -X POST http://localhost:8000/api/report/extractdata \\
         -H "Content-Type: application/json" \\
         -d '{"worksheetName": "Summary", "fieldMappings": [{"fieldName": "Revenue", "rowNumber": 5}]}'
    ```
    """
    logger.info(f"Extract request: worksheet '{request.worksheet_name}', "
                f"{len(request.field_mappings)} fields")

    result_set = gate.get(request.worksheet_name, file_path, request.mappings())

    return result_set.to_list()


@router.post(
    '/download-excel',
    response_class=Response,
    responses={200: {'content': {XLSX_MEDIA_TYPE: {}}}, **ERROR_RESPONSES}
)
def download_excel(
    request: ReportRequest,
    gate: CacheGate = Depends(get_cache_gate),
    exporter: ExportService = Depends(get_export_service),
    file_path: str = Depends(get_file_path)
):
    """
    Extract records and return them as an Excel workbook.

    **Returns:**
    - 200 with `report.xlsx` as an attachment
    - 400 if the extraction produced no records
    """
    logger.info(f"Download request: worksheet '{request.worksheet_name}', "
                f"{len(request.field_mappings)} fields")

    result_set = gate.get(request.worksheet_name, file_path, request.mappings())

    if result_set.is_empty:
        raise EmptyResultSet(worksheet=request.worksheet_name)

    content = exporter.serialize(result_set)

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={'Content-Disposition': f'attachment; filename="{settings.EXPORT_FILENAME}"'}
    )
