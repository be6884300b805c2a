"""
Error types for the report pipeline.

Every failure the services raise is a ``ReportError`` tagged with whether the
caller (``client``) or the service (``server``) is at fault, so the HTTP
layer can map it to a status code without inspecting messages.
"""

from typing import Any, Dict, Optional

CLIENT = 'client'
SERVER = 'server'


class ReportError(Exception):
    """Base class for tagged report pipeline failures."""

    kind: str = SERVER
    status_code: int = 500
    error: str = 'Report processing failed'

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.error
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    @property
    def is_client_error(self) -> bool:
        return self.kind == CLIENT

    def to_detail(self) -> Dict[str, Any]:
        """Context for error responses and log records."""
        detail = {'message': self.message, 'kind': self.kind}
        detail.update({key: value for key, value in self.context.items() if value is not None})
        return detail


class InvalidRequest(ReportError):
    """Request body is missing or malformed."""

    kind = CLIENT
    status_code = 400
    error = 'Invalid request'


class WorksheetNotFound(ReportError):
    """Requested worksheet does not exist in the workbook."""

    kind = CLIENT
    status_code = 400
    error = 'Worksheet not found'


class CellReadError(ReportError):
    """A single cell could not be read. Contained by the extractor."""

    error = 'Cell read failed'


class EmptyResultSet(ReportError):
    """There are no records to export."""

    kind = CLIENT
    status_code = 400
    error = 'No data to export'


class SerializationFailure(ReportError):
    """Building the output workbook failed unexpectedly."""

    error = 'Failed to generate the Excel file'


class WorkbookUnavailable(ReportError):
    """The configured workbook is missing or cannot be opened."""

    error = 'Workbook unavailable'
