"""
Pydantic schemas for request/response validation.

This package contains all Pydantic models used for API request validation
and response serialization.
"""

from api.schemas.common import ErrorResponse, HealthCheckResponse
from api.schemas.report_schema import FieldMappingSchema, ReportRequest

__all__ = [
    # Common
    'ErrorResponse',
    'HealthCheckResponse',

    # Report
    'FieldMappingSchema',
    'ReportRequest',
]
