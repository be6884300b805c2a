"""
FastAPI application for the finance report API.

This package contains the REST API that extracts company records from the
report workbook and exports them as Excel files.
"""

__version__ = "1.0.0"
