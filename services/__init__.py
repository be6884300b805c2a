"""
Service layer for the finance report API.

This package contains framework-agnostic business logic (extraction, caching
and export) that can be used by the CLI, the API or any other interface.
"""

__version__ = "1.0.0"
