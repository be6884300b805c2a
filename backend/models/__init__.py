"""Models package for the finance report extraction pipeline."""
from backend.models.report import (
    COMPANY_NAME_KEY, CacheEntry, ColumnSchema, FieldMapping, Record, ResultSet
)

__all__ = ['COMPANY_NAME_KEY', 'CacheEntry', 'ColumnSchema', 'FieldMapping', 'Record', 'ResultSet']
