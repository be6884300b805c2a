"""
Report-related Pydantic schemas.

This module contains schemas for extraction and download requests.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from backend.models.report import FieldMapping


class FieldMappingSchema(BaseModel):
    """One output field and the worksheet row holding its values."""

    model_config = ConfigDict(populate_by_name=True)

    field_name: str = Field(
        ...,
        min_length=1,
        alias="fieldName",
        description="Output field name (case-insensitive)"
    )
    row_number: int = Field(
        ...,
        ge=1,
        alias="rowNumber",
        description="1-based worksheet row holding the field's values"
    )

    def to_domain(self) -> FieldMapping:
        return FieldMapping(field_name=self.field_name, row_number=self.row_number)


class ReportRequest(BaseModel):
    """Request schema shared by the extract and download endpoints."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "worksheetName": "Summary",
                "fieldMappings": [
                    {"fieldName": "Revenue", "rowNumber": 5},
                    {"fieldName": "EBITDA", "rowNumber": 9}
                ]
            }
        }
    )

    worksheet_name: str = Field(
        ...,
        min_length=1,
        alias="worksheetName",
        description="Worksheet to extract"
    )
    field_mappings: List[FieldMappingSchema] = Field(
        default_factory=list,
        alias="fieldMappings",
        description="Fields to extract, in output column order"
    )

    def mappings(self) -> List[FieldMapping]:
        """Field mappings as domain objects."""
        return [mapping.to_domain() for mapping in self.field_mappings]
