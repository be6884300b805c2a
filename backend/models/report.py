"""
Domain models for the finance report extraction pipeline.

This module defines the value types shared by the extraction, cache and
export services: field mappings, records, the column schema and the
ordered result set.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

# Reserved key holding the entity name; always the first column of a record
COMPANY_NAME_KEY = 'companyName'

# A record maps lower-cased attribute keys to displayed cell text
Record = Dict[str, str]


@dataclass(frozen=True)
class FieldMapping:
    """Pairs an output field name with the worksheet row holding its values."""

    field_name: str
    row_number: int

    @property
    def key(self) -> str:
        """Record key for this field (field names are case-insensitive)."""
        return self.field_name.lower()


@dataclass(frozen=True)
class ColumnSchema:
    """
    Column order shared by every row of an exported sheet.

    Derived once from the first record of a result set.
    """

    columns: Tuple[str, ...]

    @classmethod
    def from_record(cls, record: Mapping[str, str]) -> 'ColumnSchema':
        return cls(columns=tuple(record.keys()))

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[str]:
        return iter(self.columns)

    def row_values(self, record: Mapping[str, str]) -> List[str]:
        """Project a record onto the schema; missing keys become blanks."""
        return [record.get(column, '') for column in self.columns]


@dataclass(frozen=True)
class ResultSet:
    """
    Ordered, immutable collection of extracted records.

    Records are kept in the order they were supplied; the extractor supplies
    them sorted by company name.
    """

    records: Tuple[Record, ...] = ()
    schema: Optional[ColumnSchema] = None

    @classmethod
    def from_records(cls, records: Sequence[Mapping[str, str]]) -> 'ResultSet':
        """Build a result set, deriving the column schema from the first record."""
        frozen = tuple(dict(record) for record in records)
        schema = ColumnSchema.from_record(frozen[0]) if frozen else None
        return cls(records=frozen, schema=schema)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def __getitem__(self, index: int) -> Record:
        return self.records[index]

    @property
    def is_empty(self) -> bool:
        return not self.records

    def company_names(self) -> List[str]:
        return [record[COMPANY_NAME_KEY] for record in self.records]

    def to_list(self) -> List[Record]:
        """Return JSON-ready copies of the records."""
        return [dict(record) for record in self.records]


@dataclass(frozen=True)
class CacheEntry:
    """Cached extraction result plus the mapping count that produced it."""

    result_set: ResultSet
    shape: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-friendly dict usable by any cache store."""
        return {
            'shape': self.shape,
            'created_at': self.created_at.isoformat(),
            'records': self.result_set.to_list()
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'CacheEntry':
        return cls(
            result_set=ResultSet.from_records(data['records']),
            shape=int(data['shape']),
            created_at=datetime.fromisoformat(data['created_at'])
        )
