"""
Pytest configuration and fixtures for the finance report tests.
"""

import pytest
from openpyxl import Workbook

from backend.models.report import FieldMapping
from tests.fakes import FakeAccessor, FakeClock, FakeSheet, FakeWorkbook, build_grid

# Layout of the sample workbook: labels in A-E, companies from column F (6)
SAMPLE_WORKSHEET = 'Summary'
SAMPLE_COMPANIES = {
    6: 'Globex',
    7: '  Acme Corp ',
    8: None,           # spacer column
    9: 'Initech',
    10: '   ',         # whitespace-only header
    11: 'Umbrella',
}
SAMPLE_ROWS = {
    'Revenue': 5,
    'EBITDA': 6,
    'Headcount': 7,
}


@pytest.fixture
def sample_mappings():
    return [FieldMapping(name, row) for name, row in SAMPLE_ROWS.items()]


@pytest.fixture
def fake_sheet():
    def value(field, column):
        if field == 'EBITDA' and column == 9:
            return ' $-   '
        return f"{field}-{column}"

    cells = build_grid(SAMPLE_COMPANIES, SAMPLE_ROWS, value)
    # Label columns that must never become companies
    cells[(2, 1)] = 'Metric'
    cells[(5, 1)] = 'Revenue'
    return FakeSheet(SAMPLE_WORKSHEET, cells, (1, 11))


@pytest.fixture
def fake_workbook(fake_sheet):
    return FakeWorkbook([fake_sheet])


@pytest.fixture
def fake_accessor(fake_workbook):
    return FakeAccessor(fake_workbook)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sample_workbook_path(tmp_path):
    """Write a real .xlsx shaped like the finance report."""
    wb = Workbook()
    ws = wb.active
    ws.title = SAMPLE_WORKSHEET

    ws.cell(row=1, column=1, value='Finance Report')
    ws.cell(row=2, column=1, value='Metric')
    for field, row in SAMPLE_ROWS.items():
        ws.cell(row=row, column=1, value=field)

    for column, name in SAMPLE_COMPANIES.items():
        if name is not None:
            ws.cell(row=2, column=column, value=name)

    accounting = '_($* #,##0_);_($* (#,##0);_($* "-"??_);_(@_)'
    values = {6: 1500, 7: 0, 9: 2750000, 11: 42}
    for column, amount in values.items():
        cell = ws.cell(row=SAMPLE_ROWS['Revenue'], column=column, value=amount)
        cell.number_format = accounting
        ws.cell(row=SAMPLE_ROWS['EBITDA'], column=column, value=f"{column}.5%")
        ws.cell(row=SAMPLE_ROWS['Headcount'], column=column, value=column * 10)

    wb.create_sheet('Notes').cell(row=1, column=1, value='n/a')

    path = tmp_path / 'FinanceReport.xlsx'
    wb.save(path)
    return path
