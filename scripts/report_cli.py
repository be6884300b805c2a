#!/usr/bin/env python3
"""
Finance Report CLI - Dual Mode

This script can operate in two modes:
1. Direct mode (default): Reads the workbook using services
2. API mode: Makes HTTP requests to the FastAPI backend

Usage:
    # Direct mode (uses services directly)
    python scripts/report_cli.py extract --worksheet Summary --map Revenue=5 --map EBITDA=9

    # Export to Excel
    python scripts/report_cli.py export --worksheet Summary --map Revenue=5 --output report.xlsx

    # API mode (uses FastAPI backend)
    python scripts/report_cli.py extract --worksheet Summary --map Revenue=5 --api-url http://localhost:8000
"""

import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import json
import logging
from typing import List, Optional, Tuple

import click
from dotenv import load_dotenv
import requests

from backend.models.report import FieldMapping
from services.cache_service import CacheGate, MemoryCacheStore
from services.errors import ReportError
from services.export_service import ExportService
from services.extraction_service import ExtractionService
from services.spreadsheet import OpenpyxlAccessor

# Load environment variables
load_dotenv()

# Configure logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FILE = os.getenv('LOG_FILE', 'cli.log')

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOG_FILE),
        logging.StreamHandler(sys.stderr)
    ]
)

logger = logging.getLogger('report_cli')

# Configuration
DEFAULT_FILE_PATH = os.getenv('FILE_PATH', 'data/FinanceReport.xlsx')
REQUEST_TIMEOUT = 300


def _mapping(name, row, source: str, param_hint: str) -> FieldMapping:
    if not isinstance(name, str) or not name:
        raise click.BadParameter(f"Missing field name in {source}", param_hint=param_hint)
    try:
        row_number = int(row)
    except (TypeError, ValueError):
        raise click.BadParameter(f"Row must be an integer in {source}", param_hint=param_hint)
    if row_number < 1:
        raise click.BadParameter(f"Row must be at least 1 in {source}", param_hint=param_hint)
    return FieldMapping(field_name=name, row_number=row_number)


def parse_mappings(pairs: Tuple[str, ...], mappings_file: Optional[str]) -> List[FieldMapping]:
    """
    Build field mappings from NAME=ROW pairs and/or a JSON file.

    The JSON file holds a list of {"fieldName": ..., "rowNumber": ...} objects;
    its mappings come first, followed by the command-line pairs.
    """
    mappings = []

    if mappings_file:
        with open(mappings_file, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise click.BadParameter(f"Invalid JSON: {e}", param_hint='--mappings-file')
        if not isinstance(data, list):
            raise click.BadParameter("Expected a list of mappings", param_hint='--mappings-file')
        for index, item in enumerate(data):
            if not isinstance(item, dict):
                raise click.BadParameter(f"Entry {index} is not an object", param_hint='--mappings-file')
            mappings.append(_mapping(item.get('fieldName'), item.get('rowNumber'),
                                     f"entry {index}", '--mappings-file'))

    for pair in pairs:
        name, sep, row = pair.rpartition('=')
        if not sep:
            raise click.BadParameter(f"Expected NAME=ROW, got '{pair}'", param_hint='--map')
        mappings.append(_mapping(name, row, f"'{pair}'", '--map'))

    return mappings


def request_body(worksheet: str, mappings: List[FieldMapping]) -> dict:
    return {
        'worksheetName': worksheet,
        'fieldMappings': [{'fieldName': m.field_name, 'rowNumber': m.row_number} for m in mappings]
    }


def build_gate() -> CacheGate:
    return CacheGate(
        extractor=ExtractionService(),
        accessor=OpenpyxlAccessor(),
        store=MemoryCacheStore()
    )


@click.group()
def cli():
    """Finance Report CLI - Extract company data and export it to Excel"""


def report_options(func):
    """Options shared by the extract and export commands."""
    options = [
        click.option('--worksheet', '-w', required=True, help='Worksheet to extract'),
        click.option('--map', '-m', 'pairs', multiple=True, metavar='NAME=ROW',
                     help='Field name and source row (repeatable)'),
        click.option('--mappings-file', type=click.Path(exists=True),
                     help='JSON file with fieldName/rowNumber mappings'),
        click.option('--file', '-f', 'file_path', default=DEFAULT_FILE_PATH, show_default=True,
                     help='Path to the report workbook (direct mode)'),
        click.option('--api-url', envvar='API_URL', help='FastAPI backend URL (enables API mode)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@cli.command('extract')
@report_options
@click.option('--output', '-o', type=click.Path(), help='Write records to this JSON file')
def extract_cmd(worksheet: str, pairs: Tuple[str, ...], mappings_file: Optional[str],
                file_path: str, api_url: Optional[str], output: Optional[str]):
    """Extract company records as JSON."""
    mappings = parse_mappings(pairs, mappings_file)

    if api_url:
        click.echo(f"🌐 API Mode: Using backend at {api_url}", err=True)
        records = extract_via_api(api_url, worksheet, mappings)
    else:
        click.echo("💾 Direct Mode: Reading workbook", err=True)
        records = extract_direct(file_path, worksheet, mappings)

    text = json.dumps(records, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text, encoding='utf-8')
        click.echo(f"✓ Wrote {len(records)} records to {output}", err=True)
    else:
        click.echo(text)


@cli.command('export')
@report_options
@click.option('--output', '-o', type=click.Path(), default='report.xlsx', show_default=True,
              help='Output workbook path')
def export_cmd(worksheet: str, pairs: Tuple[str, ...], mappings_file: Optional[str],
               file_path: str, api_url: Optional[str], output: str):
    """Export company records to an Excel workbook."""
    mappings = parse_mappings(pairs, mappings_file)

    if api_url:
        click.echo(f"🌐 API Mode: Using backend at {api_url}", err=True)
        content = export_via_api(api_url, worksheet, mappings)
    else:
        click.echo("💾 Direct Mode: Reading workbook", err=True)
        content = export_direct(file_path, worksheet, mappings)

    Path(output).write_bytes(content)
    click.echo(f"✓ Wrote {output} ({len(content) / 1024:.1f} KB)", err=True)


# ============================================================================
# Direct Mode Implementation (Uses Services Directly)
# ============================================================================

def extract_direct(file_path: str, worksheet: str, mappings: List[FieldMapping]) -> list:
    """Extract records by reading the workbook locally."""
    try:
        result_set = build_gate().get(worksheet, os.path.abspath(file_path), mappings)
    except ReportError as e:
        logger.error(f"Extraction failed: {e.message}", exc_info=not e.is_client_error)
        click.echo(f"\n✗ Extraction failed: {e.message}", err=True)
        sys.exit(1)

    return result_set.to_list()


def export_direct(file_path: str, worksheet: str, mappings: List[FieldMapping]) -> bytes:
    """Extract records locally and serialize them to .xlsx."""
    try:
        result_set = build_gate().get(worksheet, os.path.abspath(file_path), mappings)
        return ExportService().serialize(result_set)
    except ReportError as e:
        logger.error(f"Export failed: {e.message}", exc_info=not e.is_client_error)
        click.echo(f"\n✗ Export failed: {e.message}", err=True)
        sys.exit(1)


# ============================================================================
# API Mode Implementation (Uses FastAPI Backend)
# ============================================================================

def _post(api_url: str, endpoint: str, worksheet: str, mappings: List[FieldMapping]) -> requests.Response:
    try:
        response = requests.post(
            f"{api_url}/api/report/{endpoint}",
            json=request_body(worksheet, mappings),
            timeout=REQUEST_TIMEOUT
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"API request failed: {e}", exc_info=True)
        click.echo(f"\n✗ API request failed: {e}", err=True)
        sys.exit(1)

    if response.status_code != 200:
        try:
            error = response.json()
            message = (error.get('detail') or {}).get('message') or error.get('error')
        except ValueError:
            message = response.text
        click.echo(f"\n✗ API error ({response.status_code}): {message}", err=True)
        sys.exit(1)

    return response


def extract_via_api(api_url: str, worksheet: str, mappings: List[FieldMapping]) -> list:
    """Extract records via the API."""
    return _post(api_url, 'extractdata', worksheet, mappings).json()


def export_via_api(api_url: str, worksheet: str, mappings: List[FieldMapping]) -> bytes:
    """Download the exported workbook via the API."""
    return _post(api_url, 'download-excel', worksheet, mappings).content


if __name__ == '__main__':
    cli()
