# reengine/db/__init__.py
"""
File-backed record store: canonical table headers and CSV tables.
"""

from reengine.db.csv_store import CsvStore
from reengine.db.headers import TABLES, TableSchema, validate_headers

__all__ = [
    "CsvStore",
    "TABLES",
    "TableSchema",
    "validate_headers",
]
