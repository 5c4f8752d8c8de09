"""
Notestore.

Local persistence for a notes app: a forest of books, sections and notes
ordered by fractional sort keys, soft delete with trash, full-text search
and a JSON settings store, all in one SQLite file.

- core/: configuration, logging, database engine, errors, retry policy
- domain/: hierarchy rules, sort keys, plain-text extraction, tree building
- migrations/: idempotent schema provisioning from a packaged SQL script
- models/, repositories/, services/: SQLAlchemy rows, queries, business rules
- events/: post-commit item events and the subscriber bus
- cli/: Typer command-line client
"""

from notestore.core.exceptions import (
    ConflictError,
    NotFoundError,
    SchemaError,
    StorageError,
    StoreError,
    ValidationError,
)
from notestore.domain.hierarchy import ItemType
from notestore.domain.plaintext import ContentType
from notestore.schemas.base import ErrorDetail, StoreResult
from notestore.schemas.item import ItemCreate, ItemRead, ItemUpdate, SearchResult, StorageInfo, TreeEntry
from notestore.schemas.settings import SettingsExport
from notestore.store import NoteStore, SettingsStore

__all__ = [
    "ConflictError",
    "ContentType",
    "ErrorDetail",
    "ItemCreate",
    "ItemRead",
    "ItemType",
    "ItemUpdate",
    "NotFoundError",
    "NoteStore",
    "SchemaError",
    "SearchResult",
    "SettingsExport",
    "SettingsStore",
    "StorageError",
    "StorageInfo",
    "StoreError",
    "StoreResult",
    "TreeEntry",
    "ValidationError",
]
