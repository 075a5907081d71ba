"""Document storage for task records."""

from vto.db.connection import open_connection
from vto.db.document_store import SQLiteDocumentStore
from vto.db.interface import DocumentStore, IndexName, Page

__all__ = [
    "DocumentStore",
    "IndexName",
    "Page",
    "SQLiteDocumentStore",
    "open_connection",
]
