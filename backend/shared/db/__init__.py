"""SQLite database layer: connection management and the document store."""

from shared.db.connection import Database
from shared.db.document_store import SqliteDocumentStore
from shared.db.subscriptions import SubscriptionHub

__all__ = [
    "Database",
    "SqliteDocumentStore",
    "SubscriptionHub",
]
