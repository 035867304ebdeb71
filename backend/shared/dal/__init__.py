"""Data access layer: the document store contract shared by every service."""

from shared.dal.document_store import (
    ABORT,
    Abort,
    RESERVED_FIELDS,
    Document,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    Query,
    StoreError,
    Subscription,
    SubscriptionState,
    TransactionConflictError,
)

__all__ = [
    "ABORT",
    "Abort",
    "RESERVED_FIELDS",
    "Document",
    "DocumentExistsError",
    "DocumentNotFoundError",
    "DocumentStore",
    "FieldFilter",
    "Query",
    "StoreError",
    "Subscription",
    "SubscriptionState",
    "TransactionConflictError",
]
