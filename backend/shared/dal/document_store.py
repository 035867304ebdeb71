"""Abstract document store: the transactional persistence contract.

Documents are JSON-compatible dicts grouped into collections. Every snapshot
returned by a store carries three store-managed keys next to the caller's data:
``id``, ``version`` (incremented on every committed write) and ``created_at``.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = structlog.get_logger()

Document = dict[str, Any]
RESERVED_FIELDS: Final = frozenset({"id", "version", "created_at"})

_FIELD_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentNotFoundError(StoreError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class DocumentExistsError(StoreError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} already exists")
        self.collection = collection
        self.doc_id = doc_id


class TransactionConflictError(StoreError):
    """A transactional update kept losing the compare-and-swap race."""

    def __init__(self, collection: str, doc_id: str, attempts: int) -> None:
        super().__init__(f"{collection}/{doc_id}: gave up after {attempts} conflicting attempts")
        self.collection = collection
        self.doc_id = doc_id
        self.attempts = attempts


class Abort:
    """Sentinel returned by a transaction function to leave the document untouched."""

    _instance: Abort | None = None

    def __new__(cls) -> Abort:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABORT"


ABORT: Final = Abort()

Patch = dict[str, Any]


FilterOp = Literal["==", "!=", "in", ">=", "<=", ">", "<"]


class FieldFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: FilterOp = "=="
    value: Any

    @field_validator("field")
    @classmethod
    def _check_field(cls, v: str) -> str:
        if not _FIELD_PATTERN.match(v):
            raise ValueError(f"invalid field name: {v!r}")
        return v


class Query(BaseModel):
    """One-shot or live query over a collection."""

    model_config = ConfigDict(frozen=True)

    filters: tuple[FieldFilter, ...] = ()
    order_by: str = "created_at"
    descending: bool = True
    limit: int = Field(default=50, ge=1)

    @field_validator("order_by")
    @classmethod
    def _check_order_by(cls, v: str) -> str:
        if not _FIELD_PATTERN.match(v):
            raise ValueError(f"invalid order field: {v!r}")
        return v


class SubscriptionState(StrEnum):
    ACTIVE = "active"
    FAILED = "failed"
    CLOSED = "closed"


class Subscription:
    """Handle for a live document or query subscription.

    A failed subscription stops delivering; ``state`` and ``error`` let the
    consumer tell "no further updates" apart from "nothing changed".
    """

    def __init__(
        self,
        key: str,
        on_error: Callable[[Exception], None] | None = None,
        on_close: Callable[[Subscription], None] | None = None,
    ) -> None:
        self.key = key
        self.state = SubscriptionState.ACTIVE
        self.error: Exception | None = None
        self._on_error = on_error
        self._on_close = on_close

    @property
    def active(self) -> bool:
        return self.state is SubscriptionState.ACTIVE

    def close(self) -> None:
        if self.state is SubscriptionState.CLOSED:
            return
        self.state = SubscriptionState.CLOSED
        if self._on_close is not None:
            self._on_close(self)

    def fail(self, error: Exception) -> None:
        if not self.active:
            return
        self.state = SubscriptionState.FAILED
        self.error = error
        logger.warning("subscription failed", subscription=self.key, error=str(error))
        if self._on_close is not None:
            self._on_close(self)
        if self._on_error is not None:
            self._on_error(error)


class DocumentStore(ABC):
    """Abstract interface for a document store with per-document transactions.

    Implementations can use SQLite, PostgreSQL, a hosted document database, etc.
    """

    @abstractmethod
    async def create(self, collection: str, document: Mapping[str, Any], doc_id: str | None = None) -> str: ...

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None: ...

    @abstractmethod
    async def transactional_update(
        self,
        collection: str,
        doc_id: str,
        fn: Callable[[Document | None], Mapping[str, Any] | Abort],
        *,
        upsert: bool = False,
    ) -> Document | None:
        """Atomically apply the patch returned by ``fn`` to the current document.

        ``fn`` may run more than once when a concurrent writer commits first, so it
        must be free of side effects outside of its return value. Returning
        ``ABORT`` commits nothing and returns the current document.
        """

    @abstractmethod
    async def query(self, collection: str, query: Query) -> list[Document]: ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool: ...

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: Callable[[Document | None], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        """Deliver the current document now and again after every change (None once deleted)."""

    @abstractmethod
    def subscribe_query(
        self,
        collection: str,
        query: Query,
        callback: Callable[[list[Document]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription:
        """Deliver the query result now and again after every change in the collection."""


def check_patch(patch: Mapping[str, Any]) -> Patch:
    """Validate a transaction patch and return it as a plain dict."""
    reserved = RESERVED_FIELDS & set(patch)
    if reserved:
        raise ValueError(f"patch may not write store-managed fields: {sorted(reserved)}")
    return dict(patch)
