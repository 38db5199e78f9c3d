# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Transactional storage contract for the review ledgers.

Every multi-step review operation is written as a callback that receives a
StoreTransaction and runs through ``ReviewStore.run_in_transaction``; all reads
and writes inside the callback commit together or not at all. Two backends
implement the contract: ``MongoReviewStore`` (services/mongodb.py) for
deployments and ``InMemoryReviewStore`` below for local development and tests.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from ..middleware.error_handler import ConflictException

logger = logging.getLogger(__name__)

T = TypeVar("T")

Query = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]

ASCENDING = 1
DESCENDING = -1


class Collections:
    """Collection names."""
    APPLICATIONS = "applications"
    JOB_CATEGORIES = "job_categories"
    DOCUMENT_TYPES = "document_types"
    JOB_CATEGORY_DOCUMENTS = "job_category_documents"
    DOCUMENT_UPLOADS = "document_uploads"
    DOCUMENT_REJECTIONS = "document_rejection_history"
    PAYMENTS = "payments"
    PAYMENT_REJECTIONS = "payment_rejection_history"
    APPLICATION_REJECTIONS = "application_rejection_history"
    NOTIFICATIONS = "notifications"
    USERS = "users"
    ORIENTATIONS = "orientations"
    ADMIN_ACTIVITY = "admin_activity_logs"


# Field combinations that must stay unique within a collection.
UNIQUE_KEYS: Dict[str, List[Tuple[str, ...]]] = {
    Collections.DOCUMENT_UPLOADS: [("applicationId", "documentTypeId")],
    Collections.DOCUMENT_REJECTIONS: [("applicationId", "documentTypeId", "attemptNumber")],
    Collections.PAYMENT_REJECTIONS: [("applicationId", "attemptNumber")],
    Collections.JOB_CATEGORY_DOCUMENTS: [("jobCategoryId", "documentTypeId")],
}


class StoreTransaction(ABC):
    """Reads and writes that commit together."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document by id."""

    @abstractmethod
    def find_one(self, collection: str, query: Query, sort: Optional[Sort] = None) -> Optional[Dict[str, Any]]:
        """Fetch the first document matching a query."""

    @abstractmethod
    def find(self, collection: str, query: Optional[Query] = None, sort: Optional[Sort] = None) -> List[Dict[str, Any]]:
        """Fetch every document matching a query."""

    @abstractmethod
    def count(self, collection: str, query: Optional[Query] = None) -> int:
        """Count documents matching a query."""

    @abstractmethod
    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        """Insert a document that already carries its id."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> bool:
        """Set fields on one document."""

    @abstractmethod
    def update_many(self, collection: str, query: Query, updates: Dict[str, Any]) -> int:
        """Set fields on every matching document."""

    @abstractmethod
    def add_to_set(self, collection: str, doc_id: str, field: str, value: Any) -> bool:
        """Add a value to an array field unless already present."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> bool:
        """Remove one document."""

    @abstractmethod
    def delete_many(self, collection: str, query: Query) -> int:
        """Remove every matching document."""


class ReviewStore(ABC):
    """Storage backend for the review ledgers."""

    @abstractmethod
    def run_in_transaction(self, callback: Callable[[StoreTransaction], T]) -> T:
        """Run a callback atomically; retried or rolled back by the backend."""

    @abstractmethod
    def read(self, callback: Callable[[StoreTransaction], T]) -> T:
        """Run a read-only callback without opening a transaction."""

    def create_indexes(self) -> None:
        """Create backend indexes (no-op for backends without them)."""

    def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "backend": self.__class__.__name__}


def matches(document: Dict[str, Any], query: Optional[Query]) -> bool:
    """
    Evaluate the Mongo query subset used by the services.

    Supports equality (array fields match on membership) and the operators
    $in, $nin, $ne, $lt, $lte, $gt, $gte and $exists.
    """
    for key, condition in (query or {}).items():
        value = document.get(key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for operator, operand in condition.items():
                if not _apply_operator(operator, value, operand, key in document):
                    return False
        elif isinstance(value, list) and not isinstance(condition, list):
            if condition not in value:
                return False
        elif value != condition:
            return False
    return True


def _apply_operator(operator: str, value: Any, operand: Any, present: bool) -> bool:
    values = value if isinstance(value, list) else [value]
    if operator == "$in":
        return any(item in operand for item in values)
    if operator == "$nin":
        return not any(item in operand for item in values)
    if operator == "$ne":
        return operand not in values
    if operator == "$exists":
        return present == bool(operand)
    if operator in ("$lt", "$lte", "$gt", "$gte"):
        if value is None:
            return False
        if operator == "$lt":
            return value < operand
        if operator == "$lte":
            return value <= operand
        if operator == "$gt":
            return value > operand
        return value >= operand
    raise ValueError(f"Unsupported query operator: {operator}")


def sort_documents(documents: List[Dict[str, Any]], sort: Optional[Sort]) -> List[Dict[str, Any]]:
    """Sort documents by (field, direction) pairs, missing values first."""
    ordered = list(documents)
    for field, direction in reversed(list(sort or [])):
        ordered.sort(
            key=lambda doc: (doc.get(field) is not None, doc.get(field)),
            reverse=direction == DESCENDING
        )
    return ordered


class _InMemoryTransaction(StoreTransaction):

    def __init__(self, data: Dict[str, Dict[str, Dict[str, Any]]]):
        self._data = data

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(name, {})

    def get(self, collection, doc_id):
        document = self._collection(collection).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    def find_one(self, collection, query, sort=None):
        found = self.find(collection, query, sort)
        return found[0] if found else None

    def find(self, collection, query=None, sort=None):
        found = [doc for doc in self._collection(collection).values() if matches(doc, query)]
        return copy.deepcopy(sort_documents(found, sort))

    def count(self, collection, query=None):
        return sum(1 for doc in self._collection(collection).values() if matches(doc, query))

    def insert(self, collection, document):
        documents = self._collection(collection)
        doc_id = document["id"]
        if doc_id in documents:
            raise ConflictException(f"Duplicate id {doc_id} in {collection}")
        self._check_unique(collection, document, exclude_id=None)
        documents[doc_id] = copy.deepcopy(document)
        return doc_id

    def update(self, collection, doc_id, updates):
        documents = self._collection(collection)
        if doc_id not in documents:
            return False
        candidate = {**documents[doc_id], **copy.deepcopy(updates)}
        self._check_unique(collection, candidate, exclude_id=doc_id)
        documents[doc_id] = candidate
        return True

    def update_many(self, collection, query, updates):
        matched = [doc["id"] for doc in self._collection(collection).values() if matches(doc, query)]
        for doc_id in matched:
            self.update(collection, doc_id, updates)
        return len(matched)

    def add_to_set(self, collection, doc_id, field, value):
        document = self._collection(collection).get(doc_id)
        if document is None:
            return False
        values = document.setdefault(field, [])
        if value not in values:
            values.append(value)
        return True

    def delete(self, collection, doc_id):
        return self._collection(collection).pop(doc_id, None) is not None

    def delete_many(self, collection, query):
        documents = self._collection(collection)
        matched = [doc_id for doc_id, doc in documents.items() if matches(doc, query)]
        for doc_id in matched:
            del documents[doc_id]
        return len(matched)

    def _check_unique(self, collection: str, document: Dict[str, Any], exclude_id: Optional[str]) -> None:
        for fields in UNIQUE_KEYS.get(collection, []):
            key = tuple(document.get(field) for field in fields)
            for other_id, other in self._collection(collection).items():
                if other_id == exclude_id:
                    continue
                if tuple(other.get(field) for field in fields) == key:
                    raise ConflictException(
                        f"A record with the same {', '.join(fields)} already exists in {collection}"
                    )


class InMemoryReviewStore(ReviewStore):
    """
    Process-local store.

    A re-entrant lock serializes transactions, and a failed callback restores
    the snapshot taken when the transaction began.
    """

    def __init__(self, seed: Optional[Dict[str, Iterable[Dict[str, Any]]]] = None):
        self._lock = threading.RLock()
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for collection, documents in (seed or {}).items():
            for document in documents:
                self._data.setdefault(collection, {})[document["id"]] = copy.deepcopy(document)
        logger.info("In-memory review store initialized")

    def run_in_transaction(self, callback):
        with self._lock:
            snapshot = copy.deepcopy(self._data)
            try:
                return callback(_InMemoryTransaction(self._data))
            except Exception:
                self._data.clear()
                self._data.update(snapshot)
                raise

    def read(self, callback):
        with self._lock:
            return callback(_InMemoryTransaction(self._data))

    def health_check(self):
        with self._lock:
            counts = {name: len(docs) for name, docs in self._data.items()}
        return {"status": "healthy", "backend": "memory", "collections": counts}
