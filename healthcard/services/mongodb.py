# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB review store with client sessions and connection pooling.
"""

import os
import logging
from typing import Any, Dict, Optional
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError,
    PyMongoError
)

from ..middleware.error_handler import ConflictException, StorageException
from ..models.enums import PaymentStatus
from .store import Collections, ReviewStore, StoreTransaction

logger = logging.getLogger(__name__)

# Legacy rejection records carry no attempt number
ATTEMPT_NUMBERED = {"attemptNumber": {"$exists": True}}


def _to_mongo_query(query: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    translated = dict(query or {})
    if "id" in translated:
        translated["_id"] = translated.pop("id")
    return translated


def _from_mongo(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    document["id"] = str(document.pop("_id"))
    return document


class MongoTransaction(StoreTransaction):
    """Store operations bound to one client session (or none, for reads)."""

    def __init__(self, database: Database, session: Optional[ClientSession] = None):
        self._database = database
        self._session = session

    def _collection(self, name: str) -> Collection:
        return self._database[name]

    def get(self, collection, doc_id):
        return _from_mongo(self._collection(collection).find_one({"_id": doc_id}, session=self._session))

    def find_one(self, collection, query, sort=None):
        document = self._collection(collection).find_one(
            _to_mongo_query(query),
            sort=list(sort) if sort else None,
            session=self._session
        )
        return _from_mongo(document)

    def find(self, collection, query=None, sort=None):
        cursor = self._collection(collection).find(_to_mongo_query(query), session=self._session)
        if sort:
            cursor = cursor.sort(list(sort))
        return [_from_mongo(document) for document in cursor]

    def count(self, collection, query=None):
        return self._collection(collection).count_documents(_to_mongo_query(query), session=self._session)

    def insert(self, collection, document):
        stored = dict(document)
        stored["_id"] = stored.pop("id")
        try:
            result = self._collection(collection).insert_one(stored, session=self._session)
        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key in {collection}", extra={"collection": collection, "error": str(e)})
            raise ConflictException(f"A conflicting record already exists in {collection}")
        return str(result.inserted_id)

    def update(self, collection, doc_id, updates):
        try:
            result = self._collection(collection).update_one(
                {"_id": doc_id}, {"$set": updates}, session=self._session
            )
        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key in {collection}", extra={"collection": collection, "error": str(e)})
            raise ConflictException(f"A conflicting record already exists in {collection}")
        return result.matched_count > 0

    def update_many(self, collection, query, updates):
        result = self._collection(collection).update_many(
            _to_mongo_query(query), {"$set": updates}, session=self._session
        )
        return result.matched_count

    def add_to_set(self, collection, doc_id, field, value):
        result = self._collection(collection).update_one(
            {"_id": doc_id}, {"$addToSet": {field: value}}, session=self._session
        )
        return result.matched_count > 0

    def delete(self, collection, doc_id):
        result = self._collection(collection).delete_one({"_id": doc_id}, session=self._session)
        return result.deleted_count > 0

    def delete_many(self, collection, query):
        result = self._collection(collection).delete_many(_to_mongo_query(query), session=self._session)
        return result.deleted_count


class MongoReviewStore(ReviewStore):
    """MongoDB backend; transactions require a replica set or sharded cluster."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB store with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/healthcard'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'healthcard')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB review store initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True,
                    tz_aware=False
                )
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise StorageException("Database is unavailable") from e

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def run_in_transaction(self, callback):
        try:
            with self.client.start_session() as session:
                return session.with_transaction(
                    lambda s: callback(MongoTransaction(self.database, s))
                )
        except PyMongoError as e:
            logger.error(f"MongoDB transaction failed: {e}", exc_info=True)
            raise StorageException("Database transaction failed") from e

    def read(self, callback):
        try:
            return callback(MongoTransaction(self.database))
        except PyMongoError as e:
            logger.error(f"MongoDB read failed: {e}", exc_info=True)
            raise StorageException("Database read failed") from e

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            return {
                'status': 'healthy',
                'backend': 'mongodb',
                'ping': result.get('ok') == 1,
                'database': self.database_name
            }
        except (PyMongoError, StorageException) as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'backend': 'mongodb',
                'error': str(e),
                'database': self.database_name
            }

    # Index Management

    def create_indexes(self) -> None:
        """Create uniqueness and query indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            uploads = self.get_collection(Collections.DOCUMENT_UPLOADS)
            uploads.create_index(
                [("applicationId", ASCENDING), ("documentTypeId", ASCENDING)], unique=True
            )
            uploads.create_index([("reviewStatus", ASCENDING), ("uploadedAt", ASCENDING)])

            payments = self.get_collection(Collections.PAYMENTS)
            payments.create_index(
                [("applicationId", ASCENDING)],
                unique=True,
                name="one_active_payment_per_application",
                partialFilterExpression={"paymentStatus": {"$in": [
                    PaymentStatus.PENDING.value, PaymentStatus.COMPLETE.value
                ]}}
            )
            payments.create_index([("applicationId", ASCENDING), ("createdAt", DESCENDING)])

            doc_rejections = self.get_collection(Collections.DOCUMENT_REJECTIONS)
            doc_rejections.create_index(
                [("applicationId", ASCENDING), ("documentTypeId", ASCENDING), ("attemptNumber", ASCENDING)],
                unique=True,
                partialFilterExpression=ATTEMPT_NUMBERED
            )
            doc_rejections.create_index([("wasReplaced", ASCENDING), ("replacedAt", DESCENDING)])

            payment_rejections = self.get_collection(Collections.PAYMENT_REJECTIONS)
            payment_rejections.create_index(
                [("applicationId", ASCENDING), ("attemptNumber", ASCENDING)],
                unique=True,
                partialFilterExpression=ATTEMPT_NUMBERED
            )

            self.get_collection(Collections.APPLICATION_REJECTIONS).create_index("applicationId")

            applications = self.get_collection(Collections.APPLICATIONS)
            applications.create_index([("userId", ASCENDING)])
            applications.create_index([("status", ASCENDING), ("paymentDeadline", ASCENDING)])
            applications.create_index([("jobCategoryId", ASCENDING), ("status", ASCENDING)])

            notifications = self.get_collection(Collections.NOTIFICATIONS)
            notifications.create_index([("recipientId", ASCENDING), ("createdAt", DESCENDING)])
            notifications.create_index([("recipientId", ASCENDING), ("isRead", ASCENDING)])

            self.get_collection(Collections.JOB_CATEGORY_DOCUMENTS).create_index(
                [("jobCategoryId", ASCENDING), ("documentTypeId", ASCENDING)], unique=True
            )
            self.get_collection(Collections.DOCUMENT_TYPES).create_index("fieldIdentifier", unique=True)
            self.get_collection(Collections.USERS).create_index("email", unique=True)
            self.get_collection(Collections.ORIENTATIONS).create_index("applicationId", unique=True)

            activity = self.get_collection(Collections.ADMIN_ACTIVITY)
            activity.create_index([("adminId", ASCENDING), ("timestamp", DESCENDING)])
            activity.create_index([("applicationId", ASCENDING), ("timestamp", DESCENDING)])
            activity.create_index("traceId")

            logger.info("MongoDB indexes created successfully")

        except PyMongoError as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise

