# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the MongoDB review store.
"""

import pytest
from unittest.mock import MagicMock, call
from pymongo.errors import DuplicateKeyError, PyMongoError, ServerSelectionTimeoutError

from healthcard.middleware.error_handler import ConflictException, StorageException
from healthcard.services.mongodb import MongoReviewStore, MongoTransaction
from healthcard.services.store import Collections


@pytest.fixture
def database():
    return MagicMock()


@pytest.fixture
def mongo_store(database):
    """Store wired to mocked client and database."""
    store = MongoReviewStore("mongodb://localhost:27017/test", "healthcard_test")
    store._client = MagicMock()
    store._database = database
    return store


class TestMongoTransaction:
    """Test translation between store documents and Mongo documents."""

    def test_get_maps_object_id(self, database):
        collection = database[Collections.APPLICATIONS]
        collection.find_one.return_value = {"_id": "app-1", "status": "Submitted"}

        document = MongoTransaction(database).get(Collections.APPLICATIONS, "app-1")

        assert document == {"id": "app-1", "status": "Submitted"}
        collection.find_one.assert_called_once_with({"_id": "app-1"}, session=None)

    def test_missing_document(self, database):
        database[Collections.APPLICATIONS].find_one.return_value = None

        assert MongoTransaction(database).get(Collections.APPLICATIONS, "missing") is None

    def test_query_id_is_translated(self, database):
        collection = database[Collections.NOTIFICATIONS]
        collection.find.return_value.sort.return_value = [{"_id": "n1"}]
        session = MagicMock()

        found = MongoTransaction(database, session).find(
            Collections.NOTIFICATIONS, {"id": "n1", "isRead": False}, sort=[("createdAt", -1)]
        )

        assert found == [{"id": "n1"}]
        collection.find.assert_called_once_with({"_id": "n1", "isRead": False}, session=session)
        collection.find.return_value.sort.assert_called_once_with([("createdAt", -1)])

    def test_insert_uses_id_as_primary_key(self, database):
        collection = database[Collections.PAYMENTS]
        collection.insert_one.return_value.inserted_id = "pay-1"

        inserted = MongoTransaction(database).insert(Collections.PAYMENTS, {"id": "pay-1", "amount": 300.0})

        assert inserted == "pay-1"
        collection.insert_one.assert_called_once_with({"_id": "pay-1", "amount": 300.0}, session=None)

    def test_duplicate_key_is_conflict(self, database):
        database[Collections.DOCUMENT_REJECTIONS].insert_one.side_effect = DuplicateKeyError("duplicate")

        with pytest.raises(ConflictException):
            MongoTransaction(database).insert(Collections.DOCUMENT_REJECTIONS, {"id": "r1"})

    def test_update_and_add_to_set(self, database):
        collection = database[Collections.DOCUMENT_REJECTIONS]
        collection.update_one.return_value.matched_count = 1
        tx = MongoTransaction(database)

        assert tx.update(Collections.DOCUMENT_REJECTIONS, "r1", {"wasReplaced": True}) is True
        assert tx.add_to_set(Collections.DOCUMENT_REJECTIONS, "r1", "adminReadBy", "admin-1") is True

        collection.update_one.assert_has_calls([
            call({"_id": "r1"}, {"$set": {"wasReplaced": True}}, session=None),
            call({"_id": "r1"}, {"$addToSet": {"adminReadBy": "admin-1"}}, session=None),
        ])


class TestMongoReviewStore:

    def test_transaction_runs_in_session(self, mongo_store):
        session = MagicMock()
        mongo_store._client.start_session.return_value.__enter__.return_value = session
        session.with_transaction.side_effect = lambda callback: callback(session)

        result = mongo_store.run_in_transaction(lambda tx: tx._session)

        assert result is session

    def test_driver_errors_become_storage_errors(self, mongo_store):
        mongo_store._client.start_session.side_effect = PyMongoError("connection reset")

        with pytest.raises(StorageException):
            mongo_store.run_in_transaction(lambda tx: None)

    def test_transient_errors_rerun_the_callback(self, mongo_store, database):
        session = MagicMock()
        mongo_store._client.start_session.return_value.__enter__.return_value = session

        def with_transaction(callback):
            # Driver behaviour: retry the whole callback on a transient label
            while True:
                try:
                    result = callback(session)
                    if session.commit_attempts == 0:
                        session.commit_attempts += 1
                        raise PyMongoError("write conflict", error_labels=["TransientTransactionError"])
                    return result
                except PyMongoError as e:
                    if not e.has_error_label("TransientTransactionError"):
                        raise

        session.commit_attempts = 0
        session.with_transaction.side_effect = with_transaction
        database[Collections.APPLICATIONS].find_one.side_effect = [
            {"_id": "app-1", "status": "Submitted"},
            {"_id": "app-1", "status": "Under Review"},
        ]
        seen = []

        def work(tx):
            document = tx.get(Collections.APPLICATIONS, "app-1")
            seen.append(document["status"])
            return document["status"]

        assert mongo_store.run_in_transaction(work) == "Under Review"
        assert seen == ["Submitted", "Under Review"]
        assert database[Collections.APPLICATIONS].find_one.call_args_list == [
            call({"_id": "app-1"}, session=session),
            call({"_id": "app-1"}, session=session),
        ]

    def test_conflicts_pass_through(self, mongo_store):
        session = MagicMock()
        mongo_store._client.start_session.return_value.__enter__.return_value = session

        def raise_conflict(callback):
            raise ConflictException("duplicate attempt number")

        session.with_transaction.side_effect = raise_conflict

        with pytest.raises(ConflictException):
            mongo_store.run_in_transaction(lambda tx: None)

    def test_read_errors(self, mongo_store):
        def failing(tx):
            raise PyMongoError("timeout")

        with pytest.raises(StorageException):
            mongo_store.read(failing)

    def test_health_check(self, mongo_store):
        mongo_store._client.admin.command.return_value = {"ok": 1}

        health = mongo_store.health_check()

        assert health["status"] == "healthy"
        assert health["ping"] is True
        assert health["database"] == "healthcard_test"

    def test_unhealthy_when_ping_fails(self, mongo_store):
        mongo_store._client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")

        assert mongo_store.health_check()["status"] == "unhealthy"

    def test_create_indexes(self, mongo_store, database):
        mongo_store.create_indexes()

        calls = database.__getitem__.return_value.create_index.call_args_list
        numbered = {"attemptNumber": {"$exists": True}}
        assert call(
            [("applicationId", 1), ("documentTypeId", 1), ("attemptNumber", 1)],
            unique=True, partialFilterExpression=numbered
        ) in calls
        assert call(
            [("applicationId", 1), ("attemptNumber", 1)], unique=True, partialFilterExpression=numbered
        ) in calls

    def test_close_connection(self, mongo_store):
        client = mongo_store._client

        mongo_store.close_connection()

        client.close.assert_called_once()
        assert mongo_store._client is None
