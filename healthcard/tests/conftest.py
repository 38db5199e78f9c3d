# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

Every service test runs against a seeded InMemoryReviewStore and a fixed
clock, so timestamps and deadlines are deterministic.
"""

import os
import threading
import pytest
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from healthcard.config import ReviewPolicy
from healthcard.models.entities import DocumentType, JobCategory, JobCategoryDocument, User
from healthcard.models.enums import ReviewDecision, UserRole
from healthcard.services.blob import InMemoryBlobStore
from healthcard.services.registry import build_services
from healthcard.services.store import Collections, InMemoryReviewStore

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'

NOW = datetime(2026, 3, 2, 9, 0, 0)

APPLICANT_ID = "user-applicant"
OTHER_APPLICANT_ID = "user-applicant-2"
INSPECTOR_ID = "user-inspector"
ADMIN_ID = "user-admin"
OTHER_ADMIN_ID = "user-admin-security"
UNSCOPED_ADMIN_ID = "user-admin-unscoped"
SYSTEM_ADMIN_ID = "user-sysadmin"
INACTIVE_ID = "user-inactive"

FOOD = "cat-food"
OFFICE = "cat-office"
SECURITY = "cat-security"

ID_TYPE = "doctype-id"
XRAY_TYPE = "doctype-xray"
CEDULA_TYPE = "doctype-cedula"

FORM = {
    "first_name": "Maria",
    "last_name": "Santos",
    "position": "Cook",
    "organization": "Carinderia ni Aling Nena",
    "civil_status": "Single",
}

GCASH_PAYMENT = {
    "payment_method": "Gcash",
    "reference_number": "GC-0001",
    "amount": 300.0,
    "service_fee": 20.0,
}

COUNTER_PAYMENT = {
    "payment_method": "CityHall",
    "reference_number": "OR-0001",
    "amount": 300.0,
    "service_fee": 0.0,
    "receipt_file_ref": "receipts/or-0001.jpg",
}


class FixedClock:
    """Clock the services read; tests move it explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def _user(user_id: str, role: UserRole, managed=None, is_active: bool = True) -> Dict[str, Any]:
    return User(
        id=user_id,
        email=f"{user_id}@example.com",
        full_name=user_id.replace("-", " ").title(),
        role=role,
        managed_categories=managed,
        is_active=is_active,
        created_at=NOW,
        updated_at=NOW
    ).to_document()


def _link(category_id: str, type_id: str, order: int, is_required: Optional[bool] = None) -> Dict[str, Any]:
    created = NOW + timedelta(seconds=order)
    return JobCategoryDocument(
        id=f"link-{category_id}-{type_id}",
        job_category_id=category_id,
        document_type_id=type_id,
        is_required=is_required,
        created_at=created,
        updated_at=created
    ).to_document()


def seed_documents() -> Dict[str, List[Dict[str, Any]]]:
    """Reference data and users shared by every test."""
    return {
        Collections.USERS: [
            _user(APPLICANT_ID, UserRole.APPLICANT),
            _user(OTHER_APPLICANT_ID, UserRole.APPLICANT),
            _user(INSPECTOR_ID, UserRole.INSPECTOR, [FOOD, OFFICE]),
            _user(ADMIN_ID, UserRole.ADMIN, [FOOD, OFFICE]),
            _user(OTHER_ADMIN_ID, UserRole.ADMIN, [SECURITY]),
            _user(UNSCOPED_ADMIN_ID, UserRole.ADMIN, None),
            _user(SYSTEM_ADMIN_ID, UserRole.SYSTEM_ADMIN, "all"),
            _user(INACTIVE_ID, UserRole.ADMIN, "all", is_active=False),
        ],
        Collections.JOB_CATEGORIES: [
            JobCategory(id=FOOD, name="Food Handler", require_orientation=True).to_document(),
            JobCategory(id=OFFICE, name="Non-Food", require_orientation=False).to_document(),
            JobCategory(id=SECURITY, name="Security Guard", require_orientation="no").to_document(),
        ],
        Collections.DOCUMENT_TYPES: [
            DocumentType(id=ID_TYPE, name="Valid ID", field_identifier="validId").to_document(),
            DocumentType(id=XRAY_TYPE, name="Chest X-Ray", field_identifier="chestXray").to_document(),
            DocumentType(id=CEDULA_TYPE, name="Cedula", field_identifier="cedula").to_document(),
        ],
        Collections.JOB_CATEGORY_DOCUMENTS: [
            _link(FOOD, ID_TYPE, 1),
            _link(FOOD, XRAY_TYPE, 2),
            _link(OFFICE, ID_TYPE, 1),
            _link(OFFICE, XRAY_TYPE, 2),
            _link(OFFICE, CEDULA_TYPE, 3, is_required=False),
            _link(SECURITY, ID_TYPE, 1),
        ],
    }


def run_concurrently(*calls: Callable[[], Any], timeout: float = 10) -> List[Any]:
    """
    Start every call on its own thread at the same moment.

    Returns each call's result, or the exception it raised, in call order.
    """
    start = threading.Barrier(len(calls))
    outcomes: List[Any] = [None] * len(calls)

    def run(index: int, fn: Callable[[], Any]) -> None:
        start.wait(timeout)
        try:
            outcomes[index] = fn()
        except Exception as e:
            outcomes[index] = e

    threads = [threading.Thread(target=run, args=(i, fn)) for i, fn in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout)
        assert not thread.is_alive()
    return outcomes


class Scenario:
    """Drives the services through the common steps of a review."""

    def __init__(self, services, store, clock):
        self.services = services
        self.store = store
        self.clock = clock

    def create(self, category: str = OFFICE, owner: str = APPLICANT_ID, draft: bool = False) -> str:
        application = self.services.applications.create_application(owner, category, dict(FORM), draft=draft)
        return application["id"]

    def submit(self, application_id: str, payment: Optional[Dict[str, Any]] = None,
               owner: str = APPLICANT_ID) -> str:
        self.services.applications.submit_application(
            owner, application_id, payment=dict(payment or GCASH_PAYMENT)
        )
        return self.current_payment(application_id)["id"]

    def submitted(self, category: str = OFFICE, settle: bool = True) -> Dict[str, str]:
        """Submitted application with both required documents uploaded."""
        application_id = self.create(category)
        payment_id = self.submit(application_id)
        if settle:
            self.services.payments.handle_gateway_success(payment_id)
        return {
            "application_id": application_id,
            "payment_id": payment_id,
            "id_upload": self.upload(application_id, ID_TYPE, "files/id-v1.jpg"),
            "xray_upload": self.upload(application_id, XRAY_TYPE, "files/xray-v1.jpg"),
        }

    def upload(self, application_id: str, type_id: str, file_ref: str, owner: str = APPLICANT_ID) -> str:
        return self.services.documents.upload_document(owner, application_id, type_id, file_ref)

    def approve(self, upload_id: str, reviewer: str = ADMIN_ID) -> Dict[str, Any]:
        return self.services.documents.review_document(reviewer, upload_id, ReviewDecision.APPROVE.value)

    def reject(self, upload_id: str, reason: str = "blurry", reviewer: str = ADMIN_ID) -> Dict[str, Any]:
        return self.services.documents.review_document(
            reviewer, upload_id, ReviewDecision.REJECT.value,
            rejection_category="quality_issue", rejection_reason=reason
        )

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self.store.read(lambda tx: tx.get(collection, doc_id))

    def find(self, collection: str, query: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return self.store.read(lambda tx: tx.find(collection, query))

    def status(self, application_id: str) -> str:
        return self.get(Collections.APPLICATIONS, application_id)["status"]

    def current_payment(self, application_id: str) -> Dict[str, Any]:
        payments = self.find(Collections.PAYMENTS, {"applicationId": application_id})
        return max(payments, key=lambda p: p["createdAt"])

    def notifications_for(self, user_id: str, notification_type: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"recipientId": user_id}
        if notification_type:
            query["type"] = notification_type
        return self.find(Collections.NOTIFICATIONS, query)


@pytest.fixture
def clock():
    """Clock fixed at NOW."""
    return FixedClock(NOW)


@pytest.fixture
def store():
    """Seeded in-memory review store."""
    return InMemoryReviewStore(seed=seed_documents())


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def policy():
    return ReviewPolicy(payment_deadline_days=7, max_document_attempts=3)


@pytest.fixture
def services(store, blob_store, clock, policy):
    """Every review service wired around the seeded store."""
    return build_services(store, policy=policy, blob_store=blob_store, clock=clock)


@pytest.fixture
def scenario(services, store, clock):
    return Scenario(services, store, clock)
