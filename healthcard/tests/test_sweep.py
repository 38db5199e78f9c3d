# SPDX-License-Identifier: Apache-2.0

"""
Tests for the payment deadline sweep.
"""

import threading
import pytest
from datetime import timedelta

from healthcard.middleware.error_handler import ConflictException, StorageException
from healthcard.models.entities import Payment
from healthcard.models.enums import ApplicationStatus, NotificationType, PaymentMethod, PaymentStatus
from healthcard.services.store import Collections

from .conftest import APPLICANT_ID, FOOD, GCASH_PAYMENT, NOW, OFFICE, run_concurrently


class TestDeadlineSweep:

    def test_archives_only_expired_unpaid_applications(self, scenario, services, clock):
        expired = scenario.create(OFFICE)
        submitted = scenario.create(FOOD)
        scenario.submit(submitted)
        draft = scenario.create(OFFICE, draft=True)
        clock.advance(days=3)
        recent = scenario.create(OFFICE)

        summary = services.sweep.sweep_expired_pending_payments(now=NOW + timedelta(days=8))

        assert summary == {"archivedCount": 1, "skippedCount": 0, "failedCount": 0}
        assert scenario.status(expired) == ApplicationStatus.ARCHIVED.value
        assert scenario.status(submitted) == ApplicationStatus.SUBMITTED.value
        assert scenario.status(draft) == ApplicationStatus.DRAFT.value
        assert scenario.status(recent) == ApplicationStatus.PENDING_PAYMENT.value

        application = scenario.get(Collections.APPLICATIONS, expired)
        assert application["archivedAt"] == NOW + timedelta(days=8)
        assert len(scenario.notifications_for(APPLICANT_ID, NotificationType.APPLICATION_ARCHIVED.value)) == 1

    def test_deadline_instant_is_not_expired(self, scenario, services):
        application_id = scenario.create(OFFICE)

        summary = services.sweep.sweep_expired_pending_payments(now=NOW + timedelta(days=7))

        assert summary["archivedCount"] == 0
        assert scenario.status(application_id) == ApplicationStatus.PENDING_PAYMENT.value

    def test_settled_payment_keeps_application(self, scenario, services, store):
        application_id = scenario.create(OFFICE)
        payment = Payment(
            application_id=application_id,
            amount=300.0,
            net_amount=300.0,
            payment_method=PaymentMethod.GCASH,
            reference_number="GC-LATE",
            payment_status=PaymentStatus.COMPLETE
        )
        store.run_in_transaction(lambda tx: tx.insert(Collections.PAYMENTS, payment.to_document()))

        summary = services.sweep.sweep_expired_pending_payments(now=NOW + timedelta(days=8))

        assert summary == {"archivedCount": 0, "skippedCount": 1, "failedCount": 0}
        assert scenario.status(application_id) == ApplicationStatus.PENDING_PAYMENT.value

    def test_payment_settling_mid_sweep_keeps_application(self, scenario, services, monkeypatch):
        application_id = scenario.create(OFFICE)
        payment_id = services.payments.create_payment(APPLICANT_ID, application_id, **GCASH_PAYMENT)["paymentId"]
        scanned = threading.Barrier(2)
        settled = threading.Barrier(2)
        archive_one = services.sweep._archive_one

        def archive_after_settlement(candidate_id, now):
            scanned.wait(5)
            settled.wait(5)
            return archive_one(candidate_id, now)

        def settle():
            scanned.wait(5)
            try:
                return services.payments.handle_gateway_success(payment_id)
            finally:
                settled.wait(5)

        monkeypatch.setattr(services.sweep, "_archive_one", archive_after_settlement)

        summary, settlement = run_concurrently(
            lambda: services.sweep.sweep_expired_pending_payments(now=NOW + timedelta(days=8)),
            settle,
        )

        assert settlement["applicationStatus"] == ApplicationStatus.SUBMITTED.value
        assert summary == {"archivedCount": 0, "skippedCount": 1, "failedCount": 0}
        assert scenario.status(application_id) == ApplicationStatus.SUBMITTED.value
        assert scenario.notifications_for(APPLICANT_ID, NotificationType.APPLICATION_ARCHIVED.value) == []

    def test_payment_settling_after_archive_is_refused(self, scenario, services):
        application_id = scenario.create(OFFICE)
        payment_id = services.payments.create_payment(APPLICANT_ID, application_id, **GCASH_PAYMENT)["paymentId"]

        services.sweep.sweep_expired_pending_payments(now=NOW + timedelta(days=8))

        with pytest.raises(ConflictException):
            services.payments.handle_gateway_success(payment_id)
        assert scenario.status(application_id) == ApplicationStatus.ARCHIVED.value
        assert scenario.get(Collections.PAYMENTS, payment_id)["paymentStatus"] == PaymentStatus.PENDING.value

    def test_running_twice_changes_nothing(self, scenario, services):
        scenario.create(OFFICE)
        later = NOW + timedelta(days=8)

        first = services.sweep.sweep_expired_pending_payments(now=later)
        second = services.sweep.sweep_expired_pending_payments(now=later)

        assert first["archivedCount"] == 1
        assert second == {"archivedCount": 0, "skippedCount": 0, "failedCount": 0}
        assert len(scenario.notifications_for(APPLICANT_ID, NotificationType.APPLICATION_ARCHIVED.value)) == 1

    def test_uses_clock_by_default(self, scenario, services, clock):
        application_id = scenario.create(OFFICE)
        clock.advance(days=7, seconds=1)

        assert services.sweep.sweep_expired_pending_payments()["archivedCount"] == 1
        assert scenario.status(application_id) == ApplicationStatus.ARCHIVED.value

    def test_failures_are_counted(self, scenario, services, store, monkeypatch):
        first = scenario.create(OFFICE)
        second = scenario.create(OFFICE)
        original = store.run_in_transaction
        calls = []

        def flaky(callback):
            calls.append(callback)
            if len(calls) == 1:
                raise RuntimeError("transient failure")
            return original(callback)

        monkeypatch.setattr(store, "run_in_transaction", flaky)

        summary = services.sweep.sweep_expired_pending_payments(now=NOW + timedelta(days=8))

        assert summary == {"archivedCount": 1, "skippedCount": 0, "failedCount": 1}
        statuses = {scenario.status(first), scenario.status(second)}
        assert statuses == {ApplicationStatus.ARCHIVED.value, ApplicationStatus.PENDING_PAYMENT.value}

    def test_storage_failure_aborts(self, scenario, services, store, monkeypatch):
        scenario.create(OFFICE)
        scenario.create(OFFICE)

        def unavailable(callback):
            raise StorageException("Storage temporarily unavailable")

        monkeypatch.setattr(store, "run_in_transaction", unavailable)

        with pytest.raises(StorageException):
            services.sweep.sweep_expired_pending_payments(now=NOW + timedelta(days=8))
