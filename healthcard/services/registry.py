# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Wiring of the review services around one store.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..config import ReviewPolicy
from .activity import ActivityLogService
from .applications import ApplicationService
from .blob import BlobStore, InMemoryBlobStore
from .documents import DocumentService
from .gate import AuthorizationGate
from .notifications import NotificationService
from .orientations import OrientationService
from .payments import PaymentService
from .state_machine import ApplicationStateMachine
from .store import ReviewStore
from .sweep import DeadlineSweepService
from .users import UserService


@dataclass
class ReviewServices:
    store: ReviewStore
    gate: AuthorizationGate
    state_machine: ApplicationStateMachine
    notifications: NotificationService
    applications: ApplicationService
    documents: DocumentService
    payments: PaymentService
    orientations: OrientationService
    users: UserService
    sweep: DeadlineSweepService
    blob_store: BlobStore


def build_services(
    store: ReviewStore,
    policy: Optional[ReviewPolicy] = None,
    blob_store: Optional[BlobStore] = None,
    clock: Callable[[], datetime] = datetime.utcnow
) -> ReviewServices:
    """Construct every service sharing one store, gate and clock."""
    policy = policy or ReviewPolicy()
    blob_store = blob_store or InMemoryBlobStore()
    gate = AuthorizationGate()
    activity = ActivityLogService()
    notifications = NotificationService(store, gate, clock)
    state_machine = ApplicationStateMachine(notifications, policy)
    payments = PaymentService(store, gate, state_machine, notifications, activity, clock)

    return ReviewServices(
        store=store,
        gate=gate,
        state_machine=state_machine,
        notifications=notifications,
        applications=ApplicationService(store, gate, state_machine, notifications, activity, payments, clock),
        documents=DocumentService(store, gate, state_machine, notifications, activity, blob_store, clock),
        payments=payments,
        orientations=OrientationService(store, gate, state_machine, activity, clock),
        users=UserService(store, gate, activity, clock),
        sweep=DeadlineSweepService(store, state_machine, notifications, clock),
        blob_store=blob_store
    )
