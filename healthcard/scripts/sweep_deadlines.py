#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Archive applications whose payment deadline passed without a settled payment.

Meant to run from a scheduler; safe to run repeatedly.
"""

import logging
import sys

from ..config import load_config
from ..middleware.error_handler import StorageException
from ..services.mongodb import MongoReviewStore
from ..services.registry import build_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main() -> int:
    """Run one sweep against the configured MongoDB store."""
    config = load_config()
    store = MongoReviewStore(config['MONGODB_URI'], config['MONGODB_DATABASE'])
    try:
        services = build_services(store, policy=config['REVIEW_POLICY'])
        summary = services.sweep.sweep_expired_pending_payments()
        logger.info(
            f"Deadline sweep finished: {summary['archivedCount']} archived, "
            f"{summary['skippedCount']} skipped, {summary['failedCount']} failed"
        )
        return 1 if summary['failedCount'] else 0
    except StorageException as e:
        logger.error(f"Deadline sweep aborted: {e.message}")
        return 2
    finally:
        store.close_connection()


if __name__ == "__main__":
    sys.exit(main())
