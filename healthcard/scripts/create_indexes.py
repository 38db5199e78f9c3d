#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Script to create the MongoDB uniqueness and query indexes.
"""

import logging
import sys

from pymongo.errors import PyMongoError

from ..config import load_config
from ..middleware.error_handler import StorageException
from ..services.mongodb import MongoReviewStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main() -> int:
    """Create MongoDB indexes."""
    config = load_config()
    store = MongoReviewStore(config['MONGODB_URI'], config['MONGODB_DATABASE'])
    try:
        health = store.health_check()
        if health['status'] != 'healthy':
            logger.error(f"MongoDB is not healthy: {health}")
            return 1

        logger.info(f"Connected to MongoDB - Database: {health['database']}")
        store.create_indexes()
        logger.info("MongoDB indexes created successfully!")
        return 0
    except (PyMongoError, StorageException) as e:
        logger.error(f"Failed to create indexes: {e}")
        return 1
    finally:
        store.close_connection()


if __name__ == "__main__":
    sys.exit(main())
