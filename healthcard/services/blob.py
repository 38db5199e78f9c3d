# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Blob storage contract.

Uploaded files live in an external blob store; the ledgers only keep opaque
references. Deletion is requested after the ledger change has committed.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """The blob store could not complete a request."""


class BlobStore(ABC):
    """External file storage addressed by opaque references."""

    @abstractmethod
    def delete(self, file_ref: str) -> None:
        """Remove a stored file."""


class InMemoryBlobStore(BlobStore):
    """Process-local blob registry for development and tests."""

    def __init__(self):
        self._files: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, file_ref: str, content: bytes = b"") -> str:
        with self._lock:
            self._files[file_ref] = content
        return file_ref

    def contains(self, file_ref: str) -> bool:
        with self._lock:
            return file_ref in self._files

    def delete(self, file_ref: str) -> None:
        with self._lock:
            if self._files.pop(file_ref, None) is None:
                raise BlobStoreError(f"Unknown file reference {file_ref}")
        logger.info("Blob deleted", extra={"file_ref": file_ref})
