# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - storage, review workflows and external integrations.

Modules are imported directly (``from healthcard.services.documents import
DocumentService``); the package itself stays import-free so the middleware
can depend on it without cycles.
"""
