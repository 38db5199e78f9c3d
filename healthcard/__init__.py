# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Health card application review, audit trail and notification API.
"""

__version__ = "0.1.0"
