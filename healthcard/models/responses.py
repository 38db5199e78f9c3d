# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")


class ChecklistEntry(BaseModel):
    """One row of an application's document checklist."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document_type: Dict[str, Any]
    is_required: bool
    upload: Optional[Dict[str, Any]] = None
    rejection_count: int = 0


class RejectionStats(BaseModel):
    """Aggregated rejection figures for a reviewer's scope."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int = 0
    pending_resubmission: int = 0
    resubmitted: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    top_reasons: List[Dict[str, Any]] = Field(default_factory=list)
