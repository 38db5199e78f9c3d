# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and persistence helpers.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Type, TypeVar
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId

E = TypeVar("E", bound="BaseEntity")


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


class BaseEntity(BaseModel):
    """Base entity with common fields for all review records."""

    model_config = ConfigDict(
        # Stored documents use camelCase keys
        alias_generator=to_camel,
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Defaults are stored as enum values too
        validate_default=True,
        # Validate assignment
        validate_assignment=True,
        arbitrary_types_allowed=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def update_timestamp(self, now: Optional[datetime] = None) -> None:
        """Update the updated_at field."""
        self.updated_at = now or datetime.utcnow()

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the camelCase document shape kept by the store."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_document(cls: Type[E], document: Dict[str, Any]) -> E:
        """Build an entity from a stored document."""
        return cls.model_validate(document)


class RequestModel(BaseModel):
    """Base model for API request payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
        validate_assignment=True,
        str_strip_whitespace=True
    )
