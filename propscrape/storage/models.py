"""Pydantic models for extracted and persisted property listings."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from propscrape.normalize.address import UNKNOWN_PROVINCE

UNKNOWN_PROPERTY_TYPE = "unknown"


class CandidateRecord(BaseModel):
    """A record extracted from one listing container, not yet persisted.

    Optional fields are ``None`` when the page did not provide them.
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1)
    address: str = Field(min_length=1)
    source_url: str
    province: Optional[str] = None
    city: Optional[str] = None
    suburb: Optional[str] = None
    property_type: Optional[str] = None
    price: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    garage_spaces: Optional[int] = None
    land_size: Optional[float] = Field(default=None, description="square metres")
    floor_size: Optional[float] = Field(default=None, description="square metres")
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Property(BaseModel):
    """Canonical persisted listing as held by a property store."""

    id: str
    title: str
    price: Optional[int] = None
    address: str
    province: str
    city: str
    suburb: Optional[str] = None
    property_type: str
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    garage_spaces: Optional[int] = None
    land_size: Optional[float] = None
    floor_size: Optional[float] = None
    scraped_at: datetime
    source_url: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @classmethod
    def from_candidate(cls, record: CandidateRecord, *, property_id: Optional[str] = None) -> "Property":
        """Build an entity, filling the store's required columns with sentinels."""
        payload = record.model_dump()
        payload.update(
            id=property_id or str(uuid.uuid4()),
            province=record.province or UNKNOWN_PROVINCE,
            city=record.city or record.address,
            property_type=record.property_type or UNKNOWN_PROPERTY_TYPE,
            scraped_at=datetime.now(timezone.utc),
        )
        return cls.model_validate(payload)
