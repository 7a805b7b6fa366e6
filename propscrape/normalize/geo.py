"""Geocoding hook applied to records before they are persisted."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from propscrape.storage.models import CandidateRecord


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


class GeoResolver:
    """No-op geocoder. Subclass and override ``resolve`` to call a real service."""

    async def resolve(self, address: str) -> Optional[GeoPoint]:
        return None

    async def locate(self, record: CandidateRecord) -> CandidateRecord:
        """Return ``record`` with coordinates filled in when its address resolves."""
        point = await self.resolve(record.address)
        if point is None:
            return record
        return record.model_copy(update={"latitude": point.latitude, "longitude": point.longitude})
