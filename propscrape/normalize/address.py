"""Best-effort decomposition of free-form listing addresses."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

UNKNOWN_PROVINCE = "Unknown"


@dataclass(frozen=True, slots=True)
class AddressParts:
    """Province/city/suburb guessed from a comma separated address.

    ``province`` is ``None`` when the address carries no province component;
    ``province_label`` gives the value stored for such listings.
    """

    province: Optional[str]
    city: str
    suburb: Optional[str] = None

    @property
    def province_label(self) -> str:
        return self.province or UNKNOWN_PROVINCE


def parse_address(address: str) -> AddressParts:
    """Split on commas: last part is the province, second-to-last the city.

    With three or more parts the first one is taken as the suburb. This is a
    heuristic, not a postal parser.
    """
    parts = [part.strip() for part in address.split(",")]
    if len(parts) == 1:
        return AddressParts(province=None, city=parts[0])
    if len(parts) == 2:
        return AddressParts(province=parts[1] or None, city=parts[0])
    return AddressParts(province=parts[-1] or None, city=parts[-2], suburb=parts[0] or None)
