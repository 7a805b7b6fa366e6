"""Detection of repeated listing containers within a page."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from bs4 import BeautifulSoup, Tag

# Generic class-name heuristics, in priority order. The first selector with at
# least one match wins; if none match the whole document is one container.
CONTAINER_SELECTORS: Sequence[str] = (
    ".property-item",
    ".listing-item",
    ".property-card",
    ".property",
    "[data-testid*='property']",
)


@dataclass
class ContainerMatch:
    """Containers found in a document and the selector that found them."""

    selector: Optional[str]
    containers: List[Tag] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when no selector matched and the document was used whole."""
        return self.selector is None


def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def find_containers(
    document: BeautifulSoup,
    selectors: Sequence[str] = CONTAINER_SELECTORS,
) -> ContainerMatch:
    for selector in selectors:
        matches = document.select(selector)
        if matches:
            return ContainerMatch(selector=selector, containers=list(matches))
    return ContainerMatch(selector=None, containers=[document])
