"""Listing extraction from container fragments using job selectors."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

import structlog
from bs4 import Tag

from propscrape.normalize.address import parse_address
from propscrape.normalize.fields import clean_text, parse_count, parse_price, parse_size
from propscrape.orchestrator.errors import ExtractionSkip
from propscrape.orchestrator.jobs import SelectorSet
from propscrape.parse.containers import find_containers, parse_document
from propscrape.storage.models import CandidateRecord

LOGGER = structlog.get_logger(__name__)


@dataclass
class ExtractionReport:
    """Candidates extracted from one page."""

    container_selector: Optional[str]
    containers: int
    candidates: List[CandidateRecord] = field(default_factory=list)
    skipped: int = 0

    @property
    def degraded(self) -> bool:
        return self.container_selector is None


def _select_text(container: Tag, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    element = container.select_one(selector)
    if element is None:
        return None
    return clean_text(element.get_text())


def _required_text(container: Tag, selector: str, field_name: str) -> str:
    text = _select_text(container, selector)
    if not text:
        raise ExtractionSkip(f"missing {field_name}")
    return text


def _link(container: Tag, selector: Optional[str], page_url: str) -> str:
    if not selector:
        return page_url
    element = container.select_one(selector)
    href = element.get("href") if element is not None else None
    if isinstance(href, str) and href.strip():
        return urljoin(page_url, href.strip())
    return page_url


def extract_candidate(container: Tag, selectors: SelectorSet, page_url: str) -> Optional[CandidateRecord]:
    """Build a candidate record from one container.

    Returns ``None`` when the title or address is missing or empty. Optional
    fields that are absent or unparseable are left as ``None``.
    """
    try:
        title = _required_text(container, selectors.title, "title")
        address = _required_text(container, selectors.address, "address")
    except ExtractionSkip:
        return None

    parts = parse_address(address)
    return CandidateRecord(
        title=title,
        address=address,
        source_url=_link(container, selectors.link, page_url),
        province=parts.province,
        city=parts.city or None,
        suburb=parts.suburb,
        property_type=_select_text(container, selectors.property_type) or None,
        price=parse_price(_select_text(container, selectors.price)),
        bedrooms=parse_count(_select_text(container, selectors.bedrooms)),
        bathrooms=parse_count(_select_text(container, selectors.bathrooms)),
        garage_spaces=parse_count(_select_text(container, selectors.garage_spaces)),
        land_size=parse_size(_select_text(container, selectors.land_size)),
        floor_size=parse_size(_select_text(container, selectors.floor_size)),
    )


def extract_candidates(html: str, selectors: SelectorSet, page_url: str) -> ExtractionReport:
    """Locate listing containers in ``html`` and extract one record from each."""
    match = find_containers(parse_document(html))
    if match.degraded:
        LOGGER.warning("containers_not_found", url=page_url)
    else:
        LOGGER.info("containers_found", selector=match.selector, count=len(match.containers))
    report = ExtractionReport(container_selector=match.selector, containers=len(match.containers))
    for container in match.containers:
        candidate = extract_candidate(container, selectors, page_url)
        if candidate is None:
            report.skipped += 1
            continue
        report.candidates.append(candidate)
    return report
