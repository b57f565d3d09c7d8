"""
Lead candidate helpers - link pre-filtering, dedupe keys and response cleanup
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from leadsync.links.urls import is_valid_url, normalize_url
from leadsync.models import ExtractedLink, LeadCandidate, LinkType

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5


def prefilter_links(links: Iterable[ExtractedLink]) -> List[ExtractedLink]:
    """Drop links already classified as unsubscribe or tracking."""
    return [link for link in links if not (link.is_unsubscribe or link.is_tracking)]


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


def generate_dedupe_key(candidate: LeadCandidate) -> str:
    """
    Semantic identity of a lead, independent of its URL.

    Job postings with both company and title key on "<company>_<title>"
    (lower-cased, alphanumerics only); everything else keys on the
    normalized URL.
    """
    if candidate.type == LinkType.JOB_POSTING and candidate.company and candidate.title:
        company, title = _slug(candidate.company), _slug(candidate.title)
        if company and title:
            return f"{company}_{title}"
    return candidate.normalized_url


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if not 0.0 <= confidence <= 1.0:
        return DEFAULT_CONFIDENCE
    return confidence


def candidate_from_dict(item: Dict[str, Any]) -> Optional[LeadCandidate]:
    """
    Build a LeadCandidate from one entry of a provider response.

    Returns None for entries without a usable URL.
    """
    url = _optional_text(item.get("url"))
    if not url or not is_valid_url(url):
        return None

    try:
        link_type = LinkType(str(item.get("type", "")).strip().lower())
    except ValueError:
        link_type = LinkType.OTHER

    candidate = LeadCandidate(
        url=url,
        normalized_url=normalize_url(url),
        type=link_type,
        title=_optional_text(item.get("title")),
        company=_optional_text(item.get("company")),
        location=_optional_text(item.get("location")),
        confidence=_confidence(item.get("confidence")),
        anchor_text=_optional_text(item.get("anchor_text") or item.get("anchorText")),
    )
    candidate.dedupe_key = generate_dedupe_key(candidate)
    return candidate


def parse_leads(data: Any) -> List[LeadCandidate]:
    """Turn a parsed provider response ({"leads": [...]} or a bare list) into candidates."""
    items = data.get("leads", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ValueError(f"Expected a list of leads, got {type(items).__name__}")

    leads = []
    for item in items:
        if not isinstance(item, dict):
            continue
        candidate = candidate_from_dict(item)
        if candidate is None:
            logger.debug(f"Dropping lead without a valid url: {item}")
            continue
        leads.append(candidate)
    return leads
