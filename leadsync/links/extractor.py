"""
Link Extractor - Pull candidate links out of email HTML and plain text

HTML anchors are read with BeautifulSoup so their visible text can feed
classification; bare URLs are then picked up from the raw HTML and the
plain-text body. Results are deduplicated by normalized URL.
"""

import html as html_lib
import logging
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from leadsync.links.classifier import classify_link
from leadsync.links.urls import get_domain, is_valid_url, normalize_url
from leadsync.models import ExtractedLink

logger = logging.getLogger(__name__)

BARE_URL_PATTERN = re.compile(r"https?://[^\s<>\"'()\[\]{}]+", re.IGNORECASE)
TRAILING_PUNCTUATION = ".,;:!?"


def _clean_anchor_text(text: str) -> Optional[str]:
    text = re.sub(r"\s+", " ", text).strip()
    return text or None


def _bare_urls(content: str) -> List[str]:
    return [m.group(0).rstrip(TRAILING_PUNCTUATION) for m in BARE_URL_PATTERN.finditer(content)]


def _add_link(found: Dict[str, ExtractedLink], url: str, anchor_text: Optional[str] = None) -> None:
    url = (url or "").strip()
    if not is_valid_url(url):
        return
    normalized = normalize_url(url)
    if normalized in found:
        return
    found[normalized] = ExtractedLink(
        url=url,
        normalized_url=normalized,
        domain=get_domain(url),
        type=classify_link(url, anchor_text),
        anchor_text=anchor_text,
    )


def extract_links(html: Optional[str] = None, text: Optional[str] = None) -> List[ExtractedLink]:
    """
    Extract and classify every distinct link in an email.

    Args:
        html: Raw HTML body, if any
        text: Plain-text body, if any

    Returns:
        List of ExtractedLink in discovery order, one per normalized URL.
        Anchors found in HTML come first so their anchor text wins.
    """
    found: Dict[str, ExtractedLink] = {}

    if html:
        soup = BeautifulSoup(html, "html.parser")
        for anchor in soup.find_all("a", href=True):
            _add_link(found, anchor["href"], _clean_anchor_text(anchor.get_text(" ")))

        for url in _bare_urls(html):
            _add_link(found, html_lib.unescape(url))

    if text:
        for url in _bare_urls(text):
            _add_link(found, url)

    logger.debug(f"Extracted {len(found)} distinct links")
    return list(found.values())


# Public alias used by callers that only need classification
classify = extract_links
