"""
Link Classifier - Heuristic typing of links found in job emails

Rules are checked in a fixed order and the first match wins:
job_list, job_posting, company, unsubscribe, tracking, other.
"""

import re
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlsplit

from leadsync.links.urls import get_domain, has_tracking_params
from leadsync.models import LinkType

JOB_LIST_ANCHOR_PATTERNS = [
    re.compile(
        r"\b(see|view|browse|explore|show|search)\s+(all\s+)?(the\s+|our\s+)?"
        r"(jobs|careers|positions|openings|opportunities|roles|vacancies)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bmore\s+(jobs|careers|opportunities|positions|openings|roles)\b", re.IGNORECASE),
    re.compile(r"\bcareer\s+opportunities\b", re.IGNORECASE),
    re.compile(r"\b(open|current)\s+(positions|roles|jobs|openings|vacancies)\b", re.IGNORECASE),
    re.compile(r"\ball\s+(jobs|openings|positions)\b", re.IGNORECASE),
    re.compile(r"^\s*careers?\s*$", re.IGNORECASE),
]

JOB_LIST_PATH_SUFFIXES = (
    "/careers",
    "/jobs",
    "/openings",
    "/positions",
    "/opportunities",
    "/vacancies",
)

JOB_BOARD_DOMAINS = (
    "seek.com.au",
    "seek.co.nz",
    "linkedin.com",
    "indeed.com",
    "greenhouse.io",
    "lever.co",
    "workable.com",
    "glassdoor.com",
    "ziprecruiter.com",
    "wellfound.com",
    "angel.co",
    "dice.com",
    "monster.com",
    "smartrecruiters.com",
    "ashbyhq.com",
    "myworkdayjobs.com",
    "jobvite.com",
    "icims.com",
    "bamboohr.com",
    "recruitee.com",
    "breezy.hr",
    "jora.com",
    "weworkremotely.com",
    "remoteok.com",
    "builtin.com",
)

JOB_POSTING_PATH = re.compile(
    r"/(jobs?|careers?|positions?|openings?|apply|vacanc(?:y|ies)|postings?|job-details)/[^/]"
    r"|/(apply|viewjob|job-details)/?$",
    re.IGNORECASE,
)

COMPANY_PATH = re.compile(
    r"/(about|about-us|company|team|our-team|people|culture|values|mission|who-we-are|contact|contact-us)(/|$)",
    re.IGNORECASE,
)

UNSUBSCRIBE_ANCHOR = re.compile(
    r"\b(unsubscribe|unsub|opt[\s_-]?out|remove|stop\s+(these\s+|receiving\s+)?e-?mails?"
    r"|e-?mail\s+preferences|manage\s+(your\s+)?(subscriptions?|preferences|e-?mails?)|preferences)\b",
    re.IGNORECASE,
)

UNSUBSCRIBE_URL = re.compile(
    r"unsubscribe|unsub\b|/unsub|opt[_-]?out|optout|manage[_-]?subscription|email[_-]?preferences",
    re.IGNORECASE,
)

TRACKING_HOST_PREFIXES = ("click.", "clicks.", "track.", "tracking.", "trk.", "links.", "link.", "email.", "go.")
TRACKING_HOST_SUBSTRINGS = (
    "redirectingat.com",
    "list-manage.com",
    "sendgrid.net",
    "mandrillapp.com",
    "hubspotlinks.com",
    "mailchi.mp",
    "exct.net",
    "mcusercontent.com",
)
TRACKING_PATH = re.compile(r"/(click|clicks|track|tracking|trk|go|link|redirect)(/|$)", re.IGNORECASE)


def _path(url: str) -> str:
    try:
        return urlsplit(url).path or ""
    except ValueError:
        return ""


def _domain_matches(domain: str, candidates) -> bool:
    return any(domain == d or domain.endswith("." + d) for d in candidates)


def is_job_list(url: str, anchor_text: Optional[str]) -> bool:
    if anchor_text and any(p.search(anchor_text) for p in JOB_LIST_ANCHOR_PATTERNS):
        return True
    path = _path(url).rstrip("/").lower()
    return path.endswith(JOB_LIST_PATH_SUFFIXES)


def is_unsubscribe(url: str, anchor_text: Optional[str]) -> bool:
    if anchor_text and UNSUBSCRIBE_ANCHOR.search(anchor_text):
        return True
    return bool(UNSUBSCRIBE_URL.search(url))


def is_job_posting(url: str, anchor_text: Optional[str]) -> bool:
    # Job boards also send unsubscribe links from their own domain
    if _domain_matches(get_domain(url), JOB_BOARD_DOMAINS) and not is_unsubscribe(url, anchor_text):
        return True
    return bool(JOB_POSTING_PATH.search(_path(url)))


def is_company(url: str, anchor_text: Optional[str]) -> bool:
    return bool(COMPANY_PATH.search(_path(url)))


def is_tracking(url: str, anchor_text: Optional[str]) -> bool:
    domain = get_domain(url)
    if domain.startswith(TRACKING_HOST_PREFIXES):
        return True
    if any(s in domain for s in TRACKING_HOST_SUBSTRINGS):
        return True
    if TRACKING_PATH.search(_path(url)):
        return True
    return has_tracking_params(url)


RULES: List[Tuple[LinkType, Callable[[str, Optional[str]], bool]]] = [
    (LinkType.JOB_LIST, is_job_list),
    (LinkType.JOB_POSTING, is_job_posting),
    (LinkType.COMPANY, is_company),
    (LinkType.UNSUBSCRIBE, is_unsubscribe),
    (LinkType.TRACKING, is_tracking),
]


def classify_link(url: str, anchor_text: Optional[str] = None) -> LinkType:
    """
    Assign a LinkType to a raw URL and its anchor text.

    Example:
        >>> classify_link("https://company.com/careers/", "See all jobs")
        <LinkType.JOB_LIST: 'job_list'>
    """
    for link_type, predicate in RULES:
        if predicate(url, anchor_text):
            return link_type
    return LinkType.OTHER
