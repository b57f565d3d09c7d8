"""
Models - Domain types shared by the sync pipeline

Plain dataclasses for messages, links, lead candidates and run summaries,
with str-valued enums for the closed vocabularies stored in the database.
"""

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ParseStatus(str, Enum):
    UNPARSED = "unparsed"
    PARSED = "parsed"
    FAILED = "failed"


class LinkType(str, Enum):
    JOB_POSTING = "job_posting"
    JOB_LIST = "job_list"
    COMPANY = "company"
    UNSUBSCRIBE = "unsubscribe"
    TRACKING = "tracking"
    OTHER = "other"


class LeadStatus(str, Enum):
    NEW = "new"
    UNDECIDED = "undecided"
    ADDED_TO_HUNTR = "added_to_huntr"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


class LeadOutcome(str, Enum):
    """Result of ingesting one lead candidate."""

    INSERTED = "inserted"
    DEDUPED_BY_URL = "deduped_by_url"
    DUPLICATE_FLAGGED = "duplicate_flagged"


class ExtractionStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SyncMode(str, Enum):
    INCREMENTAL = "incremental"
    FALLBACK = "fallback"


def compare_progress_tokens(a: str, b: str) -> int:
    """
    Compare two provider progress tokens.

    Gmail history ids are decimal strings, so digit-only tokens compare
    numerically; anything else compares as plain strings.

    Returns:
        -1, 0 or 1 like a classic cmp()
    """
    if a.isdigit() and b.isdigit():
        left, right = int(a), int(b)
    else:
        left, right = a, b
    return (left > right) - (left < right)


def max_progress_token(*tokens: Optional[str]) -> Optional[str]:
    """Return the greatest non-empty token, or None."""
    best = None
    for token in tokens:
        if not token:
            continue
        if best is None or compare_progress_tokens(token, best) > 0:
            best = token
    return best


@dataclass
class Participant:
    email: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email, "name": self.name}


@dataclass
class SyncWatermark:
    """Per-user incremental sync progress."""

    user_id: str
    last_progress_token: str
    last_run_at: Optional[str] = None


@dataclass
class CanonicalMessage:
    """A provider message reduced to the fields the pipeline works with."""

    user_id: str
    provider: str
    provider_message_id: str
    thread_id: Optional[str] = None
    sender: Participant = field(default_factory=lambda: Participant(email=""))
    to: List[Participant] = field(default_factory=list)
    cc: List[Participant] = field(default_factory=list)
    bcc: List[Participant] = field(default_factory=list)
    subject: str = ""
    snippet: str = ""
    sent_at: Optional[datetime] = None
    body_text: str = ""
    body_html: str = ""
    # Undecoded HTML, kept for link extraction only
    raw_html: str = ""
    labels: List[str] = field(default_factory=list)
    history_id: Optional[str] = None
    content_hash: str = ""
    job_signal_score: float = 0.0
    parse_status: ParseStatus = ParseStatus.UNPARSED
    parse_error: Optional[str] = None


@dataclass
class ExtractedLink:
    url: str
    normalized_url: str
    domain: str
    type: LinkType
    anchor_text: Optional[str] = None

    @property
    def is_likely_job_list(self) -> bool:
        return self.type == LinkType.JOB_LIST

    @property
    def is_unsubscribe(self) -> bool:
        return self.type == LinkType.UNSUBSCRIBE

    @property
    def is_tracking(self) -> bool:
        return self.type == LinkType.TRACKING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "normalized_url": self.normalized_url,
            "domain": self.domain,
            "type": self.type.value,
            "anchor_text": self.anchor_text,
            "is_likely_job_list": self.is_likely_job_list,
            "is_unsubscribe": self.is_unsubscribe,
            "is_tracking": self.is_tracking,
        }


@dataclass
class LeadCandidate:
    url: str
    normalized_url: str
    type: LinkType = LinkType.OTHER
    title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    dedupe_key: Optional[str] = None
    confidence: float = 0.5
    anchor_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


@dataclass
class ExtractionRequest:
    email_text: str
    links: List[ExtractedLink]
    user_id: str
    email_id: str
    custom_instructions: Optional[str] = None


@dataclass
class ExtractionResult:
    leads: List[LeadCandidate] = field(default_factory=list)
    tokens_input: int = 0
    tokens_output: int = 0


@dataclass
class ExtractionJob:
    """Audit record of one extraction attempt."""

    id: str
    user_id: str
    email_id: str
    status: ExtractionStatus
    model: str
    prompt_version: str
    instructions_snapshot: Optional[str] = None
    output: List[Dict[str, Any]] = field(default_factory=list)
    tokens_prompt: int = 0
    tokens_completion: int = 0
    error: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class SyncOptions:
    """
    Per-run knobs for run_sync().

    Attributes:
        max_fetch: Messages listed by a fallback label scan
        max_workers: Message pipelines run in parallel (1 = sequential)
        cancel_event: Set to stop starting new messages
    """

    max_fetch: int = 20
    max_workers: int = 1
    cancel_event: Optional[threading.Event] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass
class SyncSummary:
    """Counters and errors reported by one run_sync() call."""

    user_id: str
    label: str
    mode: SyncMode = SyncMode.INCREMENTAL
    used_fallback: bool = False
    scanned: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    links_found: int = 0
    leads_inserted: int = 0
    deduped_by_url: int = 0
    duplicates_flagged: int = 0
    errors: List[str] = field(default_factory=list)
    previous_watermark: Optional[str] = None
    new_watermark: Optional[str] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "label": self.label,
            "mode": self.mode.value,
            "usedFallback": self.used_fallback,
            "scanned": self.scanned,
            "processed": self.processed,
            "inserted": self.inserted,
            "updated": self.updated,
            "linksFound": self.links_found,
            "leadsInserted": self.leads_inserted,
            "dedupedByUrl": self.deduped_by_url,
            "duplicatesFlagged": self.duplicates_flagged,
            "errors": list(self.errors),
            "previousWatermark": self.previous_watermark,
            "newWatermark": self.new_watermark,
            "cancelled": self.cancelled,
        }
