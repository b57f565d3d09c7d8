"""
Lead Deduplication & Persistence

Decides whether an extracted candidate becomes a new lead, a flagged
duplicate, or nothing at all. The lookups and the insert share one
serialized transaction, so concurrent pipelines cannot both insert the
same lead.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from leadsync import database
from leadsync.exceptions import PersistenceConflict
from leadsync.models import LeadCandidate, LeadOutcome, LeadStatus

logger = logging.getLogger(__name__)


@dataclass
class IngestCounts:
    """Per-message lead counters."""

    inserted: int = 0
    deduped_by_url: int = 0
    duplicates_flagged: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, outcome: LeadOutcome) -> None:
        if outcome == LeadOutcome.INSERTED:
            self.inserted += 1
        elif outcome == LeadOutcome.DEDUPED_BY_URL:
            self.deduped_by_url += 1
        elif outcome == LeadOutcome.DUPLICATE_FLAGGED:
            self.duplicates_flagged += 1


def _insert(conn: sqlite3.Connection, user_id: str, candidate: LeadCandidate, status: LeadStatus, **refs) -> str:
    try:
        return database.insert_job_lead(conn, user_id, candidate, status, **refs)
    except sqlite3.IntegrityError as e:
        raise PersistenceConflict(
            f"Lead {candidate.normalized_url} already exists for {user_id}"
        ) from e


def ingest_lead(
    user_id: str,
    candidate: LeadCandidate,
    email_id: Optional[str] = None,
    extraction_job_id: Optional[str] = None,
    source_label_id: Optional[str] = None,
) -> LeadOutcome:
    """
    Persist one lead candidate with two-tier deduplication.

    1. A lead with the same normalized URL already exists: nothing is written.
    2. A non-duplicate lead shares the candidate's dedupe key: the candidate
       is stored with status 'duplicate'.
    3. Otherwise it is stored with status 'new'.

    A unique-constraint race on the URL counts as DEDUPED_BY_URL.
    """
    refs = {
        "email_id": email_id,
        "extraction_job_id": extraction_job_id,
        "source_label_id": source_label_id,
    }
    try:
        with database.transaction() as conn:
            if database.find_lead_by_url(conn, user_id, candidate.normalized_url):
                return LeadOutcome.DEDUPED_BY_URL

            if candidate.dedupe_key and database.find_lead_by_canonical_key(
                conn, user_id, candidate.dedupe_key
            ):
                _insert(conn, user_id, candidate, LeadStatus.DUPLICATE, **refs)
                return LeadOutcome.DUPLICATE_FLAGGED

            _insert(conn, user_id, candidate, LeadStatus.NEW, **refs)
            return LeadOutcome.INSERTED
    except PersistenceConflict as e:
        logger.debug(f"{e}; treating as deduplicated")
        return LeadOutcome.DEDUPED_BY_URL


def ingest_leads(
    user_id: str,
    candidates: Iterable[LeadCandidate],
    email_id: Optional[str] = None,
    extraction_job_id: Optional[str] = None,
    source_label_id: Optional[str] = None,
) -> IngestCounts:
    """Ingest every candidate of one message; a failing lead does not stop the rest."""
    counts = IngestCounts()
    for candidate in candidates:
        try:
            outcome = ingest_lead(
                user_id,
                candidate,
                email_id=email_id,
                extraction_job_id=extraction_job_id,
                source_label_id=source_label_id,
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to store lead {candidate.normalized_url}: {e}")
            counts.errors.append(f"Lead {candidate.normalized_url}: {e}")
            continue
        counts.add(outcome)
    return counts


def list_leads(user_id: str, status: Optional[str] = None) -> List[dict]:
    return database.list_job_leads(user_id, status=status)


def set_lead_status(lead_id: str, status: str) -> bool:
    """Move a lead through review (new, undecided, added_to_huntr, rejected, duplicate)."""
    return database.update_lead_status(lead_id, LeadStatus(status))
