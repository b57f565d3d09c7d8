"""
Sync Orchestrator - Incremental and full-label Gmail sync runs

A run for (user, label) either replays Gmail history since the stored
watermark or, when there is no usable watermark, scans the newest
messages of the label. Every message then goes through the same pipeline:
fetch, normalize, upsert, extract links, run extraction, ingest leads.
Per-message failures are collected; provider failures abort the mode.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from leadsync import database
from leadsync.email.client import GmailClient, get_gmail_client
from leadsync.email.normalizer import normalize
from leadsync.exceptions import (
    MessageParseError,
    ProviderError,
    TransientProviderError,
    WatermarkRejectedError,
)
from leadsync.extraction import get_provider, run_extraction
from leadsync.extraction.base import ExtractionProvider
from leadsync.leads import IngestCounts, ingest_leads
from leadsync.links import extract_links
from leadsync.logging_config import get_logger
from leadsync.models import (
    ExtractionRequest,
    ParseStatus,
    SyncMode,
    SyncOptions,
    SyncSummary,
    max_progress_token,
)

logger = get_logger(__name__)

# Marks "read the watermark from the store" as distinct from "no watermark"
_STORED = object()


def default_sync_options() -> SyncOptions:
    """SyncOptions from config.yaml, or built-in defaults when there is no config file."""
    from leadsync.config import get_config

    try:
        config = get_config()
    except FileNotFoundError:
        logger.debug("No config.yaml found, using default sync options")
        return SyncOptions()
    return SyncOptions(max_fetch=config.max_fetch, max_workers=config.max_workers)


@dataclass
class MessageOutcome:
    """What happened to one message id during a run."""

    message_id: str
    skipped: bool = False
    processed: bool = False
    inserted: bool = False
    history_id: Optional[str] = None
    links_found: int = 0
    leads: IngestCounts = field(default_factory=IngestCounts)
    errors: List[str] = field(default_factory=list)


@dataclass
class _RunContext:
    client: GmailClient
    provider: Optional[ExtractionProvider]
    user_id: str
    label: str
    custom_instructions: Optional[str]
    options: SyncOptions
    stop: threading.Event = field(default_factory=threading.Event)

    def should_stop(self) -> bool:
        return self.stop.is_set() or self.options.cancelled


def process_message(ctx: _RunContext, message_id: str) -> MessageOutcome:
    """
    Run the full pipeline for one message id.

    Raises:
        TransientProviderError: the provider is unavailable; the run must stop
    """
    outcome = MessageOutcome(message_id=message_id)
    if ctx.should_stop():
        outcome.skipped = True
        return outcome

    try:
        raw = ctx.client.get_message(message_id)
        message = normalize(raw, ctx.user_id)
        outcome.history_id = message.history_id

        email_id, inserted = database.upsert_email_message(message)
        outcome.processed = True
        outcome.inserted = inserted

        if message.parse_status == ParseStatus.FAILED:
            raise MessageParseError(message.parse_error or "Unparseable message", message_id)

        links = extract_links(html=message.raw_html, text=message.body_text)
        database.save_email_links(email_id, links)
        outcome.links_found = len(links)

        request = ExtractionRequest(
            email_text=message.body_text or message.body_html,
            links=links,
            user_id=ctx.user_id,
            email_id=email_id,
            custom_instructions=ctx.custom_instructions,
        )
        result, job = run_extraction(ctx.provider, request)

        outcome.leads = ingest_leads(
            ctx.user_id,
            result.leads,
            email_id=email_id,
            extraction_job_id=job.id,
            source_label_id=ctx.label,
        )
        outcome.errors.extend(outcome.leads.errors)
    except TransientProviderError:
        raise
    except Exception as e:
        logger.error(f"Error processing message {message_id}: {e}")
        outcome.errors.append(f"Message {message_id}: {e}")

    return outcome


def _merge(summary: SyncSummary, outcome: MessageOutcome) -> None:
    if outcome.skipped:
        return
    if outcome.processed:
        summary.processed += 1
        if outcome.inserted:
            summary.inserted += 1
        else:
            summary.updated += 1
    summary.links_found += outcome.links_found
    summary.leads_inserted += outcome.leads.inserted
    summary.deduped_by_url += outcome.leads.deduped_by_url
    summary.duplicates_flagged += outcome.leads.duplicates_flagged
    summary.errors.extend(outcome.errors)


def _process_batch(ctx: _RunContext, message_ids: List[str], summary: SyncSummary) -> List[MessageOutcome]:
    """
    Process a batch sequentially or on a bounded thread pool.

    Outcomes are merged into the summary on the calling thread.

    Raises:
        TransientProviderError: after in-flight messages have finished
    """
    outcomes: List[MessageOutcome] = []

    if ctx.options.max_workers <= 1 or len(message_ids) <= 1:
        for message_id in message_ids:
            outcome = process_message(ctx, message_id)
            _merge(summary, outcome)
            outcomes.append(outcome)
        return outcomes

    first_error: Optional[TransientProviderError] = None
    with ThreadPoolExecutor(
        max_workers=ctx.options.max_workers, thread_name_prefix="leadsync-sync"
    ) as pool:
        futures = [pool.submit(process_message, ctx, message_id) for message_id in message_ids]
        for future in as_completed(futures):
            try:
                outcome = future.result()
            except TransientProviderError as e:
                ctx.stop.set()
                first_error = first_error or e
                continue
            _merge(summary, outcome)
            outcomes.append(outcome)

    if first_error is not None:
        raise first_error
    return outcomes


def _message_ids_from_history(records: Iterable[Dict[str, Any]]) -> Tuple[List[str], Optional[str]]:
    """Distinct added message ids, in history order, and the highest record id."""
    seen = set()
    message_ids = []
    highest = None
    for record in records:
        highest = max_progress_token(highest, str(record.get("id") or ""))
        for added in record.get("messagesAdded") or []:
            message_id = (added.get("message") or {}).get("id")
            if message_id and message_id not in seen:
                seen.add(message_id)
                message_ids.append(message_id)
    return message_ids, highest


def _seed_watermark(ctx: _RunContext, newest_id: str, outcomes: List[MessageOutcome], summary: SyncSummary) -> None:
    """Best-effort initial watermark from the newest listed message."""
    history_id = next(
        (o.history_id for o in outcomes if o.message_id == newest_id and o.history_id), None
    )
    try:
        if not history_id:
            history_id = ctx.client.get_message(newest_id, fmt="minimal").get("historyId")
        if not history_id:
            logger.warning(f"Message {newest_id} has no historyId; watermark not initialized")
            return
        stored = database.save_sync_watermark(ctx.user_id, str(history_id))
        summary.new_watermark = stored.last_progress_token
        logger.info(f"Initialized watermark for {ctx.user_id} at {stored.last_progress_token}")
    except ProviderError as e:
        logger.warning(f"Could not initialize watermark for {ctx.user_id}: {e}")


def _run(ctx: _RunContext, watermark: Optional[str], summary: SyncSummary) -> None:
    summary.previous_watermark = watermark

    message_ids: List[str] = []
    latest: Optional[str] = None
    incremental = False

    if watermark:
        try:
            records, mailbox_history_id = ctx.client.list_history(watermark, label_id=ctx.label)
        except WatermarkRejectedError as e:
            logger.warning(f"{e}; falling back to label scan for {ctx.user_id}/{ctx.label}")
        except TransientProviderError as e:
            summary.used_fallback = True
            summary.errors.append(f"History sync failed: {e}")
            return
        else:
            incremental = True
            message_ids, highest = _message_ids_from_history(records)
            latest = max_progress_token(watermark, highest, mailbox_history_id)

    if not incremental:
        summary.mode = SyncMode.FALLBACK
        summary.used_fallback = True
        try:
            listed = ctx.client.list_messages(ctx.label, max_results=ctx.options.max_fetch)
        except TransientProviderError as e:
            summary.errors.append(f"Label scan failed: {e}")
            return
        message_ids = [m["id"] for m in listed if m.get("id")]

    summary.scanned = len(message_ids)
    if message_ids and ctx.provider is None:
        ctx.provider = get_provider()

    try:
        outcomes = _process_batch(ctx, message_ids, summary)
    except TransientProviderError as e:
        summary.used_fallback = True
        summary.errors.append(f"Provider unavailable, run aborted: {e}")
        return

    if sum(1 for o in outcomes if not o.skipped) < len(message_ids):
        summary.cancelled = True
        logger.info(f"Sync for {ctx.user_id}/{ctx.label} cancelled; watermark left at {watermark}")
        return

    if incremental:
        if latest and latest != watermark:
            stored = database.save_sync_watermark(ctx.user_id, latest)
            summary.new_watermark = stored.last_progress_token
        else:
            summary.new_watermark = watermark
    elif watermark is None and message_ids:
        _seed_watermark(ctx, message_ids[0], outcomes, summary)


def run_sync(
    user_id: str,
    label: str,
    options: Optional[SyncOptions] = None,
    client: Optional[GmailClient] = None,
    provider: Optional[ExtractionProvider] = None,
    start_token: Any = _STORED,
) -> SyncSummary:
    """
    Sync one Gmail label for one user.

    Args:
        user_id: Mailbox owner
        label: Gmail label id (e.g. "INBOX" or "Label_123")
        options: Fetch size, worker count and cancel event; defaults from config.yaml
        client: Gmail client (defaults to the cached client for user_id)
        provider: Extraction provider (defaults to the configured one)
        start_token: History id to start from instead of the stored watermark;
            None forces a full label scan

    Returns:
        SyncSummary. This function does not raise; failures land in summary.errors.
    """
    summary = SyncSummary(user_id=user_id, label=label)
    try:
        if start_token is _STORED:
            stored = database.get_sync_watermark(user_id)
            start_token = stored.last_progress_token if stored else None

        ctx = _RunContext(
            client=client or get_gmail_client(user_id),
            provider=provider,
            user_id=user_id,
            label=label,
            custom_instructions=database.get_user_settings(user_id)["custom_instructions"],
            options=options or default_sync_options(),
        )
        _run(ctx, start_token, summary)
    except Exception as e:
        logger.exception(f"Sync failed for {user_id}/{label}: {e}")
        summary.errors.append(f"Sync failed: {e}")

    logger.info(
        f"Sync {user_id}/{label} finished ({summary.mode.value}): "
        f"{summary.processed}/{summary.scanned} processed, {summary.leads_inserted} new leads, "
        f"{len(summary.errors)} errors",
        extra={"extra_data": summary.to_dict()},
    )
    return summary


SUMMABLE_FIELDS = (
    "scanned",
    "processed",
    "inserted",
    "updated",
    "linksFound",
    "leadsInserted",
    "dedupedByUrl",
    "duplicatesFlagged",
)


def sync_watched_labels(
    user_id: str,
    labels: Optional[List[str]] = None,
    options: Optional[SyncOptions] = None,
    client: Optional[GmailClient] = None,
    provider: Optional[ExtractionProvider] = None,
) -> Dict[str, Any]:
    """
    Run run_sync() for each watched label of a user.

    Every label starts from the watermark stored before the first label ran,
    so one label's progress cannot hide another label's messages.

    Returns:
        {"userId", "totals", "labels": [summary dicts]}

    Raises:
        ValueError: no labels given and none configured for the user
    """
    if labels is None:
        labels = database.get_user_settings(user_id)["watched_label_ids"]
    if not labels:
        raise ValueError(f"No watched labels configured for user {user_id}")

    stored = database.get_sync_watermark(user_id)
    start_token = stored.last_progress_token if stored else None

    summaries = [
        run_sync(user_id, label, options, client=client, provider=provider, start_token=start_token)
        for label in labels
    ]

    per_label = [s.to_dict() for s in summaries]
    totals: Dict[str, Any] = {key: sum(s[key] for s in per_label) for key in SUMMABLE_FIELDS}
    totals["usedFallback"] = any(s.used_fallback for s in summaries)
    totals["errors"] = [error for s in summaries for error in s.errors]
    return {"userId": user_id, "totals": totals, "labels": per_label}
