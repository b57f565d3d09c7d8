"""
Extraction Adapter - One audited extraction attempt per message

Wraps an ExtractionProvider call with link pre-filtering and writes an
ExtractionJob row for every attempt, successful or not. Extraction is
all-or-nothing per message and is never retried here.
"""

import logging
import uuid
from dataclasses import replace
from typing import Tuple

from leadsync import database
from leadsync.exceptions import ExtractionError
from leadsync.models import ExtractionJob, ExtractionRequest, ExtractionResult, ExtractionStatus

from .base import ExtractionProvider
from .candidates import prefilter_links
from .prompts import PROMPT_VERSION

logger = logging.getLogger(__name__)


def run_extraction(
    provider: ExtractionProvider, request: ExtractionRequest
) -> Tuple[ExtractionResult, ExtractionJob]:
    """
    Extract lead candidates from one message and record the attempt.

    Links classified as unsubscribe or tracking are removed first; when
    nothing is left the provider is not called and an empty result is
    recorded as a successful job.

    Args:
        provider: Configured extraction provider
        request: Email text, classified links and user instructions

    Returns:
        (extraction result, the ExtractionJob that was stored)

    Raises:
        ExtractionError: the provider failed; a failed ExtractionJob was stored
    """
    links = prefilter_links(request.links)
    job = ExtractionJob(
        id=str(uuid.uuid4()),
        user_id=request.user_id,
        email_id=request.email_id,
        status=ExtractionStatus.SUCCEEDED,
        model=provider.model_name,
        prompt_version=PROMPT_VERSION,
        instructions_snapshot=request.custom_instructions,
    )

    if not links:
        logger.debug(f"No candidate links in email {request.email_id}; skipping model call")
        database.record_extraction_job(job)
        return ExtractionResult(), job

    try:
        result = provider.extract(replace(request, links=links))
    except Exception as e:
        job.status = ExtractionStatus.FAILED
        job.error = str(e) or e.__class__.__name__
        database.record_extraction_job(job)
        logger.error(f"Extraction failed for email {request.email_id}: {e}")
        raise ExtractionError(
            f"Extraction failed for email {request.email_id}: {e}", message_id=request.email_id
        ) from e

    job.output = [lead.to_dict() for lead in result.leads]
    job.tokens_prompt = result.tokens_input
    job.tokens_completion = result.tokens_output
    database.record_extraction_job(job)
    return result, job
