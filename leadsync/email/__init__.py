"""
Email Package - Gmail access and message normalization

Usage:
    from leadsync.email import GmailClient, normalize

    client = GmailClient("user-1")
    message = normalize(client.get_message("18c0ffee"), user_id="user-1")
"""

from .client import GmailClient, get_gmail_client, SCOPES

from .normalizer import (
    calculate_job_signal_score,
    clean_html,
    extract_body_text,
    extract_html,
    hash_message,
    normalize,
    parse_address_list,
    parse_from,
)

__all__ = [
    # Client
    "GmailClient",
    "get_gmail_client",
    "SCOPES",
    # Normalizer
    "calculate_job_signal_score",
    "clean_html",
    "extract_body_text",
    "extract_html",
    "hash_message",
    "normalize",
    "parse_address_list",
    "parse_from",
]
