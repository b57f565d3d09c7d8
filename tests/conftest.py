"""
Pytest configuration and shared fixtures for the lead sync tests.
"""

import base64
import json
import os
import re
import sys
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from leadsync import database  # noqa: E402
from leadsync.config import reset_config  # noqa: E402
from leadsync.extraction.base import ExtractionProvider  # noqa: E402


def b64(text: str) -> str:
    """Gmail-style URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def gmail_message(
    message_id: str,
    text: Optional[str] = None,
    html: Optional[str] = None,
    subject: str = "New jobs for you",
    sender: str = '"Job Alerts" <alerts@seek.com.au>',
    history_id: str = "100",
    internal_date: str = "1704101400000",
    labels: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Build a users.messages.get(format=full) response.

    A text and html body become a multipart/alternative payload; a single
    body becomes a flat part.
    """
    headers = [
        {"name": "From", "value": sender},
        {"name": "To", "value": "Me <me@example.com>"},
        {"name": "Subject", "value": subject},
    ]
    parts = []
    if text is not None:
        parts.append({"mimeType": "text/plain", "body": {"data": b64(text)}})
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": b64(html)}})

    if len(parts) == 1:
        payload = dict(parts[0], headers=headers)
    else:
        payload = {"mimeType": "multipart/alternative", "headers": headers, "parts": parts}

    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "historyId": history_id,
        "internalDate": internal_date,
        "snippet": (text or "")[:50],
        "labelIds": labels or ["INBOX"],
        "payload": payload,
    }


class FakeGmailClient:
    """
    In-memory stand-in for GmailClient.

    Messages are listed newest first in insertion order. Errors set on
    history_error / list_error / message_errors are raised by the matching call.
    """

    def __init__(self):
        self.messages: Dict[str, Dict[str, Any]] = {}
        self.history: List[Dict[str, Any]] = []
        self.mailbox_history_id: Optional[str] = None
        self.history_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.message_errors: Dict[str, Exception] = {}
        self.history_calls: List[Tuple[str, Optional[str]]] = []
        self.fetched: List[str] = []

    def add(self, message: Dict[str, Any]) -> None:
        self.messages[message["id"]] = message

    def add_history(self, record_id: str, *message_ids: str) -> None:
        self.history.append(
            {"id": record_id, "messagesAdded": [{"message": {"id": m}} for m in message_ids]}
        )

    def list_messages(self, label_id, max_results=20, query=None):
        if self.list_error:
            raise self.list_error
        ids = list(self.messages)[:max_results]
        return [{"id": m, "threadId": f"thread-{m}"} for m in ids]

    def get_message(self, message_id, fmt="full"):
        if message_id in self.message_errors:
            raise self.message_errors[message_id]
        self.fetched.append(message_id)
        return self.messages[message_id]

    def list_history(self, start_history_id, label_id=None, history_types=("messageAdded",)):
        self.history_calls.append((start_history_id, label_id))
        if self.history_error:
            raise self.history_error
        return list(self.history), self.mailbox_history_id


class FakeProvider(ExtractionProvider):
    """
    Extraction provider returning a canned JSON response.

    By default every job_posting link is returned as a lead.
    """

    def __init__(self, response: Optional[str] = None, error: Optional[Exception] = None):
        super().__init__({"ai": {"max_tokens": 500}})
        self.response = response
        self.error = error
        self.prompts: List[str] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def model_name(self) -> str:
        return "fake-model"

    def _generate(self, prompt: str) -> Tuple[str, int, int]:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        if self.response is not None:
            return self.response, 10, 5
        leads = []
        url = None
        for line in prompt.splitlines():
            match = re.match(r"^\d+\. URL: (\S+)$", line)
            if match:
                url = match.group(1)
            elif url and line.strip() == "Heuristic Type: job_posting":
                leads.append({"url": url, "type": "job_posting", "confidence": 0.9})
                url = None
        return json.dumps({"leads": leads}), 10, 5


@pytest.fixture
def temp_db(tmp_path):
    """
    Point the store at a fresh SQLite file for one test.

    Yields:
        Path: database file
    """
    original = database.DB_PATH
    db_file = tmp_path / "test.db"
    database.set_db_path(db_file)
    database.init_db()
    yield db_file
    database.set_db_path(original)


@pytest.fixture
def fake_client():
    return FakeGmailClient()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture(autouse=True)
def clean_config():
    """Never leak a cached Config between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config_file(tmp_path):
    """Write a minimal valid config.yaml and return its path."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "gmail:\n"
        "  token_dir: tokens\n"
        "sync:\n"
        "  max_fetch: 10\n"
        "  max_workers: 1\n"
        "ai:\n"
        "  provider: claude\n"
    )
    return path
