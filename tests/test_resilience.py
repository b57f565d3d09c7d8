"""
Tests for the Gmail rate limiter and Gmail error translation.
"""

from unittest.mock import Mock, patch

import pytest
from googleapiclient.errors import HttpError

from leadsync.email.client import GmailClient
from leadsync.exceptions import ProviderError, TransientProviderError, WatermarkRejectedError
from leadsync.resilience import RateLimiter


def test_rate_limiter_admits_up_to_limit():
    limiter = RateLimiter(calls_per_minute=3)
    assert all(limiter.acquire(timeout=0) for _ in range(3))
    assert limiter.acquire(timeout=0) is False


def test_rate_limiter_rejects_invalid_limit():
    with pytest.raises(ValueError):
        RateLimiter(calls_per_minute=0)


def test_rate_limiter_window_expires():
    limiter = RateLimiter(calls_per_minute=1)
    with patch("leadsync.resilience.time.monotonic", side_effect=[0.0, 0.0, 61.0, 61.0]):
        assert limiter.acquire(timeout=0) is True
        assert limiter.acquire(timeout=0) is True


def http_error(status):
    return HttpError(Mock(status=status, reason="error"), b'{"error": {"message": "boom"}}')


@pytest.fixture
def client(tmp_path):
    gmail = GmailClient("user@example.com", token_dir=tmp_path, calls_per_minute=1000)
    gmail.get_service = Mock()
    return gmail


def test_token_file_is_per_user(tmp_path):
    gmail = GmailClient("user/../evil", token_dir=tmp_path)
    assert gmail.token_file.parent == tmp_path
    assert "/" not in gmail.token_file.name


def test_missing_token_is_transient(tmp_path):
    gmail = GmailClient("nobody", token_dir=tmp_path)
    with pytest.raises(TransientProviderError) as exc_info:
        gmail.list_messages("INBOX")
    assert exc_info.value.status == 401


@pytest.mark.parametrize("status", [401, 403, 429, 500, 503])
def test_transient_statuses(client, status):
    client.get_service.return_value.users.return_value.messages.return_value.list.return_value.execute.side_effect = (
        http_error(status)
    )
    with pytest.raises(TransientProviderError):
        client.list_messages("INBOX")


@pytest.mark.parametrize("status", [400, 404])
def test_history_rejection(client, status):
    history = client.get_service.return_value.users.return_value.history.return_value
    history.list.return_value.execute.side_effect = http_error(status)

    with pytest.raises(WatermarkRejectedError) as exc_info:
        client.list_history("12345", label_id="INBOX")
    assert exc_info.value.token == "12345"


def test_other_client_errors_are_permanent(client):
    messages = client.get_service.return_value.users.return_value.messages.return_value
    messages.get.return_value.execute.side_effect = http_error(404)

    with pytest.raises(ProviderError) as exc_info:
        client.get_message("missing")
    assert not isinstance(exc_info.value, TransientProviderError)
    assert exc_info.value.status == 404


def test_list_history_follows_pages(client):
    history = client.get_service.return_value.users.return_value.history.return_value
    history.list.return_value.execute.side_effect = [
        {"history": [{"id": "101"}], "nextPageToken": "p2", "historyId": "150"},
        {"history": [{"id": "102"}], "historyId": "151"},
    ]

    records, latest = client.list_history("100", label_id="INBOX")

    assert [r["id"] for r in records] == ["101", "102"]
    assert latest == "151"
    second_call = history.list.call_args_list[1].kwargs
    assert second_call["pageToken"] == "p2"
    assert second_call["labelId"] == "INBOX"
    assert second_call["startHistoryId"] == "100"


def test_list_labels_sorted_by_name(client):
    labels = client.get_service.return_value.users.return_value.labels.return_value
    labels.list.return_value.execute.return_value = {
        "labels": [
            {"id": "Label_2", "name": "recruiters", "type": "user"},
            {"id": "INBOX", "name": "INBOX", "type": "system"},
            {"id": "Label_1", "name": "Jobs"},
        ]
    }

    result = client.list_labels()

    assert [label["id"] for label in result] == ["INBOX", "Label_1", "Label_2"]
    assert result[1] == {"id": "Label_1", "name": "Jobs", "type": "user"}
    labels.list.assert_called_once_with(userId="me")
