"""
Gmail Client - Per-user Gmail API access for the sync pipeline

Loads each user's authorized-user token file, refreshes it when expired and
exposes the three calls the orchestrator needs: label listing, message fetch
and history listing. Google API errors are translated into the pipeline's
ProviderError hierarchy.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from leadsync.exceptions import ProviderError, TransientProviderError, WatermarkRejectedError
from leadsync.resilience import RateLimiter

logger = logging.getLogger(__name__)

# Gmail API scopes - readonly access to messages
SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]

APP_DIR = Path(__file__).parent.parent.parent
DEFAULT_TOKEN_DIR = APP_DIR / "tokens"

TRANSIENT_STATUSES = {401, 403, 429}
WATERMARK_REJECTED_STATUSES = {400, 404}


class GmailClient:
    """
    Gmail API client bound to one user's credentials.

    The googleapiclient service object is not thread-safe, so one is built
    per thread; credentials are shared and refreshed under a lock.
    """

    def __init__(
        self,
        user_id: str,
        token_dir: Optional[Path] = None,
        calls_per_minute: int = 240,
    ):
        """
        Initialize Gmail client.

        Args:
            user_id: Mailbox owner; selects {token_dir}/{user_id}.json
            token_dir: Directory of authorized-user token files
            calls_per_minute: Client-side throttle for API calls
        """
        self.user_id = user_id
        self.token_dir = Path(token_dir) if token_dir else DEFAULT_TOKEN_DIR
        self.token_file = self.token_dir / f"{re.sub(r'[^A-Za-z0-9@._-]', '_', user_id)}.json"
        self._limiter = RateLimiter(calls_per_minute=calls_per_minute)
        self._creds: Optional[Credentials] = None
        self._creds_lock = threading.Lock()
        self._local = threading.local()

    def _credentials(self) -> Credentials:
        with self._creds_lock:
            creds = self._creds
            if creds is None:
                if not self.token_file.exists():
                    raise TransientProviderError(
                        f"No Gmail token for user {self.user_id} at {self.token_file}", status=401
                    )
                creds = Credentials.from_authorized_user_file(str(self.token_file), SCOPES)

            if not creds.valid:
                if not (creds.expired and creds.refresh_token):
                    raise TransientProviderError(
                        f"Gmail token for user {self.user_id} is invalid and cannot be refreshed",
                        status=401,
                    )
                try:
                    creds.refresh(Request())
                except RefreshError as e:
                    logger.error(f"Failed to refresh Gmail credentials for {self.user_id}: {e}")
                    raise TransientProviderError(
                        f"Gmail credentials for {self.user_id} could not be refreshed: {e}",
                        status=401,
                    ) from e
                with open(self.token_file, "w") as f:
                    f.write(creds.to_json())

            self._creds = creds
            return creds

    def get_service(self):
        """
        Get the authenticated Gmail API service for the calling thread.

        Returns:
            googleapiclient.discovery.Resource
        """
        service = getattr(self._local, "service", None)
        if service is None:
            service = build("gmail", "v1", credentials=self._credentials(), cache_discovery=False)
            self._local.service = service
        return service

    def _execute(self, make_request: Callable[[Any], Any], history_token: Optional[str] = None) -> Dict:
        self._limiter.acquire()
        try:
            return make_request(self.get_service()).execute()
        except HttpError as e:
            status = int(e.resp.status)
            if history_token is not None and status in WATERMARK_REJECTED_STATUSES:
                raise WatermarkRejectedError(history_token, status=status) from e
            if status in TRANSIENT_STATUSES or status >= 500:
                raise TransientProviderError(f"Gmail API error {status}: {e}", status=status) from e
            raise ProviderError(f"Gmail API error {status}: {e}", status=status) from e
        except RefreshError as e:
            raise TransientProviderError(f"Gmail credentials expired: {e}", status=401) from e

    def list_messages(
        self, label_id: str, max_results: int = 20, query: Optional[str] = None
    ) -> List[Dict[str, str]]:
        """
        List the newest messages carrying a label.

        Returns:
            List of {"id", "threadId"} dicts, newest first
        """
        kwargs = {"userId": "me", "labelIds": [label_id], "maxResults": max_results}
        if query:
            kwargs["q"] = query
        response = self._execute(lambda s: s.users().messages().list(**kwargs))
        return response.get("messages", [])

    def list_labels(self) -> List[Dict[str, str]]:
        """
        List the mailbox's labels, sorted by name.

        Returns:
            List of {"id", "name", "type"} dicts
        """
        response = self._execute(lambda s: s.users().labels().list(userId="me"))
        labels = [
            {"id": label["id"], "name": label.get("name", label["id"]), "type": label.get("type", "user")}
            for label in response.get("labels", [])
        ]
        return sorted(labels, key=lambda label: label["name"].lower())

    def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]:
        """
        Get a single email message.

        Args:
            message_id: Gmail message ID
            fmt: Response format ('full', 'minimal', 'metadata', 'raw')
        """
        return self._execute(
            lambda s: s.users().messages().get(userId="me", id=message_id, format=fmt)
        )

    def list_history(
        self,
        start_history_id: str,
        label_id: Optional[str] = None,
        history_types: Sequence[str] = ("messageAdded",),
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        List every history record after start_history_id, following pagination.

        Returns:
            (history records, mailbox historyId reported by the last page)

        Raises:
            WatermarkRejectedError: start_history_id is unknown or expired
            TransientProviderError: auth, quota or server failures
        """
        records: List[Dict[str, Any]] = []
        page_token = None
        latest = None

        while True:
            kwargs = {
                "userId": "me",
                "startHistoryId": start_history_id,
                "historyTypes": list(history_types),
            }
            if label_id:
                kwargs["labelId"] = label_id
            if page_token:
                kwargs["pageToken"] = page_token

            response = self._execute(
                lambda s: s.users().history().list(**kwargs), history_token=start_history_id
            )
            records.extend(response.get("history", []))
            latest = response.get("historyId") or latest
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        return records, str(latest) if latest else None


# Per-user client cache
_clients: Dict[str, GmailClient] = {}
_clients_lock = threading.Lock()


def get_gmail_client(user_id: str) -> GmailClient:
    """Get the cached Gmail client for a user, configured from config.yaml."""
    from leadsync.config import get_config

    with _clients_lock:
        client = _clients.get(user_id)
        if client is None:
            config = get_config()
            client = GmailClient(
                user_id,
                token_dir=config.gmail_token_dir,
                calls_per_minute=config.gmail_calls_per_minute,
            )
            _clients[user_id] = client
        return client
