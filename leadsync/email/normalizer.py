"""
Message Normalizer - Turn Gmail API payloads into CanonicalMessage objects

Parses address headers, walks the MIME tree for a text body, cleans HTML,
scores job relevance and computes a content hash for change detection.
Parsing is best effort: problems are reported through ParseStatus instead
of exceptions.
"""

import base64
import binascii
import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Comment, Tag

from leadsync.models import CanonicalMessage, ParseStatus, Participant

logger = logging.getLogger(__name__)

PROVIDER = "gmail"

FROM_PATTERN = re.compile(r'(?:"?([^"]*)"?\s)?<?([^<>@\s]+@[^<>\s]+)>?')
ADDRESS_PATTERN = re.compile(r"<?([^<>@\s]+@[^<>\s]+)>?")
DISPLAY_NAME_PATTERN = re.compile(r'^\s*"?([^"<]*?)"?\s*<')

JOB_KEYWORDS = [
    "role",
    "job",
    "apply",
    "position",
    "frontend",
    "backend",
    "fullstack",
    "developer",
    "engineer",
    "software",
    "application",
    "opportunity",
    "hiring",
    "recruitment",
    "career",
    "employment",
    "vacancy",
    "opening",
]


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------


def _get_headers(payload: Dict[str, Any]) -> Dict[str, str]:
    """Map of lower-cased header name to value (first occurrence wins)."""
    headers: Dict[str, str] = {}
    for header in payload.get("headers") or []:
        name = (header.get("name") or "").lower()
        if name and name not in headers:
            headers[name] = header.get("value") or ""
    return headers


def parse_from(value: str) -> Participant:
    """
    Split a From header into address and display name.

    '"LinkedIn Jobs" <jobs@linkedin.com>' -> Participant("jobs@linkedin.com", "LinkedIn Jobs")
    """
    value = (value or "").strip()
    match = FROM_PATTERN.search(value)
    if not match:
        return Participant(email=value)
    name = (match.group(1) or "").strip() or None
    return Participant(email=match.group(2), name=name)


def parse_address_list(value: str) -> List[Participant]:
    """Parse a comma-separated To/Cc/Bcc header, dropping tokens with no address."""
    participants = []
    for token in (value or "").split(","):
        match = ADDRESS_PATTERN.search(token)
        if not match:
            continue
        name_match = DISPLAY_NAME_PATTERN.match(token)
        name = name_match.group(1).strip() if name_match else ""
        participants.append(Participant(email=match.group(1), name=name or None))
    return participants


# ---------------------------------------------------------------------------
# Body extraction
# ---------------------------------------------------------------------------


def _part_charset(part: Dict[str, Any]) -> str:
    for header in part.get("headers") or []:
        if (header.get("name") or "").lower() == "content-type":
            match = re.search(r'charset="?([\w\-]+)"?', header.get("value") or "", re.IGNORECASE)
            if match:
                return match.group(1)
    return "utf-8"


def decode_part_data(data: str, charset: str = "utf-8") -> str:
    """
    Decode a Gmail body.data field.

    Gmail uses URL-safe base64 without padding; standard base64 is accepted too.

    Raises:
        ValueError: data is not base64 or not valid in the declared charset
    """
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 body: {e}") from e
    try:
        return raw.decode(charset)
    except LookupError:
        return raw.decode("utf-8")


def _walk_body(part: Dict[str, Any], errors: List[str]) -> str:
    mime_type = (part.get("mimeType") or "").lower()
    data = (part.get("body") or {}).get("data")

    if data and mime_type in ("text/plain", "text/html"):
        try:
            decoded = decode_part_data(data, _part_charset(part))
        except ValueError as e:
            logger.warning(f"Skipping undecodable {mime_type} part: {e}")
            errors.append(f"{mime_type}: {e}")
        else:
            return decoded if mime_type == "text/plain" else clean_html(decoded)

    for child in part.get("parts") or []:
        text = _walk_body(child, errors)
        if text:
            return text
    return ""


def extract_body_text(payload: Dict[str, Any]) -> Tuple[str, List[str]]:
    """
    Depth-first search of the MIME tree for a readable body.

    A text/plain part is returned as-is, a text/html part is cleaned first,
    and for containers the first child yielding text wins.

    Returns:
        (body text, list of decode errors encountered)
    """
    errors: List[str] = []
    return _walk_body(payload, errors), errors


def extract_html(payload: Dict[str, Any]) -> str:
    """Return the first decodable text/html part, depth first, or ''."""
    mime_type = (payload.get("mimeType") or "").lower()
    data = (payload.get("body") or {}).get("data")
    if mime_type == "text/html" and data:
        try:
            return decode_part_data(data, _part_charset(payload))
        except ValueError as e:
            logger.warning(f"Skipping undecodable text/html part: {e}")

    for child in payload.get("parts") or []:
        html = extract_html(child)
        if html:
            return html
    return ""


# ---------------------------------------------------------------------------
# HTML cleaning
# ---------------------------------------------------------------------------


BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr"]
PIXEL_STYLE_PATTERN = re.compile(r"(width|height)\s*:\s*1px", re.IGNORECASE)


def _is_tracking_pixel(img: Tag) -> bool:
    for attr in ("width", "height"):
        if str(img.get(attr, "")).strip().lower() in ("1", "1px"):
            return True
    return bool(PIXEL_STYLE_PATTERN.search(img.get("style") or ""))


def clean_html(html: str) -> str:
    """
    Reduce an HTML email body to readable text.

    Scripts, styles, comments (including Outlook conditional blocks) and
    1x1 tracking pixels are dropped. Block-level elements end a line and
    blank-line runs collapse to one.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(["script", "style"]):
        tag.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for img in soup.find_all("img"):
        if _is_tracking_pixel(img):
            img.decompose()

    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(BLOCK_TAGS):
        tag.insert_after("\n")

    text = soup.get_text().replace("\xa0", " ")
    text = "\n".join(line.strip() for line in text.splitlines())
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


# ---------------------------------------------------------------------------
# Identity and scoring
# ---------------------------------------------------------------------------


def format_sent_at(sent_at: Optional[datetime]) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-01T09:30:00.000Z"""
    if sent_at is None:
        return ""
    return sent_at.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def hash_message(sender: str, subject: str, sent_at: Optional[datetime], body_text: str) -> str:
    """
    SHA-256 content hash of a message.

    The hashed document is JSON with sorted keys; sender and subject are
    lower-cased and trimmed so cosmetic header changes do not alter it.
    """
    document = {
        "bodyText": body_text or "",
        "from": (sender or "").lower().strip(),
        "sentAt": format_sent_at(sent_at),
        "subject": (subject or "").lower().strip(),
    }
    encoded = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def calculate_job_signal_score(subject: str, body_text: str) -> float:
    """
    Keyword score in [0, 1] for how job-related a message looks.

    Subject hits weigh 0.1, body-only hits 0.05, plus 0.02 per distinct hit.
    """
    subject = (subject or "").lower()
    body = (body_text or "").lower()

    score = 0.0
    matches = 0
    for keyword in JOB_KEYWORDS:
        if keyword in subject:
            score += 0.1
            matches += 1
        elif keyword in body:
            score += 0.05
            matches += 1

    return round(min(1.0, score + matches * 0.02), 3)


def _parse_internal_date(value: Any) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize(raw: Dict[str, Any], user_id: str, provider: str = PROVIDER) -> CanonicalMessage:
    """
    Build a CanonicalMessage from a Gmail users.messages.get(format=full) response.

    Args:
        raw: Gmail message resource
        user_id: Owner of the mailbox
        provider: Provider name stored with the message

    Returns:
        CanonicalMessage with parse_status PARSED, or FAILED plus parse_error
        when the payload is missing or no body part could be decoded.
    """
    message = CanonicalMessage(
        user_id=user_id,
        provider=provider,
        provider_message_id=raw.get("id", ""),
        thread_id=raw.get("threadId"),
        snippet=raw.get("snippet") or "",
        labels=list(raw.get("labelIds") or []),
        history_id=str(raw["historyId"]) if raw.get("historyId") else None,
        sent_at=_parse_internal_date(raw.get("internalDate")),
    )

    payload = raw.get("payload")
    if not payload:
        message.parse_status = ParseStatus.FAILED
        message.parse_error = "Message has no payload"
        message.content_hash = hash_message("", "", message.sent_at, "")
        return message

    headers = _get_headers(payload)
    message.sender = parse_from(headers.get("from", ""))
    message.to = parse_address_list(headers.get("to", ""))
    message.cc = parse_address_list(headers.get("cc", ""))
    message.bcc = parse_address_list(headers.get("bcc", ""))
    message.subject = headers.get("subject", "")

    body_text, errors = extract_body_text(payload)
    raw_html = extract_html(payload)

    message.body_text = body_text
    message.raw_html = raw_html
    message.body_html = clean_html(raw_html)
    message.job_signal_score = calculate_job_signal_score(message.subject, body_text)
    message.content_hash = hash_message(
        headers.get("from", ""), message.subject, message.sent_at, body_text
    )

    if errors and not body_text and not raw_html:
        message.parse_status = ParseStatus.FAILED
    else:
        message.parse_status = ParseStatus.PARSED
    if errors:
        message.parse_error = "; ".join(errors)

    return message
