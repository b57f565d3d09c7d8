"""
Extract Leads Prompt - AI prompt for classifying the links of one email
"""

from typing import List, Optional

from leadsync.models import ExtractedLink

PROMPT_VERSION = "v1"


def _format_links(links: List[ExtractedLink]) -> str:
    lines = []
    for index, link in enumerate(links, 1):
        lines.append(
            f"{index}. URL: {link.url}\n"
            f"   Normalized: {link.normalized_url}\n"
            f"   Anchor Text: {link.anchor_text or 'None'}\n"
            f"   Heuristic Type: {link.type.value}"
        )
    return "\n\n".join(lines)


def build_extract_leads_prompt(
    email_text: str,
    links: List[ExtractedLink],
    custom_instructions: Optional[str] = None,
    max_chars: int = 8000,
) -> str:
    """
    Build a prompt asking the model to classify an email's links as job leads.

    Args:
        email_text: Plain-text email body (truncated if too long)
        links: Pre-filtered links to analyze
        custom_instructions: User-supplied extra guidance
        max_chars: Maximum characters of email text to include

    Returns:
        Formatted prompt string
    """
    if len(email_text) > max_chars:
        email_text = email_text[:max_chars] + "\n... [TRUNCATED]"

    instructions = f"\nCustom instructions from the user:\n{custom_instructions}\n" if custom_instructions else ""

    return f"""You are an expert at analyzing job-related emails and extracting relevant job leads.

Analyze the email content and the numbered links below. For each link that is relevant,
determine the most appropriate type:
- "job_posting": Direct link to a specific job posting or application
- "job_list": Link to a list of jobs (e.g., "See all jobs", "Browse careers")
- "company": Link to company information, careers page, or about page
- "unsubscribe": Link to unsubscribe from emails
- "tracking": Analytics or tracking links
- "other": Any other relevant link

Extract when available:
- title: Job title
- company: Company name
- location: Job location
- confidence: Your confidence in the classification (0.0 to 1.0)
{instructions}
Return a JSON object with this exact structure:
{{
    "leads": [
        {{
            "url": "https://example.com/jobs/123",
            "type": "job_posting",
            "title": "Senior Backend Engineer",
            "company": "Example Corp",
            "location": "Sydney, NSW",
            "confidence": 0.9
        }}
    ]
}}

Important rules:
1. Use the URL exactly as listed; do not invent links
2. If a field is unknown, use null
3. Be conservative with confidence scores
4. If nothing is relevant, return {{"leads": []}}

Email content:
---
{email_text}
---

Links to analyze:
{_format_links(links)}

Respond with ONLY the JSON object, no other text."""
