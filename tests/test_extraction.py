"""
Tests for the extraction adapter, providers and candidate cleanup.

Provider SDKs are mocked; no network calls are made.
"""

from unittest.mock import Mock, patch

import pytest

from conftest import FakeProvider
from leadsync import database
from leadsync.config import get_config
from leadsync.exceptions import ExtractionError
from leadsync.extraction import (
    PROMPT_VERSION,
    build_extract_leads_prompt,
    generate_dedupe_key,
    get_provider,
    parse_leads,
    prefilter_links,
    run_extraction,
)
from leadsync.extraction.candidates import candidate_from_dict
from leadsync.links import extract_links
from leadsync.models import ExtractionRequest, ExtractionStatus, LeadCandidate, LinkType


@pytest.fixture
def mixed_links():
    html = (
        '<a href="https://seek.com.au/job/123">Backend Developer</a>'
        '<a href="https://acme.io/unsubscribe">Unsubscribe</a>'
        '<a href="https://click.mailer.com/abc">Track</a>'
    )
    return extract_links(html=html)


def make_request(links, instructions=None):
    return ExtractionRequest(
        email_text="Apply now for Backend Developer at Acme",
        links=links,
        user_id="u1",
        email_id="email-1",
        custom_instructions=instructions,
    )


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


def test_prefilter_drops_unsubscribe_and_tracking(mixed_links):
    kept = prefilter_links(mixed_links)
    assert [link.normalized_url for link in kept] == ["https://seek.com.au/job/123"]


def test_dedupe_key_for_job_posting_uses_company_and_title():
    candidate = LeadCandidate(
        url="https://seek.com.au/job/123",
        normalized_url="https://seek.com.au/job/123",
        type=LinkType.JOB_POSTING,
        title="Senior Backend Engineer",
        company="Acme Corp.",
    )
    assert generate_dedupe_key(candidate) == "acmecorp_seniorbackendengineer"


def test_dedupe_key_falls_back_to_normalized_url():
    candidate = LeadCandidate(
        url="https://acme.io/careers",
        normalized_url="https://acme.io/careers",
        type=LinkType.JOB_LIST,
        title="Careers",
        company="Acme",
    )
    assert generate_dedupe_key(candidate) == "https://acme.io/careers"

    posting_without_company = LeadCandidate(
        url="https://acme.io/jobs/1", normalized_url="https://acme.io/jobs/1", type=LinkType.JOB_POSTING
    )
    assert generate_dedupe_key(posting_without_company) == "https://acme.io/jobs/1"


def test_candidate_from_dict_cleans_fields():
    candidate = candidate_from_dict(
        {
            "url": "https://acme.io/jobs/1?utm_source=mail",
            "type": "Something-Else",
            "title": "  Engineer ",
            "company": "",
            "confidence": 3,
        }
    )
    assert candidate.normalized_url == "https://acme.io/jobs/1"
    assert candidate.type == LinkType.OTHER
    assert candidate.title == "Engineer"
    assert candidate.company is None
    assert candidate.confidence == 0.5
    assert candidate.dedupe_key == "https://acme.io/jobs/1"


def test_candidate_from_dict_requires_valid_url():
    assert candidate_from_dict({"url": "not a url", "type": "job_posting"}) is None
    assert candidate_from_dict({"type": "job_posting"}) is None


def test_parse_leads_accepts_object_or_list():
    item = {"url": "https://acme.io/jobs/1", "type": "job_posting", "confidence": 0.8}
    assert len(parse_leads({"leads": [item]})) == 1
    assert len(parse_leads([item, "junk", {"url": None}])) == 1
    assert parse_leads({}) == []


def test_parse_leads_rejects_other_shapes():
    with pytest.raises(ValueError):
        parse_leads({"leads": "none"})


# ---------------------------------------------------------------------------
# Prompt and response parsing
# ---------------------------------------------------------------------------


def test_prompt_includes_links_and_instructions(mixed_links):
    prompt = build_extract_leads_prompt("Body text", mixed_links, "Only remote roles")
    assert "1. URL: https://seek.com.au/job/123" in prompt
    assert "Heuristic Type: job_posting" in prompt
    assert "Only remote roles" in prompt


def test_prompt_truncates_long_email():
    prompt = build_extract_leads_prompt("x" * 50, [], max_chars=10)
    assert "x" * 10 + "\n... [TRUNCATED]" in prompt
    assert "x" * 11 not in prompt


def test_parse_json_response_handles_fences_and_preamble():
    provider = FakeProvider()
    assert provider._parse_json_response('```json\n{"leads": []}\n```') == {"leads": []}
    assert provider._parse_json_response('Here you go: {"leads": [1]} thanks') == {"leads": [1]}
    with pytest.raises(ValueError):
        provider._parse_json_response("no json here")


# ---------------------------------------------------------------------------
# run_extraction
# ---------------------------------------------------------------------------


def test_run_extraction_records_successful_job(temp_db, mixed_links):
    provider = FakeProvider()
    result, job = run_extraction(provider, make_request(mixed_links, "Only remote roles"))

    assert [lead.normalized_url for lead in result.leads] == ["https://seek.com.au/job/123"]
    # Unsubscribe and tracking links never reach the model
    assert "acme.io/unsubscribe" not in provider.prompts[0]
    assert "click.mailer.com" not in provider.prompts[0]

    jobs = database.list_extraction_jobs("u1", email_id="email-1")
    assert len(jobs) == 1
    stored = jobs[0]
    assert stored["id"] == job.id
    assert stored["status"] == ExtractionStatus.SUCCEEDED.value
    assert stored["model"] == "fake-model"
    assert stored["prompt_version"] == PROMPT_VERSION
    assert stored["instructions_snapshot"] == "Only remote roles"
    assert stored["tokens_prompt"] == 10
    assert stored["tokens_completion"] == 5
    assert stored["output"][0]["normalized_url"] == "https://seek.com.au/job/123"


def test_run_extraction_without_links_skips_model(temp_db):
    provider = FakeProvider()
    links = extract_links(html='<a href="https://acme.io/unsubscribe">Unsubscribe</a>')

    result, job = run_extraction(provider, make_request(links))

    assert result.leads == []
    assert provider.prompts == []
    assert job.status == ExtractionStatus.SUCCEEDED
    assert len(database.list_extraction_jobs("u1")) == 1


def test_run_extraction_failure_records_failed_job(temp_db, mixed_links):
    provider = FakeProvider(error=RuntimeError("model overloaded"))

    with pytest.raises(ExtractionError) as exc_info:
        run_extraction(provider, make_request(mixed_links))

    assert exc_info.value.message_id == "email-1"
    jobs = database.list_extraction_jobs("u1")
    assert len(jobs) == 1
    assert jobs[0]["status"] == ExtractionStatus.FAILED.value
    assert jobs[0]["error"] == "model overloaded"
    assert jobs[0]["output"] == []


def test_run_extraction_invalid_json_is_a_failure(temp_db, mixed_links):
    provider = FakeProvider(response="I could not find any leads")
    with pytest.raises(ExtractionError):
        run_extraction(provider, make_request(mixed_links))
    assert database.list_extraction_jobs("u1")[0]["status"] == "failed"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unknown AI provider"):
        get_provider({"ai": {"provider": "gemini"}})


def test_claude_provider_requires_api_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        get_provider({"ai": {"provider": "claude"}})


def test_claude_provider_extracts_leads(monkeypatch, mixed_links):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    response = Mock()
    response.content = [
        Mock(
            type="text",
            text='{"leads": [{"url": "https://seek.com.au/job/123", "type": "job_posting", '
            '"title": "Backend Developer", "company": "Acme", "confidence": 0.9}]}',
        )
    ]
    response.usage = Mock(input_tokens=120, output_tokens=30)

    with patch("leadsync.extraction.claude.anthropic.Anthropic") as mock_anthropic:
        mock_anthropic.return_value.messages.create.return_value = response
        provider = get_provider({"ai": {"provider": "claude", "temperature": 0.2, "max_tokens": 700}})
        result = provider.extract(make_request(prefilter_links(mixed_links)))

    kwargs = mock_anthropic.return_value.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-sonnet-4-20250514"
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 700
    assert provider.provider_name == "claude"
    assert result.tokens_input == 120
    assert result.tokens_output == 30
    assert result.leads[0].dedupe_key == "acme_backenddeveloper"


def test_openai_provider_extracts_leads(monkeypatch, mixed_links):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("OPENAI_MODEL", raising=False)
    completion = Mock()
    completion.choices = [
        Mock(message=Mock(content='{"leads": [{"url": "https://seek.com.au/job/123", "type": "job_posting"}]}'))
    ]
    completion.usage = Mock(prompt_tokens=200, completion_tokens=40)

    with patch("leadsync.extraction.openai_provider.openai.OpenAI") as mock_openai:
        mock_openai.return_value.chat.completions.create.return_value = completion
        provider = get_provider({"ai": {"provider": "openai"}})
        result = provider.extract(make_request(prefilter_links(mixed_links)))

    kwargs = mock_openai.return_value.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["response_format"] == {"type": "json_object"}
    assert provider.model_name == "gpt-4o-mini"
    assert result.tokens_input == 200
    assert [lead.type for lead in result.leads] == [LinkType.JOB_POSTING]


def test_openai_provider_empty_response_raises(monkeypatch, mixed_links):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    completion = Mock()
    completion.choices = []

    with patch("leadsync.extraction.openai_provider.openai.OpenAI") as mock_openai:
        mock_openai.return_value.chat.completions.create.return_value = completion
        provider = get_provider({"ai": {"provider": "openai"}})
        with pytest.raises(ValueError, match="No response"):
            provider.extract(make_request(prefilter_links(mixed_links)))


def test_provider_reads_ai_section_of_loaded_config(monkeypatch, tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "gmail: {}\n"
        "ai:\n"
        "  provider: openai\n"
        "  model: gpt-4.1-mini\n"
        "  max_tokens: 600\n"
        "  temperature: 0.4\n"
        "  max_email_chars: 3000\n"
    )
    get_config(config_path)
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")

    with patch("leadsync.extraction.openai_provider.openai.OpenAI"):
        provider = get_provider()

    assert provider.provider_name == "openai"
    assert provider.model_name == "gpt-4.1-mini"
    assert provider._max_tokens == 600
    assert provider._temperature == 0.4
    assert provider._max_email_chars == 3000
