import pytest

from prepgen.core.exceptions import InputClassificationError, NoValidSource
from prepgen.schemas.curriculum import Source
from prepgen.schemas.state import InputType
from prepgen.services.pipeline.discovery import (
    MAX_INPUT_LENGTH,
    classify_input,
    discover_sources,
    parse_job_description,
    select_best_source,
    validate_source,
)


@pytest.mark.parametrize("raw", [
    "https://jobs.netflix.com/jobs/12345",
    "http://careers.example.co.uk/apply?id=9",
    "  https://boards.greenhouse.io/acme/jobs/42  ",
])
def test_classify_url(raw):
    assert classify_input(raw) == InputType.URL


@pytest.mark.parametrize("raw", [
    "Senior Data Scientist at Netflix",
    "Backend Engineer @ Stripe",
    "Product Manager",
    "netflix.com data scientist",
])
def test_classify_text(raw):
    assert classify_input(raw) == InputType.TEXT


@pytest.mark.parametrize("raw", ["", "   ", "12345 !!!", "x" * (MAX_INPUT_LENGTH + 1)])
def test_classify_rejects_unusable_input(raw):
    with pytest.raises(InputClassificationError):
        classify_input(raw)


def test_classification_error_is_no_valid_source():
    with pytest.raises(NoValidSource):
        classify_input("")


def test_parse_role_at_company():
    assert parse_job_description("Senior Data Scientist at Netflix") == {
        "title": "Senior Data Scientist",
        "company": "Netflix",
    }


def test_parse_splits_on_last_separator():
    parsed = parse_job_description("Head of Data at Scale at Acme Corp")
    assert parsed == {"title": "Head of Data at Scale", "company": "Acme Corp"}


def test_parse_at_sign_and_whitespace():
    assert parse_job_description("  Backend   Engineer@Stripe ") == {"title": "Backend Engineer", "company": "Stripe"}


def test_parse_without_company():
    assert parse_job_description("Staff Platform Engineer") == {"title": "Staff Platform Engineer"}


def test_discover_url_source():
    input_type, sources = discover_sources("https://jobs.netflix.com/jobs/12345")

    assert input_type == InputType.URL
    assert len(sources) == 1
    source = sources[0]
    assert source.url == "https://jobs.netflix.com/jobs/12345"
    assert source.source_type == "official"
    assert source.trust_score == 0.95
    assert source.data is None
    assert source.validation.is_useful
    assert source.validation.confidence == 0.9


def test_discover_text_source():
    input_type, sources = discover_sources("Senior Data Scientist at Netflix")

    assert input_type == InputType.TEXT
    source = sources[0]
    assert source.source_type == "description"
    assert source.trust_score == 0.6
    assert source.data == {"title": "Senior Data Scientist", "company": "Netflix"}
    assert source.validation.confidence == 0.7


def test_discover_title_only_source_has_lower_trust():
    _, sources = discover_sources("Product Designer")

    assert sources[0].trust_score == 0.4
    assert sources[0].validation.confidence == 0.4


def test_validated_source_is_frozen():
    _, sources = discover_sources("Senior Data Scientist at Netflix")

    with pytest.raises(Exception):
        sources[0].trust_score = 0.1


def test_validate_source_without_payload_is_not_useful():
    source = validate_source(Source(source_type="description", trust_score=0.5, data={}))
    assert not source.validation.is_useful


def test_select_best_source_prefers_highest_trust():
    low = validate_source(Source(source_type="description", trust_score=0.4, data={"title": "Analyst"}))
    high = validate_source(Source(url="https://example.com/job", source_type="official", trust_score=0.95))

    assert select_best_source([low, high]) == high


def test_select_best_source_skips_unvalidated_and_useless():
    unvalidated = Source(url="https://example.com/job", source_type="official", trust_score=0.95)
    useless = validate_source(Source(source_type="description", trust_score=0.9))

    assert select_best_source([unvalidated, useless]) is None
    assert select_best_source([]) is None
