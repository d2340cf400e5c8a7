import pytest

from prepgen.core.exceptions import ExtractionParseError
from prepgen.schemas.llm import JobExtraction
from prepgen.services.pipeline.llm_parser import (
    clean_llm_json_output,
    extract_balanced_object,
    is_apology,
    parse_llm_response,
)


def test_plain_json():
    assert clean_llm_json_output('{"title": "Engineer"}') == {"title": "Engineer"}


def test_markdown_fences_are_stripped():
    raw = '```json\n{"title": "Engineer", "company_name": "Acme"}\n```'
    assert clean_llm_json_output(raw) == {"title": "Engineer", "company_name": "Acme"}


def test_object_recovered_from_surrounding_prose():
    raw = 'Here is the result:\n{"title": "Engineer", "note": "uses {braces} inside"}\nHope this helps!'
    assert clean_llm_json_output(raw) == {"title": "Engineer", "note": "uses {braces} inside"}


def test_balanced_scan_ignores_escaped_quotes():
    text = 'prefix {"a": "say \\"}\\" please", "b": {"c": 1}} suffix'
    assert extract_balanced_object(text) == '{"a": "say \\"}\\" please", "b": {"c": 1}}'


def test_balanced_scan_without_object():
    assert extract_balanced_object("no json here") is None
    assert extract_balanced_object('{"unterminated": 1') is None


@pytest.mark.parametrize("raw", [
    "I apologize, but I cannot access that page.",
    "I'm sorry, I can't help with that.",
    '"Unfortunately, I was unable to read the posting."',
])
def test_apology_detected(raw):
    assert is_apology(raw)
    with pytest.raises(ExtractionParseError) as excinfo:
        clean_llm_json_output(raw)
    assert excinfo.value.code == "apology"


def test_apology_with_embedded_json_is_not_repaired():
    raw = 'I apologize for the confusion. {"title": "Engineer", "company_name": "Acme"}'
    with pytest.raises(ExtractionParseError) as excinfo:
        clean_llm_json_output(raw)
    assert excinfo.value.code == "apology"


@pytest.mark.parametrize("raw", ["", "   ", "not json at all", '["a", "list"]', '{"broken": }'])
def test_malformed_output(raw):
    with pytest.raises(ExtractionParseError) as excinfo:
        clean_llm_json_output(raw)
    assert excinfo.value.code == "malformed_json"


def test_parse_llm_response_validates_schema():
    job = parse_llm_response('{"title": "Engineer", "company_name": "Acme", "level": "senior"}', JobExtraction)
    assert job.title == "Engineer"
    assert job.level == "senior"
    assert job.required_skills == []


def test_parse_llm_response_schema_mismatch():
    with pytest.raises(ExtractionParseError) as excinfo:
        parse_llm_response('{"title": "Engineer"}', JobExtraction)
    assert excinfo.value.code == "schema_mismatch"
    assert excinfo.value.details["errors"]
