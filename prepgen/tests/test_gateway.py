import asyncio
import json

import pytest
from google.api_core.exceptions import ServiceUnavailable

from prepgen.core.exceptions import ConfigurationError, ExtractionParseError, ProviderExhausted, ProviderTransient
from prepgen.schemas.llm import JobExtraction
from prepgen.services.providers.base import Capability
from prepgen.services.providers.gateway import ProviderGateway, is_transient
from prepgen.tests.fakes import NETFLIX_JOB, FakeProvider, make_gateway


@pytest.mark.parametrize("exc", [
    asyncio.TimeoutError(),
    ProviderTransient("busy", provider="groq"),
    ServiceUnavailable("backend down"),
    RuntimeError("503 UNAVAILABLE: The model is overloaded"),
    RuntimeError("Service Unavailable"),
])
def test_transient_errors(exc):
    assert is_transient(exc)


@pytest.mark.parametrize("exc", [
    ValueError("bad request"),
    RuntimeError("429 RESOURCE_EXHAUSTED"),
    ExtractionParseError("no json", code="malformed_json"),
])
def test_non_transient_errors(exc):
    assert not is_transient(exc)


def test_transient_failure_fails_over_after_one_call():
    first = FakeProvider("first", always_fail=RuntimeError("503 Service Unavailable"))
    second = FakeProvider("second", text="from second")
    gateway = make_gateway([first, second])

    result = asyncio.run(gateway.generate_text("summary", "prompt"))

    assert result == "from second"
    assert first.total_calls == 1
    assert second.total_calls == 1


def test_timeout_counts_as_transient():
    slow = FakeProvider("slow", delay=0.5)
    fast = FakeProvider("fast", text="fast answer")
    gateway = make_gateway([slow, fast], timeout=0.05)

    assert asyncio.run(gateway.generate_text("summary", "prompt")) == "fast answer"
    assert slow.total_calls == 1
    assert gateway.stats()["providers"]["slow"]["transient_failures"] == 1


def test_non_transient_failure_is_retried_before_failover():
    flaky = FakeProvider("flaky", always_fail=ValueError("bad gateway payload"))
    backup = FakeProvider("backup", text="backup answer")
    gateway = make_gateway([flaky, backup], max_attempts=3)

    assert asyncio.run(gateway.generate_text("summary", "prompt")) == "backup answer"
    assert flaky.total_calls == 3
    assert backup.total_calls == 1


def test_retry_recovers_on_same_provider():
    flaky = FakeProvider("flaky", failures=[ValueError("hiccup")], text="second try")
    backup = FakeProvider("backup")
    gateway = make_gateway([flaky, backup])

    assert asyncio.run(gateway.generate_text("summary", "prompt")) == "second try"
    assert flaky.total_calls == 2
    assert backup.total_calls == 0


def test_exhausted_when_every_provider_fails():
    first = FakeProvider("first", always_fail=RuntimeError("overloaded"))
    second = FakeProvider("second", always_fail=ValueError("broken"))
    gateway = make_gateway([first, second], max_attempts=2)

    with pytest.raises(ProviderExhausted) as excinfo:
        asyncio.run(gateway.generate_text("summary", "prompt"))

    error = excinfo.value
    assert error.capability == "reasoning"
    assert error.task == "summary"
    assert len(error.failures) == 2
    assert error.failures[0].startswith("first: transient")
    assert second.total_calls == 2


def test_exhausted_when_no_provider_is_routed():
    gateway = make_gateway([FakeProvider("only")], routing={"structured": ["only"]})

    with pytest.raises(ProviderExhausted) as excinfo:
        asyncio.run(gateway.generate_grounded("job_grounding", "prompt"))
    assert excinfo.value.failures == ["no providers configured"]


def test_routing_follows_configured_order():
    a = FakeProvider("a", text="from a")
    b = FakeProvider("b", text="from b")
    gateway = make_gateway([a, b], routing={"reasoning": ["b", "a"]})

    assert gateway.providers_for(Capability.REASONING) == ["b", "a"]
    assert asyncio.run(gateway.generate_text("summary", "prompt")) == "from b"
    assert a.total_calls == 0


def test_structured_output_is_validated():
    provider = FakeProvider("structured", structured={"JobExtraction": "```json\n" + json.dumps(NETFLIX_JOB) + "\n```"})
    gateway = make_gateway([provider])

    job = asyncio.run(gateway.generate_structured(JobExtraction, "job_parsing", "prompt"))

    assert isinstance(job, JobExtraction)
    assert job.company_name == "Netflix"


def test_parse_failures_are_not_retried():
    apologetic = FakeProvider("apologetic", structured={"JobExtraction": "I apologize, but I cannot do that."})
    backup = FakeProvider("backup", structured={"JobExtraction": json.dumps(NETFLIX_JOB)})
    gateway = make_gateway([apologetic, backup])

    with pytest.raises(ExtractionParseError) as excinfo:
        asyncio.run(gateway.generate_structured(JobExtraction, "job_parsing", "prompt"))

    assert excinfo.value.code == "apology"
    assert apologetic.total_calls == 1
    assert backup.total_calls == 0


def test_grounded_call_returns_citations():
    provider = FakeProvider("grounder", grounded="Posting text", citations=["https://jobs.example.com/1"])
    gateway = make_gateway([provider])

    grounded = asyncio.run(gateway.generate_grounded("job_grounding", "prompt", references=["https://jobs.example.com/1"]))

    assert grounded.text == "Posting text"
    assert grounded.citations == ["https://jobs.example.com/1"]


def test_stats_reports_routing_and_health():
    ok = FakeProvider("ok")
    gateway = make_gateway([ok], routing={"reasoning": ["ok"]})
    asyncio.run(gateway.generate_text("summary", "prompt"))

    stats = gateway.stats()
    assert stats["routing"] == {"reasoning": ["ok"]}
    assert stats["providers"]["ok"]["successes"] == 1
    assert stats["providers"]["ok"]["failures"] == 0


def test_unknown_capability_is_rejected():
    with pytest.raises(ConfigurationError):
        ProviderGateway({"a": FakeProvider("a")}, {"telepathy": ["a"]})


def test_unknown_provider_is_rejected():
    with pytest.raises(ConfigurationError):
        ProviderGateway({"a": FakeProvider("a")}, {"reasoning": ["a", "ghost"]})


def test_provider_must_support_routed_capability():
    text_only = FakeProvider("text_only", capabilities=[Capability.REASONING])
    with pytest.raises(ConfigurationError):
        ProviderGateway({"text_only": text_only}, {"grounding": ["text_only"]})


def test_max_attempts_must_be_positive():
    with pytest.raises(ConfigurationError):
        ProviderGateway({}, {}, max_attempts=0)
