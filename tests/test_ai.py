import asyncio
import json

import pytest

from api_test_synth.analysis.scoring import EndpointScorer
from api_test_synth.config import GenerationConfig, GenerationStrategy
from api_test_synth.exceptions import AiProviderError
from api_test_synth.generator.ai import AiCaseGenerator, build_prompt
from api_test_synth.llm import AiResponse
from api_test_synth.models import CandidateTestCase, ScenarioCategory
from api_test_synth.parser.base import ApiEndpoint, RequestBody


def _make_endpoint() -> ApiEndpoint:
    return ApiEndpoint(
        method="POST",
        path="/users",
        summary="Create user",
        request_body=RequestBody(required=True, content={"application/json": {"type": "object"}}),
    )


def _batch(*names: str, confidence: float = 0.9) -> str:
    cases = [{"name": n, "category": "security", "expected_status": 403} for n in names]
    return json.dumps({"confidence": confidence, "cases": cases})


class FakeProvider:
    """Answers with queued texts and records every prompt."""

    def __init__(self, *texts: str, confidence: float = 1.0, delay: float = 0.0):
        self.texts = list(texts)
        self.confidence = confidence
        self.delay = delay
        self.prompts: list[str] = []

    async def generate(self, prompt, max_tokens, temperature, timeout):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        return AiResponse(text=self.texts.pop(0), confidence=self.confidence, model="fake")


def _run(provider, existing=(), **config):
    ep = _make_endpoint()
    analysis = EndpointScorer().score(ep)
    generator = AiCaseGenerator(provider, GenerationConfig(**config))
    return asyncio.run(generator.generate(ep, analysis, list(existing), GenerationStrategy.COMPREHENSIVE))


class TestBuildPrompt:
    def test_contains_endpoint_and_existing_cases(self):
        ep = _make_endpoint()
        existing = [CandidateTestCase(category=ScenarioCategory.FUNCTIONAL, strategy="happy_path", name="create user")]
        prompt = build_prompt(ep, EndpointScorer().score(ep), existing, GenerationStrategy.SECURITY_FIRST)
        assert "/users" in prompt
        assert "- create user" in prompt
        assert "security_first" in prompt
        assert '"confidence"' in prompt


class TestAiCaseGenerator:
    def test_accepts_valid_batch(self):
        cases = _run(FakeProvider(_batch("idor check", "mass assignment")))
        assert [c.name for c in cases] == ["idor check", "mass assignment"]
        assert all(c.source == "ai" for c in cases)
        assert all("ai-generated" in c.tags for c in cases)
        assert cases[0].expect_success is False

    def test_retries_invalid_output_with_errors(self):
        provider = FakeProvider("not json at all", _batch("idor check"))
        cases = _run(provider)
        assert len(cases) == 1
        assert len(provider.prompts) == 2
        assert "Your previous answer was invalid" in provider.prompts[1]

    def test_gives_up_after_retries(self):
        provider = FakeProvider("nope", "still nope", "nope again")
        with pytest.raises(AiProviderError):
            _run(provider)
        assert len(provider.prompts) == 3

    def test_low_reported_confidence_discards_batch(self):
        assert _run(FakeProvider(_batch("idor check", confidence=0.3))) == []

    def test_truncated_response_lowers_confidence(self):
        assert _run(FakeProvider(_batch("idor check"), confidence=0.5)) == []

    def test_duplicates_are_dropped(self):
        existing = [CandidateTestCase(category=ScenarioCategory.SECURITY, strategy="x", name="IDOR Check")]
        cases = _run(FakeProvider(_batch("idor check", "replay", "Replay")), existing=existing)
        assert [c.name for c in cases] == ["replay"]

    def test_timeout_raises_provider_error(self):
        with pytest.raises(AiProviderError):
            _run(FakeProvider(_batch("slow"), delay=1.0), ai_timeout=0.01)


class CrashingProvider:
    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error

    async def generate(self, prompt, max_tokens, temperature, timeout):
        if self.error is not None:
            raise self.error
        return self.result


class TestProviderFailures:
    def test_unexpected_exception_becomes_provider_error(self):
        with pytest.raises(AiProviderError) as exc_info:
            _run(CrashingProvider(error=ConnectionError("connection reset")))
        assert isinstance(exc_info.value.original_error, ConnectionError)

    def test_non_response_result_becomes_provider_error(self):
        with pytest.raises(AiProviderError):
            _run(CrashingProvider(result="plain text"))
