"""AI-assisted case generation: uses the AI accelerator + skills to propose extra cases.

AI output is strictly additive. Anything that goes wrong (timeout,
transport error, unusable output after retries) raises AiProviderError so
the caller can carry on with the deterministic cases alone.
"""

import asyncio
import json

from api_test_synth.analysis.scoring import EndpointAnalysis
from api_test_synth.config import GenerationConfig, GenerationStrategy
from api_test_synth.exceptions import AiProviderError
from api_test_synth.generator.validator import AiProposal, validate_batch
from api_test_synth.llm import AiProvider, AiResponse
from api_test_synth.logging_config import get_logger
from api_test_synth.models import CandidateTestCase
from api_test_synth.parser.base import ApiEndpoint
from api_test_synth.skills.loader import load_skill_content, select_skills

logger = get_logger(__name__)

MAX_RETRIES = 2
MAX_EXISTING_LISTED = 40

RESPONSE_FORMAT = """Respond with one JSON object:
{
  "confidence": <0.0-1.0, how sure you are these cases are correct>,
  "cases": [
    {
      "name": "...",
      "description": "...",
      "category": "functional|boundary|security|performance|edge_case|data_quality",
      "expected_status": <HTTP status>,
      "expect_success": <true|false>,
      "payload": <JSON body or null>,
      "parameters": {"<parameter name>": <value>},
      "headers": {},
      "tags": ["..."],
      "priority": <1-5, 1 is most important>
    }
  ]
}"""


def build_prompt(
    endpoint: ApiEndpoint,
    analysis: EndpointAnalysis,
    existing: list[CandidateTestCase],
    strategy: GenerationStrategy,
) -> str:
    skill_content = load_skill_content(select_skills(endpoint, analysis, strategy))
    summary = {
        "complexity": analysis.complexity_level.value,
        "security_risk": analysis.security_risk.value,
        "performance_impact": analysis.performance_impact.value,
        "security_factors": list(analysis.security_factors),
    }
    covered = "\n".join(f"- {c.name}" for c in existing[:MAX_EXISTING_LISTED]) or "- (none)"
    return (
        f"{skill_content}\n\n---\n\n"
        f"Strategy: {strategy.value}\n\n"
        f"Endpoint:\n```json\n{endpoint.model_dump_json(indent=2)}\n```\n\n"
        f"Analysis:\n```json\n{json.dumps(summary, indent=2)}\n```\n\n"
        f"Already covered (do not repeat):\n{covered}\n\n"
        f"{RESPONSE_FORMAT}"
    )


class AiCaseGenerator:
    """Asks the AI accelerator for additional cases for one endpoint at a time."""

    def __init__(self, provider: AiProvider, config: GenerationConfig, semaphore: asyncio.Semaphore | None = None):
        self.provider = provider
        self.config = config
        self.semaphore = semaphore or asyncio.Semaphore(config.ai_max_concurrent)

    async def generate(
        self,
        endpoint: ApiEndpoint,
        analysis: EndpointAnalysis,
        existing: list[CandidateTestCase],
        strategy: GenerationStrategy,
    ) -> list[CandidateTestCase]:
        """Return accepted AI cases; [] when the batch is below the confidence threshold."""
        prompt = build_prompt(endpoint, analysis, existing, strategy)
        errors: dict[str, str] = {}

        for attempt in range(MAX_RETRIES + 1):
            if errors:
                problems = "\n".join(f"- {k}: {v}" for k, v in errors.items())
                attempt_prompt = f"{prompt}\n\nYour previous answer was invalid:\n{problems}\nFix it."
            else:
                attempt_prompt = prompt
            response = await self._call(attempt_prompt)
            reported, proposals, errors = validate_batch(response.text)
            if proposals or not errors:
                break
            logger.info("AI output for %s invalid (attempt %d): %s", endpoint.key, attempt + 1, errors)
        else:
            raise AiProviderError("AI output invalid after retries", context={"endpoint": endpoint.key, "errors": errors})

        confidence = min(response.confidence, reported)
        if confidence < self.config.ai_confidence_threshold:
            logger.info(
                "Discarding %d AI cases for %s: confidence %.2f below %.2f",
                len(proposals), endpoint.key, confidence, self.config.ai_confidence_threshold,
            )
            return []

        seen = {c.name.lower() for c in existing}
        accepted = []
        for proposal in proposals:
            if proposal.name.lower() in seen:
                continue
            seen.add(proposal.name.lower())
            accepted.append(to_candidate(proposal, endpoint))
        return accepted

    async def _call(self, prompt: str) -> AiResponse:
        async with self.semaphore:
            try:
                response = await asyncio.wait_for(
                    self.provider.generate(
                        prompt,
                        max_tokens=self.config.ai_max_tokens,
                        temperature=self.config.ai_temperature,
                        timeout=self.config.ai_timeout,
                    ),
                    timeout=self.config.ai_timeout,
                )
            except AiProviderError:
                raise
            except asyncio.TimeoutError as e:
                raise AiProviderError("AI call timed out", context={"timeout": self.config.ai_timeout}) from e
            except Exception as e:
                # any provider failure means AI is unavailable for this endpoint
                raise AiProviderError("AI call failed", original_error=e) from e
        if not isinstance(response, AiResponse):
            raise AiProviderError("AI provider returned no response", context={"type": type(response).__name__})
        return response


def to_candidate(proposal: AiProposal, endpoint: ApiEndpoint) -> CandidateTestCase:
    content_types = endpoint.content_types
    expect_success = proposal.expect_success
    if expect_success is None:
        expect_success = proposal.expected_status < 400
    return CandidateTestCase(
        category=proposal.category,
        strategy=f"ai_{proposal.category.value}",
        name=proposal.name,
        description=proposal.description,
        content_type=content_types[0] if content_types else None,
        payload=proposal.payload,
        parameters=proposal.parameters,
        headers=proposal.headers,
        expected_status=proposal.expected_status,
        expect_success=expect_success,
        tags=tuple(dict.fromkeys(list(proposal.tags) + ["ai-generated"])),
        priority=proposal.priority,
        source="ai",
    )
