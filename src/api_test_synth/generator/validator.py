"""Validates AI output before it can become a test case."""

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from api_test_synth.models import ScenarioCategory


class AiProposal(BaseModel):
    """One test case proposed by the AI accelerator."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: ScenarioCategory = ScenarioCategory.FUNCTIONAL
    expected_status: int = Field(ge=100, le=599)
    expect_success: bool | None = None
    payload: Any = None
    parameters: dict[str, Any] = {}
    headers: dict[str, str] = {}
    tags: list[str] = []
    priority: int = Field(default=3, ge=1, le=5)


class AiProposalBatch(BaseModel):
    model_config = ConfigDict(extra="ignore")

    confidence: float = Field(ge=0.0, le=1.0)
    cases: list[dict[str, Any]]


def extract_json(text: str) -> Any:
    """Pull a JSON value out of model output, with or without a fenced code block.

    Raises ValueError when no JSON can be found.
    """
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    match = re.search(r"```(?:json)?\s*\n?(.*?)```", text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            pass

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            pass

    raise ValueError(f"No JSON object in AI response: {text[:200]}")


def validate_batch(text: str) -> tuple[float, list[AiProposal], dict[str, str]]:
    """Parse and check an AI response.

    Returns (confidence, valid proposals, {location: error_message}). A
    response that is not a JSON batch at all yields confidence 0 and a
    single ``_response`` error.
    """
    try:
        data = extract_json(text)
    except ValueError as e:
        return 0.0, [], {"_response": str(e)}

    try:
        batch = AiProposalBatch.model_validate(data)
    except ValidationError as e:
        return 0.0, [], {"_response": _summarize(e)}

    proposals = []
    errors = {}
    for i, raw in enumerate(batch.cases):
        try:
            proposals.append(AiProposal.model_validate(raw))
        except ValidationError as e:
            errors[f"cases[{i}]"] = _summarize(e)
    return batch.confidence, proposals, errors


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors()[:5]:
        location = ".".join(str(p) for p in item["loc"]) or "value"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
