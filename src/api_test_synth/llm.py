"""AI accelerator adapters.

The generation core only sees the AiProvider interface:
``generate(prompt, max_tokens, temperature, timeout) -> AiResponse``,
raising AiProviderError on any failure. LiteLlmProvider talks to any
model litellm supports; NullProvider is the no-network stand-in.
"""

from typing import Protocol, runtime_checkable

from litellm import acompletion
from pydantic import BaseModel, ConfigDict

from api_test_synth.exceptions import AiProviderError
from api_test_synth.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

SYSTEM_PROMPT = (
    "You are an API test designer. Answer with a single JSON object and nothing else."
)

# finish reasons that mean the text may be cut short
_TRUNCATED = {"length", "max_tokens"}


class AiResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float
    model: str = ""


@runtime_checkable
class AiProvider(Protocol):
    async def generate(self, prompt: str, max_tokens: int, temperature: float, timeout: float) -> AiResponse:
        ...


class NullProvider:
    """Provider for runs without AI. Every call fails, so callers fall back."""

    async def generate(self, prompt: str, max_tokens: int, temperature: float, timeout: float) -> AiResponse:
        raise AiProviderError("No AI provider configured")


class LiteLlmProvider:
    """Calls litellm, trying each configured model in order until one answers."""

    def __init__(self, models: tuple[str, ...] | list[str] | None = None):
        self.models = tuple(models) if models else (DEFAULT_MODEL,)

    async def generate(self, prompt: str, max_tokens: int, temperature: float, timeout: float) -> AiResponse:
        last_error: Exception | None = None
        for model in self.models:
            try:
                response = await acompletion(
                    model=model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    max_tokens=max_tokens,
                    temperature=temperature,
                    timeout=timeout,
                )
            except Exception as e:
                logger.warning("Model %s failed: %s", model, e)
                last_error = e
                continue

            choice = response.choices[0]
            text = choice.message.content or ""
            if not text.strip():
                last_error = AiProviderError("Empty completion", context={"model": model})
                continue
            confidence = 0.5 if getattr(choice, "finish_reason", None) in _TRUNCATED else 1.0
            return AiResponse(text=text, confidence=confidence, model=model)

        raise AiProviderError(
            "All AI providers failed", context={"models": list(self.models)}, original_error=last_error
        )


def build_provider(models: tuple[str, ...]) -> AiProvider:
    """LiteLlmProvider for the given models, NullProvider when there are none."""
    if not models:
        return NullProvider()
    return LiteLlmProvider(models)
