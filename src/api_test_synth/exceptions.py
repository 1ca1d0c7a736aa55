"""Exception hierarchy for api-test-synth.

Everything raised on purpose by this package derives from SynthError, so
callers can catch one type. The original cause is kept both as
``original_error`` and through normal ``raise ... from`` chaining.
"""

from __future__ import annotations

from typing import Any


class SynthError(Exception):
    """Base exception for all api-test-synth errors.

    Attributes:
        message: Human-readable error description
        context: Extra key/value details for debugging
        original_error: The exception that triggered this one, if any
    """

    def __init__(
        self,
        message: str,
        *args: object,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, *args)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            base = f"{base} [{ctx_str}]"
        if self.original_error:
            base = f"{base} (caused by: {type(self.original_error).__name__}: {self.original_error})"
        return base

    def with_context(self, **kwargs: Any) -> "SynthError":
        """Add context to this error and return self for chaining."""
        self.context.update(kwargs)
        return self


class InputError(SynthError):
    """The API document is unreadable, malformed or not OpenAPI/Swagger.

    Fatal: no partial analysis is attempted.
    """


class ConfigError(SynthError):
    """Configuration is invalid or the config file cannot be loaded.

    Common causes:
    - Config file not found or not valid YAML
    - Non-positive pool sizes or timeouts
    - Unknown strategy, quality tier or test type
    """


class AnalysisError(SynthError):
    """A single endpoint or schema could not be analyzed.

    Recovered by the orchestrator with a fallback analysis.
    """


class AiProviderError(SynthError):
    """The AI accelerator failed: transport error, timeout or unusable output."""


class CacheError(SynthError):
    """A cache read or write failed. Treated as a miss."""


class GenerationError(SynthError):
    """Structural failure of a generation run (e.g. orchestrator reuse)."""
