"""Generation configuration.

One frozen GenerationConfig is built per run (from defaults, a YAML file,
CLI flags, or all three) and passed explicitly to every component.
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from api_test_synth.exceptions import ConfigError

MAX_WORKERS_CEILING = 64


class GenerationStrategy(str, Enum):
    BASIC = "basic"
    COMPREHENSIVE = "comprehensive"
    SECURITY_FIRST = "security_first"
    PERFORMANCE_FOCUSED = "performance_focused"
    ADVANCED = "advanced"


class TestType(str, Enum):
    __test__ = False  # not a pytest class

    FUNCTIONAL = "functional"
    NEGATIVE = "negative"
    BOUNDARY = "boundary"
    SECURITY = "security"
    PERFORMANCE = "performance"
    EDGE_CASE = "edge_case"
    SCHEMA_VALIDATION = "schema_validation"
    DATA_INTEGRITY = "data_integrity"
    INTEGRATION = "integration"


class QualityTier(str, Enum):
    """Bounds the number of cases kept per endpoint."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"
    EXHAUSTIVE = "exhaustive"

    @property
    def max_cases(self) -> int:
        return _QUALITY_LIMITS[self]


_QUALITY_LIMITS = {
    QualityTier.MINIMAL: 5,
    QualityTier.STANDARD: 15,
    QualityTier.COMPREHENSIVE: 30,
    QualityTier.EXHAUSTIVE: 50,
}


class EdgeCaseLevel(str, Enum):
    """Edge-case aggressiveness; each level includes everything below it."""

    NONE = "none"
    BASIC = "basic"
    STANDARD = "standard"
    AGGRESSIVE = "aggressive"
    EXTREME = "extreme"

    @property
    def rank(self) -> int:
        return list(EdgeCaseLevel).index(self)


class ScoringThresholds(BaseModel):
    """Upper bounds (inclusive) for each level bucket. Last bucket is open."""

    model_config = ConfigDict(frozen=True)

    complexity: tuple[int, int, int] = (10, 25, 40)
    security: tuple[int, int, int] = (2, 5, 9)
    performance: tuple[int, int, int] = (3, 7, 12)
    advanced_average_complexity: float = 25.0


class GenerationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: GenerationStrategy = GenerationStrategy.COMPREHENSIVE
    test_types: frozenset[TestType] = frozenset(TestType)
    quality: QualityTier = QualityTier.STANDARD
    edge_level: EdgeCaseLevel = EdgeCaseLevel.STANDARD
    ai_providers: tuple[str, ...] = ()
    ai_confidence_threshold: float = 0.7
    ai_timeout: float = 30.0
    ai_max_concurrent: int = 4
    ai_max_tokens: int = 8192
    ai_temperature: float = 0.3
    max_workers: int = 8
    cache_ttl_seconds: float = 3600.0
    max_total_cases: int | None = None
    max_schema_depth: int = 8
    shutdown_grace_seconds: float = 5.0
    thresholds: ScoringThresholds = Field(default_factory=ScoringThresholds)

    @property
    def ai_enabled(self) -> bool:
        return bool(self.ai_providers)

    def fingerprint(self) -> str:
        """Stable hash of every field that changes generated output."""
        payload = {
            "strategy": self.strategy.value,
            "test_types": sorted(t.value for t in self.test_types),
            "quality": self.quality.value,
            "edge_level": self.edge_level.value,
            "ai_providers": list(self.ai_providers),
            "ai_confidence_threshold": self.ai_confidence_threshold,
            "max_schema_depth": self.max_schema_depth,
            "thresholds": self.thresholds.model_dump(mode="json"),
        }
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def validate_config(config: GenerationConfig) -> GenerationConfig:
    """Reject values no run can work with. Returns the config unchanged."""
    if config.max_workers < 1:
        raise ConfigError("max_workers must be at least 1", context={"max_workers": config.max_workers})
    if config.max_workers > MAX_WORKERS_CEILING:
        raise ConfigError(
            f"max_workers must not exceed {MAX_WORKERS_CEILING}", context={"max_workers": config.max_workers}
        )
    if config.ai_max_concurrent < 1:
        raise ConfigError("ai_max_concurrent must be at least 1")
    if config.ai_timeout <= 0:
        raise ConfigError("ai_timeout must be positive", context={"ai_timeout": config.ai_timeout})
    if config.ai_max_tokens < 1:
        raise ConfigError("ai_max_tokens must be at least 1")
    if not 0.0 <= config.ai_confidence_threshold <= 1.0:
        raise ConfigError("ai_confidence_threshold must be between 0 and 1")
    if config.cache_ttl_seconds <= 0:
        raise ConfigError("cache_ttl_seconds must be positive")
    if config.max_total_cases is not None and config.max_total_cases < 1:
        raise ConfigError("max_total_cases must be at least 1")
    if config.max_schema_depth < 1:
        raise ConfigError("max_schema_depth must be at least 1")
    if config.shutdown_grace_seconds < 0:
        raise ConfigError("shutdown_grace_seconds must not be negative")
    for name in ("complexity", "security", "performance"):
        bounds = getattr(config.thresholds, name)
        if list(bounds) != sorted(bounds) or len(set(bounds)) != len(bounds):
            raise ConfigError(f"{name} thresholds must be strictly increasing", context={"thresholds": bounds})
    return config


def build_config(**overrides: Any) -> GenerationConfig:
    """Build and validate a config; pydantic errors become ConfigError."""
    try:
        config = GenerationConfig(**overrides)
    except ValidationError as e:
        raise ConfigError("Invalid configuration", original_error=e) from e
    return validate_config(config)


def load_config(path: Path, **overrides: Any) -> GenerationConfig:
    """Load a YAML config file. Keyword overrides win over file values.

    Raises:
        ConfigError: If file not found, invalid YAML, or invalid values
    """
    if not path.exists():
        raise ConfigError("Config file not found", context={"path": str(path)})
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError("Invalid YAML in config file", context={"path": str(path)}, original_error=e) from e
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping", context={"path": str(path)})
    data.update({k: v for k, v in overrides.items() if v is not None})
    return build_config(**data)
