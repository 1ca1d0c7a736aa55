"""Endpoint complexity, security-risk and performance-impact scoring.

Each score is a sum of independent contributions derived from the endpoint
shape only, then bucketed into a level with ScoringThresholds. Every
contribution is recorded as a human-readable factor.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict

from api_test_synth.analysis.constraints import DataConstraints, EndpointConstraints
from api_test_synth.config import ScoringThresholds
from api_test_synth.logging_config import get_logger
from api_test_synth.parser.base import ApiEndpoint

logger = get_logger(__name__)

METHOD_WEIGHTS = {"POST": 6, "PUT": 6, "PATCH": 5, "DELETE": 4, "GET": 2}

SENSITIVE_PATH_TOKENS = ("admin", "internal", "file", "search", "batch", "export", "upload", "config", "debug")
INJECTION_PRONE_NAMES = ("query", "sql", "file", "command", "cmd", "exec", "path", "filter", "search", "url", "q")
HEAVY_PATH_TOKENS = ("search", "export", "batch", "report", "upload", "bulk")
PAGINATION_PARAM_NAMES = {"page", "size", "limit", "offset", "page_size", "per_page", "pagesize", "cursor"}

LARGE_ARRAY_ITEMS = 100
MAX_BODY_PROPERTY_POINTS = 10


class ComplexityLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"

    @property
    def rank(self) -> int:
        return list(ComplexityLevel).index(self)


class RiskLevel(str, Enum):
    """Used for both security risk and performance impact."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self)


class ParameterAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    path_count: int
    query_count: int
    header_count: int
    required_count: int
    constrained_count: int
    injection_prone: tuple[str, ...] = ()


class EndpointAnalysis(BaseModel):
    """Scores for one endpoint.

    ``parameter_analysis`` and ``response_patterns`` are None when the
    endpoint was not analyzed (``fallback=True``), as opposed to analyzed
    with nothing to report.
    """

    model_config = ConfigDict(frozen=True)

    endpoint_key: str
    complexity_score: int
    complexity_level: ComplexityLevel
    complexity_factors: tuple[str, ...] = ()
    security_score: int
    security_risk: RiskLevel
    security_factors: tuple[str, ...] = ()
    performance_score: int
    performance_impact: RiskLevel
    performance_factors: tuple[str, ...] = ()
    parameter_analysis: ParameterAnalysis | None = None
    response_patterns: tuple[str, ...] | None = None
    fallback: bool = False

    @property
    def meets_ai_threshold(self) -> bool:
        """Worth an AI call: at least MEDIUM complexity, or HIGH security risk / performance impact."""
        return (
            self.complexity_level.rank >= ComplexityLevel.MEDIUM.rank
            or self.security_risk.rank >= RiskLevel.HIGH.rank
            or self.performance_impact.rank >= RiskLevel.HIGH.rank
        )


def bucket(score: int, bounds: tuple[int, int, int], levels: list) -> Enum:
    """Map a score to a level: ``score <= bounds[i]`` selects ``levels[i]``."""
    for bound, level in zip(bounds, levels):
        if score <= bound:
            return level
    return levels[-1]


def fallback_analysis(endpoint: ApiEndpoint) -> EndpointAnalysis:
    """Minimal analysis used when scoring or constraint analysis fails."""
    return EndpointAnalysis(
        endpoint_key=endpoint.key,
        complexity_score=0,
        complexity_level=ComplexityLevel.LOW,
        complexity_factors=("analysis unavailable",),
        security_score=0,
        security_risk=RiskLevel.LOW,
        security_factors=("analysis unavailable",),
        performance_score=0,
        performance_impact=RiskLevel.LOW,
        performance_factors=("analysis unavailable",),
        fallback=True,
    )


class EndpointScorer:
    def __init__(self, thresholds: ScoringThresholds | None = None):
        self.thresholds = thresholds or ScoringThresholds()

    def score(self, endpoint: ApiEndpoint, constraints: EndpointConstraints | None = None) -> EndpointAnalysis:
        """Score an endpoint. Never raises; odd shapes fall back to ``fallback_analysis``."""
        try:
            return self._score(endpoint, constraints or EndpointConstraints())
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Scoring %s failed, using fallback analysis: %s", endpoint.key, e)
            return fallback_analysis(endpoint)

    def _score(self, endpoint: ApiEndpoint, constraints: EndpointConstraints) -> EndpointAnalysis:
        body = constraints.primary_body()
        complexity, c_factors = self._complexity(endpoint, body)
        security, s_factors, prone = self._security(endpoint, body)
        performance, p_factors = self._performance(endpoint, constraints, body)

        t = self.thresholds
        return EndpointAnalysis(
            endpoint_key=endpoint.key,
            complexity_score=complexity,
            complexity_level=bucket(complexity, t.complexity, list(ComplexityLevel)),
            complexity_factors=tuple(c_factors),
            security_score=security,
            security_risk=bucket(security, t.security, list(RiskLevel)),
            security_factors=tuple(s_factors),
            performance_score=performance,
            performance_impact=bucket(performance, t.performance, list(RiskLevel)),
            performance_factors=tuple(p_factors),
            parameter_analysis=ParameterAnalysis(
                path_count=len(endpoint.path_parameters),
                query_count=len(endpoint.query_parameters),
                header_count=len([p for p in endpoint.parameters if p.location == "header"]),
                required_count=len([p for p in endpoint.parameters if p.required]),
                constrained_count=len([c for c in constraints.parameters.values() if c.is_bounded or c.enum_values]),
                injection_prone=tuple(prone),
            ),
            response_patterns=tuple(response_patterns(constraints.responses.get(str(endpoint.success_status)))),
        )

    def _complexity(self, endpoint: ApiEndpoint, body: DataConstraints | None) -> tuple[int, list[str]]:
        score = 0
        factors = []

        def add(points: int, reason: str) -> None:
            nonlocal score
            if points:
                score += points
                factors.append(f"{reason} (+{points})")

        add(len(endpoint.parameters) * 2, f"{len(endpoint.parameters)} parameters")
        required = len([p for p in endpoint.parameters if p.required])
        add(required * 3, f"{required} required parameters")
        if endpoint.request_body:
            add(5, "request body")
            if endpoint.request_body.required:
                add(3, "required request body")
        add(len(endpoint.responses) * 2, f"{len(endpoint.responses)} response types")
        if endpoint.requires_authentication:
            add(4, "authentication")
            add(len(endpoint.security_schemes) * 2, f"{len(endpoint.security_schemes)} security schemes")
        add(METHOD_WEIGHTS.get(endpoint.method, 1), f"{endpoint.method} method")
        add(len(endpoint.path_parameters) * 2, f"{len(endpoint.path_parameters)} path parameters")
        if body and body.properties:
            add(min(len(body.properties), MAX_BODY_PROPERTY_POINTS), f"{len(body.properties)} body properties")
        return score, factors

    def _security(self, endpoint: ApiEndpoint, body: DataConstraints | None) -> tuple[int, list[str], list[str]]:
        score = 0
        factors = []
        if not endpoint.requires_authentication:
            score += 3
            factors.append("no authentication required (+3)")
            if endpoint.is_mutating:
                score += 2
                factors.append("unauthenticated state change (+2)")
        if endpoint.is_mutating:
            score += 2
            factors.append(f"mutating method {endpoint.method} (+2)")

        for token in path_tokens(endpoint.path):
            if token in SENSITIVE_PATH_TOKENS:
                score += 3
                factors.append(f"sensitive path token '{token}' (+3)")

        names = [p.name for p in endpoint.parameters]
        if body and body.properties:
            names.extend(body.properties)
        prone = [n for n in names if is_injection_prone(n)]
        for name in prone:
            score += 2
            factors.append(f"injection-prone field '{name}' (+2)")

        if endpoint.path_parameters:
            score += len(endpoint.path_parameters)
            factors.append(f"{len(endpoint.path_parameters)} path parameters (+{len(endpoint.path_parameters)})")
        if endpoint.request_body:
            score += 1
            factors.append("accepts request body (+1)")
        return score, factors, prone

    def _performance(
        self, endpoint: ApiEndpoint, constraints: EndpointConstraints, body: DataConstraints | None
    ) -> tuple[int, list[str]]:
        score = 0
        factors = []
        collection_get = endpoint.method == "GET" and not endpoint.path_parameters
        if collection_get:
            score += 2
            factors.append("collection read (+2)")

        success = constraints.responses.get(str(endpoint.success_status))
        if success and success.type == "array":
            score += 3
            factors.append("array response (+3)")

        if collection_get:
            names = {p.name.lower() for p in endpoint.query_parameters}
            if not names & PAGINATION_PARAM_NAMES:
                score += 2
                factors.append("no pagination parameters (+2)")

        if endpoint.query_parameters:
            score += len(endpoint.query_parameters)
            factors.append(f"{len(endpoint.query_parameters)} query parameters (+{len(endpoint.query_parameters)})")
        if endpoint.request_body:
            score += 2
            factors.append("request body processing (+2)")

        if any(_has_large_array(c) for c in (success, body) if c is not None):
            score += 2
            factors.append("unbounded or large arrays (+2)")

        for token in path_tokens(endpoint.path):
            if token in HEAVY_PATH_TOKENS:
                score += 3
                factors.append(f"heavy operation '{token}' (+3)")
        return score, factors


def path_tokens(path: str) -> list[str]:
    """Lowercase literal words of a path, parameters excluded, in order."""
    literal = re.sub(r"\{[^}]*\}", "", path)
    return [t for t in re.split(r"[^a-zA-Z0-9]+", literal.lower()) if t]


def is_injection_prone(name: str) -> bool:
    lowered = name.lower()
    if lowered in INJECTION_PRONE_NAMES:
        return True
    parts = [p for p in re.split(r"[_\-]", _split_camel(name)) if p]
    return any(p in INJECTION_PRONE_NAMES and p != "q" for p in parts)


def _split_camel(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name).lower()


def _has_large_array(c: DataConstraints, depth: int = 0) -> bool:
    if depth > 3:
        return False
    if c.type == "array" and (c.max_items is None or c.max_items > LARGE_ARRAY_ITEMS):
        return True
    children = list((c.properties or {}).values())
    if c.items is not None:
        children.append(c.items)
    return any(_has_large_array(child, depth + 1) for child in children)


def response_patterns(schema: DataConstraints | None) -> list[str]:
    """``has_field:<name>`` and ``field_type:<name>:<type>`` hints for a response schema."""
    if schema is None:
        return []
    target = schema.items if schema.type == "array" and schema.items is not None else schema
    patterns = []
    for name, sub in (target.properties or {}).items():
        patterns.append(f"has_field:{name}")
        if sub.type:
            patterns.append(f"field_type:{name}:{sub.type}")
    return patterns
