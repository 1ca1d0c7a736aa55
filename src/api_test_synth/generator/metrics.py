"""Suite quality metrics."""

from collections import Counter

from api_test_synth.config import TestType
from api_test_synth.models import GeneratedTestCase, QualityMetrics, ScenarioCategory

TEST_TYPE_CATEGORIES = {
    TestType.FUNCTIONAL: ScenarioCategory.FUNCTIONAL,
    TestType.NEGATIVE: ScenarioCategory.FUNCTIONAL,
    TestType.INTEGRATION: ScenarioCategory.FUNCTIONAL,
    TestType.BOUNDARY: ScenarioCategory.BOUNDARY,
    TestType.SECURITY: ScenarioCategory.SECURITY,
    TestType.PERFORMANCE: ScenarioCategory.PERFORMANCE,
    TestType.EDGE_CASE: ScenarioCategory.EDGE_CASE,
    TestType.SCHEMA_VALIDATION: ScenarioCategory.DATA_QUALITY,
    TestType.DATA_INTEGRITY: ScenarioCategory.DATA_QUALITY,
}

COVERAGE_WEIGHT = 0.5
VOLUME_WEIGHT = 0.3
SECURITY_WEIGHT = 0.2


def quality_metrics(cases: list[GeneratedTestCase], enabled: frozenset[TestType], max_cases: int) -> QualityMetrics:
    counts = Counter(c.scenario.value for c in cases)
    expected = {TEST_TYPE_CATEGORIES[t] for t in enabled}
    covered = {c.scenario for c in cases} & expected
    coverage = len(covered) / len(expected) if expected else 0.0
    volume = min(1.0, len(cases) / max_cases) if max_cases else 0.0
    security = counts.get(ScenarioCategory.SECURITY.value, 0)
    security_ok = 1.0 if security or TestType.SECURITY not in enabled else 0.0
    score = COVERAGE_WEIGHT * coverage + VOLUME_WEIGHT * volume + SECURITY_WEIGHT * security_ok
    return QualityMetrics(
        total_cases=len(cases),
        by_category={cat.value: counts.get(cat.value, 0) for cat in ScenarioCategory},
        category_coverage=round(coverage, 3),
        security_cases=security,
        boundary_cases=counts.get(ScenarioCategory.BOUNDARY.value, 0),
        ai_cases=len([c for c in cases if c.source == "ai"]),
        quality_score=round(score, 3) if cases else 0.0,
    )
