"""Case prioritization and budgeting.

Order of importance: security > error handling > business logic >
boundary > schema > edge cases > everything else, then complexity and
the case's own priority.
"""

from api_test_synth.models import GeneratedTestCase

SECURITY_POINTS = 100
PERFORMANCE_POINTS = 80
ERROR_HANDLING_POINTS = 70
BUSINESS_POINTS = 60
BOUNDARY_POINTS = 50
SCHEMA_POINTS = 40
EDGE_POINTS = 30
COMPLEXITY_WEIGHT = 5
PRIORITY_WEIGHT = 10


def _mentions(case: GeneratedTestCase, word: str) -> bool:
    return word in case.name.lower() or any(word in tag for tag in case.tags)


def priority_score(case: GeneratedTestCase) -> int:
    score = 0
    if "security" in case.tags:
        score += SECURITY_POINTS
    if "performance" in case.tags:
        score += PERFORMANCE_POINTS
    # error handling only counts when the case itself expects an error status
    if "error-handling" in case.tags and case.expected_status >= 400:
        score += ERROR_HANDLING_POINTS
    name = case.name.lower()
    if "business" in name or "workflow" in name:
        score += BUSINESS_POINTS
    if _mentions(case, "boundary"):
        score += BOUNDARY_POINTS
    if _mentions(case, "schema"):
        score += SCHEMA_POINTS
    if _mentions(case, "edge"):
        score += EDGE_POINTS
    score += case.complexity * COMPLEXITY_WEIGHT
    score += (6 - case.priority) * PRIORITY_WEIGHT
    return score


def prioritize(cases: list[GeneratedTestCase], max_count: int) -> list[GeneratedTestCase]:
    """Sort by descending score and keep the top ``max_count``.

    The sort is stable, so equal scores keep generation order.
    """
    if max_count < 1:
        raise ValueError(f"max_count must be at least 1, got {max_count}")
    ranked = sorted(cases, key=priority_score, reverse=True)
    return ranked[:max_count]
