from datetime import datetime, timezone

import pytest

from api_test_synth.config import TestType
from api_test_synth.generator.metrics import quality_metrics
from api_test_synth.generator.plan import build_plan, order_cases, parallelization, resource_tier
from api_test_synth.models import GeneratedTestCase, Parallelization, ResourceTier, ScenarioCategory

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _case(case_id: str, endpoint_key: str = "GET /x", **overrides) -> GeneratedTestCase:
    defaults = dict(
        id=case_id,
        name=case_id,
        scenario=ScenarioCategory.FUNCTIONAL,
        strategy="s",
        endpoint_key=endpoint_key,
        created_at=CREATED,
    )
    defaults.update(overrides)
    return GeneratedTestCase(**defaults)


class TestOrderCases:
    def test_ascending_priority_stable(self):
        cases = [_case("a", priority=3), _case("b", priority=1), _case("c", priority=3)]
        assert [c.id for c in order_cases(cases)] == ["b", "a", "c"]

    def test_explicit_order(self):
        cases = [_case("a"), _case("b"), _case("c")]
        assert [c.id for c in order_cases(cases, ["c", "missing", "a"])] == ["c", "a", "b"]


class TestResourcesAndParallelization:
    def test_tiers(self):
        assert resource_tier([]) == ResourceTier.LOW
        assert resource_tier([_case("a")]) == ResourceTier.LOW
        assert resource_tier([_case("a", scenario=ScenarioCategory.SECURITY)]) == ResourceTier.MEDIUM
        assert resource_tier([_case("a", scenario=ScenarioCategory.PERFORMANCE)]) == ResourceTier.HIGH

    def test_parallelization(self):
        assert parallelization([_case("a"), _case("b")]) == Parallelization.PARALLEL
        assert parallelization([_case("a", "POST /x")]) == Parallelization.SEQUENTIAL
        assert parallelization([_case("a"), _case("b", "POST /y")]) == Parallelization.HYBRID
        assert parallelization([_case("a", scenario=ScenarioCategory.PERFORMANCE)]) == Parallelization.SEQUENTIAL


class TestBuildPlan:
    def test_durations(self):
        cases = [_case("a", estimated_duration=2.0), _case("b", "DELETE /x", estimated_duration=5.0)]
        plan = build_plan(cases)
        assert plan.estimated_duration == 7.0
        assert [p.name for p in plan.phases] == ["preparation", "execution", "validation", "cleanup", "reporting"]
        assert plan.phases[1].case_ids == ("a", "b")
        # 2 preparation + 7 execution + 0.7 validation + 0.5 cleanup + 1 reporting
        assert plan.total_duration == pytest.approx(11.2)

    def test_empty_plan(self):
        plan = build_plan([])
        assert plan.case_ids == ()
        assert plan.total_duration == 0.0
        assert plan.resources.tier == ResourceTier.LOW


class TestQualityMetrics:
    def test_full_coverage(self):
        cases = [
            _case("a"),
            _case("b", scenario=ScenarioCategory.SECURITY),
        ]
        m = quality_metrics(cases, frozenset({TestType.FUNCTIONAL, TestType.SECURITY}), 4)
        assert m.category_coverage == 1.0
        assert m.security_cases == 1
        # 0.5 * 1.0 + 0.3 * 0.5 + 0.2 * 1.0
        assert m.quality_score == 0.85

    def test_missing_security(self):
        m = quality_metrics([_case("a")], frozenset({TestType.FUNCTIONAL, TestType.SECURITY}), 1)
        assert m.category_coverage == 0.5
        assert m.quality_score == 0.55

    def test_no_cases(self):
        m = quality_metrics([], frozenset(), 15)
        assert m.total_cases == 0
        assert m.quality_score == 0.0
        assert m.by_category["functional"] == 0
