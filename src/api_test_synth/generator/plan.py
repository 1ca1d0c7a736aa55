"""Execution plan building.

Plans are advisory metadata for whatever runs the cases later; nothing
here executes anything.
"""

from api_test_synth.models import (
    ExecutionPhase,
    ExecutionPlan,
    GeneratedTestCase,
    Parallelization,
    ResourceRequirements,
    ResourceTier,
    ScenarioCategory,
)

RESOURCE_PROFILES = {
    ResourceTier.LOW: ResourceRequirements(tier=ResourceTier.LOW, threads=1, memory_mb=256, cpu_cores=1),
    ResourceTier.MEDIUM: ResourceRequirements(tier=ResourceTier.MEDIUM, threads=4, memory_mb=512, cpu_cores=2),
    ResourceTier.HIGH: ResourceRequirements(tier=ResourceTier.HIGH, threads=8, memory_mb=1024, cpu_cores=4),
}

# fixed overheads in seconds
PREPARATION_SECONDS = 2.0
CLEANUP_SECONDS_PER_MUTATION = 0.5
REPORTING_SECONDS = 1.0
VALIDATION_FRACTION = 0.1

HIGH_COMPLEXITY = 5.0
MEDIUM_COMPLEXITY = 3.0

READ_METHODS = ("GET", "HEAD", "OPTIONS")


def order_cases(cases: list[GeneratedTestCase], order: list[str] | None = None) -> list[GeneratedTestCase]:
    """Ascending priority with ties in input order, unless an explicit id order is given.

    With an explicit order, unknown ids are ignored and cases it does not
    mention are appended in default order.
    """
    default = sorted(cases, key=lambda c: c.priority)
    if order is None:
        return default
    by_id = {c.id: c for c in cases}
    chosen = [by_id[i] for i in dict.fromkeys(order) if i in by_id]
    seen = {c.id for c in chosen}
    return chosen + [c for c in default if c.id not in seen]


def resource_tier(cases: list[GeneratedTestCase]) -> ResourceTier:
    if not cases:
        return ResourceTier.LOW
    mean_complexity = sum(c.complexity for c in cases) / len(cases)
    scenarios = {c.scenario for c in cases}
    if ScenarioCategory.PERFORMANCE in scenarios or mean_complexity >= HIGH_COMPLEXITY:
        return ResourceTier.HIGH
    if ScenarioCategory.SECURITY in scenarios or mean_complexity >= MEDIUM_COMPLEXITY:
        return ResourceTier.MEDIUM
    return ResourceTier.LOW


def _is_read(case: GeneratedTestCase) -> bool:
    return case.endpoint_key.split(" ", 1)[0] in READ_METHODS


def parallelization(cases: list[GeneratedTestCase]) -> Parallelization:
    if not cases:
        return Parallelization.SEQUENTIAL
    if any(c.scenario == ScenarioCategory.PERFORMANCE for c in cases):
        return Parallelization.SEQUENTIAL
    reads = [c for c in cases if _is_read(c)]
    if len(reads) == len(cases):
        return Parallelization.PARALLEL
    if len({c.endpoint_key for c in cases}) > 1 and reads:
        return Parallelization.HYBRID
    return Parallelization.SEQUENTIAL


def build_plan(cases: list[GeneratedTestCase], order: list[str] | None = None) -> ExecutionPlan:
    ordered = order_cases(cases, order)
    execution = sum(c.estimated_duration for c in ordered)
    mutations = len([c for c in ordered if not _is_read(c)])
    ids = tuple(c.id for c in ordered)

    phases = (
        ExecutionPhase(name="preparation", duration=PREPARATION_SECONDS if ordered else 0.0),
        ExecutionPhase(name="execution", duration=execution, case_ids=ids),
        ExecutionPhase(name="validation", duration=round(execution * VALIDATION_FRACTION, 3)),
        ExecutionPhase(name="cleanup", duration=mutations * CLEANUP_SECONDS_PER_MUTATION),
        ExecutionPhase(name="reporting", duration=REPORTING_SECONDS if ordered else 0.0),
    )
    return ExecutionPlan(
        case_ids=ids,
        parallelization=parallelization(ordered),
        phases=phases,
        resources=RESOURCE_PROFILES[resource_tier(ordered)],
        estimated_duration=execution,
    )
