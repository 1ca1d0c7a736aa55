"""Test case, plan and suite models.

Everything here is frozen: later pipeline stages wrap or filter cases,
they never edit them in place.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from api_test_synth.analysis.scoring import EndpointAnalysis
from api_test_synth.config import GenerationStrategy


class ScenarioCategory(str, Enum):
    FUNCTIONAL = "functional"
    BOUNDARY = "boundary"
    SECURITY = "security"
    PERFORMANCE = "performance"
    EDGE_CASE = "edge_case"
    DATA_QUALITY = "data_quality"


# base complexity of a case, before endpoint shape is added
SCENARIO_COMPLEXITY = {
    ScenarioCategory.FUNCTIONAL: 1,
    ScenarioCategory.BOUNDARY: 2,
    ScenarioCategory.SECURITY: 3,
    ScenarioCategory.PERFORMANCE: 3,
    ScenarioCategory.EDGE_CASE: 2,
    ScenarioCategory.DATA_QUALITY: 2,
}


class Expectations(BaseModel):
    model_config = ConfigDict(frozen=True)

    omit_auth: bool = False
    invalid_auth: bool = False
    body_shape_agnostic: bool = False
    response_schema: bool = False
    response_time_ms: int | None = None
    concurrency: int | None = None
    large_payload: bool = False
    allowed_statuses: tuple[int, ...] = ()
    security_markers: tuple[str, ...] = ()


class CandidateTestCase(BaseModel):
    """Unprioritized output of scenario generation.

    ``payload`` is the JSON body (None means no body). ``raw_body`` is sent
    verbatim instead, for malformed-body cases.
    """

    model_config = ConfigDict(frozen=True)

    category: ScenarioCategory
    strategy: str
    name: str
    description: str = ""
    content_type: str | None = None
    payload: Any = None
    raw_body: str | None = None
    parameters: dict[str, Any] = {}
    headers: dict[str, str] = {}
    expected_status: int = 200
    expect_success: bool = True
    tags: tuple[str, ...] = ()
    priority: int = 3
    expectations: Expectations = Expectations()
    source: str = "deterministic"


class StepKind(str, Enum):
    SETUP = "SETUP"
    EXECUTE = "EXECUTE"
    VERIFY = "VERIFY"
    CLEANUP = "CLEANUP"


class TestStep(BaseModel):
    __test__ = False  # keep pytest from collecting Test* models

    model_config = ConfigDict(frozen=True)

    order: int
    kind: StepKind
    action: str
    description: str = ""
    data: dict[str, Any] = {}


class TestAssertion(BaseModel):
    __test__ = False

    model_config = ConfigDict(frozen=True)

    kind: str  # status_code, content_type, response_time, schema, not_contains, header
    target: str
    operator: str
    expected: Any = None
    description: str = ""


class TestDataSet(BaseModel):
    __test__ = False

    model_config = ConfigDict(frozen=True)

    content_type: str | None = None
    path_params: dict[str, Any] = {}
    query_params: dict[str, Any] = {}
    headers: dict[str, str] = {}
    body: Any = None
    raw_body: str | None = None


class GeneratedTestCase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    scenario: ScenarioCategory
    strategy: str
    endpoint_key: str
    steps: tuple[TestStep, ...] = ()
    test_data: TestDataSet = TestDataSet()
    assertions: tuple[TestAssertion, ...] = ()
    priority: int = 3
    estimated_duration: float = 1.0
    complexity: int = 1
    tags: tuple[str, ...] = ()
    created_at: datetime
    expected_status: int = 200
    expect_success: bool = True
    source: str = "deterministic"


class Parallelization(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    HYBRID = "hybrid"


class ResourceTier(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ResourceRequirements(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: ResourceTier
    threads: int
    memory_mb: int
    cpu_cores: int


class ExecutionPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    duration: float
    case_ids: tuple[str, ...] = ()


class ExecutionPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    case_ids: tuple[str, ...] = ()
    parallelization: Parallelization = Parallelization.SEQUENTIAL
    phases: tuple[ExecutionPhase, ...] = ()
    resources: ResourceRequirements
    estimated_duration: float = 0.0

    @property
    def total_duration(self) -> float:
        """Case durations plus phase overheads."""
        return sum(p.duration for p in self.phases)


class QualityMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_cases: int = 0
    by_category: dict[str, int] = {}
    category_coverage: float = 0.0
    security_cases: int = 0
    boundary_cases: int = 0
    ai_cases: int = 0
    quality_score: float = 0.0


class TestSuite(BaseModel):
    """Finalized cases and plan for one endpoint.

    ``fallback`` suites stand in for endpoints whose generation failed or
    was interrupted; they are never complete.
    """

    __test__ = False

    model_config = ConfigDict(frozen=True)

    endpoint_key: str
    operation_id: str
    analysis: EndpointAnalysis
    test_cases: tuple[GeneratedTestCase, ...] = ()
    plan: ExecutionPlan
    metrics: QualityMetrics = QualityMetrics()
    dependencies: tuple[str, ...] = ()
    fallback: bool = False
    ai_enhanced: bool = False
    execution_id: str = ""

    @property
    def case_ids(self) -> list[str]:
        return [c.id for c in self.test_cases]


class StrategyRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: GenerationStrategy
    confidence: float
    rationale: str


class GenerationState(str, Enum):
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    STRATEGIZING = "STRATEGIZING"
    GENERATING = "GENERATING"
    OPTIMIZING = "OPTIMIZING"
    VALIDATING = "VALIDATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SHUTTING_DOWN = "SHUTTING_DOWN"


class GenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    execution_id: str
    state: GenerationState
    recommendation: StrategyRecommendation
    suites: dict[str, TestSuite]
    plan: ExecutionPlan
    failed_endpoints: tuple[str, ...] = ()

    def case_ids(self) -> list[str]:
        """All case ids, in overall plan order."""
        return list(self.plan.case_ids)
