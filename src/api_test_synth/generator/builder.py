"""Turns CandidateTestCases into the public GeneratedTestCase form."""

from datetime import datetime

from api_test_synth.models import (
    SCENARIO_COMPLEXITY,
    CandidateTestCase,
    GeneratedTestCase,
    ScenarioCategory,
    StepKind,
    TestAssertion,
    TestDataSet,
    TestStep,
)
from api_test_synth.parser.base import ApiEndpoint

BASE_DURATION = 1.0
SECURITY_FACTOR = 2.0
PERFORMANCE_FACTOR = 5.0
LARGE_PAYLOAD_FACTOR = 3.0


def case_id(operation_id: str, category: ScenarioCategory, seq: int) -> str:
    return f"{operation_id}_{category.value}_{seq:03d}"


def estimate_duration(candidate: CandidateTestCase) -> float:
    """Base duration scaled up for security, performance and large-payload cases."""
    duration = BASE_DURATION
    if candidate.category == ScenarioCategory.SECURITY or "security" in candidate.tags:
        duration *= SECURITY_FACTOR
    if candidate.category == ScenarioCategory.PERFORMANCE or "performance" in candidate.tags:
        duration *= PERFORMANCE_FACTOR
    if candidate.expectations.large_payload:
        duration *= LARGE_PAYLOAD_FACTOR
    return duration


def case_complexity(candidate: CandidateTestCase, endpoint: ApiEndpoint) -> int:
    complexity = SCENARIO_COMPLEXITY[candidate.category]
    if endpoint.has_parameters:
        complexity += 1
    if endpoint.has_request_body:
        complexity += 1
    return complexity


def build_test_data(candidate: CandidateTestCase, endpoint: ApiEndpoint) -> TestDataSet:
    locations = {p.name: p.location for p in endpoint.parameters}
    path_params, query_params = {}, {}
    headers = dict(candidate.headers)
    for name, value in candidate.parameters.items():
        location = locations.get(name, "query")
        if location == "path":
            path_params[name] = value
        elif location == "header":
            headers[name] = str(value)
        elif location == "cookie":
            headers["Cookie"] = f"{name}={value}"
        else:
            query_params[name] = value
    return TestDataSet(
        content_type=candidate.content_type,
        path_params=path_params,
        query_params=query_params,
        headers=headers,
        body=candidate.payload,
        raw_body=candidate.raw_body,
    )


def build_steps(candidate: CandidateTestCase, endpoint: ApiEndpoint) -> tuple[TestStep, ...]:
    exp = candidate.expectations
    if exp.omit_auth:
        setup = "Prepare request data without credentials"
    elif exp.invalid_auth:
        setup = "Prepare request data with a forged token"
    elif endpoint.requires_authentication:
        setup = "Prepare request data and authenticate"
    else:
        setup = "Prepare request data"
    if exp.concurrency:
        setup += f" for {exp.concurrency} concurrent clients"

    execute_data = {"content_type": candidate.content_type}
    if exp.concurrency:
        execute_data["concurrency"] = exp.concurrency

    steps = [
        TestStep(order=1, kind=StepKind.SETUP, action="prepare", description=setup),
        TestStep(order=2, kind=StepKind.EXECUTE, action=f"{endpoint.method} {endpoint.path}",
                 description=candidate.description, data=execute_data),
        TestStep(order=3, kind=StepKind.VERIFY, action="verify", description=f"Expect HTTP {candidate.expected_status}"),
    ]
    if endpoint.method == "POST" and candidate.expect_success:
        steps.append(TestStep(order=4, kind=StepKind.CLEANUP, action="cleanup", description="Delete the created resource"))
    return tuple(steps)


def build_assertions(candidate: CandidateTestCase, endpoint: ApiEndpoint) -> tuple[TestAssertion, ...]:
    exp = candidate.expectations
    if exp.allowed_statuses:
        allowed = sorted({candidate.expected_status, *exp.allowed_statuses})
        assertions = [TestAssertion(kind="status_code", target="status", operator="in", expected=allowed,
                                    description=f"Status is one of {allowed}")]
    else:
        assertions = [TestAssertion(kind="status_code", target="status", operator="equals",
                                    expected=candidate.expected_status,
                                    description=f"Status is {candidate.expected_status}")]

    response = endpoint.responses.get(str(candidate.expected_status))
    if candidate.expect_success and response is not None and response.content:
        content_type = next(iter(response.content))
        assertions.append(TestAssertion(kind="content_type", target="header:Content-Type", operator="contains",
                                        expected=content_type, description=f"Response is {content_type}"))
    if exp.response_schema and candidate.expect_success:
        assertions.append(TestAssertion(kind="schema", target="body", operator="matches",
                                        expected=f"#/responses/{candidate.expected_status}",
                                        description="Body matches the declared response schema"))
    if exp.response_time_ms is not None:
        assertions.append(TestAssertion(kind="response_time", target="elapsed_ms", operator="lte",
                                        expected=exp.response_time_ms,
                                        description=f"Responds within {exp.response_time_ms} ms"))
    for marker in exp.security_markers:
        assertions.append(TestAssertion(kind="not_contains", target="body", operator="not_contains",
                                        expected=marker, description=f"Response does not leak '{marker}'"))
    return tuple(assertions)


def build_test_case(
    candidate: CandidateTestCase, endpoint: ApiEndpoint, seq: int, created_at: datetime
) -> GeneratedTestCase:
    """Build the public case. ``seq`` is the 1-based position in generation order."""
    return GeneratedTestCase(
        id=case_id(endpoint.operation_id, candidate.category, seq),
        name=candidate.name,
        description=candidate.description,
        scenario=candidate.category,
        strategy=candidate.strategy,
        endpoint_key=endpoint.key,
        steps=build_steps(candidate, endpoint),
        test_data=build_test_data(candidate, endpoint),
        assertions=build_assertions(candidate, endpoint),
        priority=candidate.priority,
        estimated_duration=estimate_duration(candidate),
        complexity=case_complexity(candidate, endpoint),
        tags=tuple(sorted(set(candidate.tags) | {candidate.category.value})),
        created_at=created_at,
        expected_status=candidate.expected_status,
        expect_success=candidate.expect_success,
        source=candidate.source,
    )


def build_test_cases(
    candidates: list[CandidateTestCase], endpoint: ApiEndpoint, created_at: datetime
) -> list[GeneratedTestCase]:
    return [build_test_case(c, endpoint, i, created_at) for i, c in enumerate(candidates, start=1)]
