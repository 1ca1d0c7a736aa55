"""Scenario case generator.

Enumerates CandidateTestCases for one endpoint from its constraints and
analysis. Categories are produced in a fixed order and every loop walks
declaration-ordered data, so identical input gives identical output.
"""

from __future__ import annotations

import itertools
import json
from collections.abc import Iterable
from typing import Any

from api_test_synth.analysis.constraints import DataConstraints, EndpointConstraints
from api_test_synth.analysis.scoring import EndpointAnalysis, RiskLevel
from api_test_synth.config import EdgeCaseLevel, TestType
from api_test_synth.generator.attacks import BODY_CORPORA, FIELD_CORPORA, AttackCorpus
from api_test_synth.generator.payloads import INVALID_ENUM_VALUE, PayloadSynthesizer
from api_test_synth.models import CandidateTestCase, Expectations, ScenarioCategory
from api_test_synth.parser.base import ApiEndpoint

CONCURRENCY_LEVELS = (10, 50, 100)
RESPONSE_TIME_CEILINGS_MS = {
    RiskLevel.LOW: 500,
    RiskLevel.MEDIUM: 1000,
    RiskLevel.HIGH: 2000,
    RiskLevel.CRITICAL: 5000,
}
MAX_MISSING_FIELD_CASES = 5
MAX_MISSING_PARAM_CASES = 3
MAX_BOUNDARY_PAIRS = 3
NESTING_DEPTH = 50
DEEP_STRUCTURE_DEPTH = 10

UNICODE_SAMPLE = "测试データ ✓ émoji 🚀 Ωmega"
WHITESPACE_SAMPLE = "   "
CORRUPTED_BODY = "\x00\xff\xfe\x00{garbage"
NONEXISTENT_ID = "nonexistent-999999"


class _Context:
    """Per-endpoint values shared by all scenario builders."""

    def __init__(self, endpoint: ApiEndpoint, constraints: EndpointConstraints, analysis: EndpointAnalysis, synth: PayloadSynthesizer):
        self.endpoint = endpoint
        self.constraints = constraints
        self.analysis = analysis
        self.synth = synth
        self.content_types: list[str | None] = list(endpoint.content_types) or [None]
        self.primary_ct = self.content_types[0]
        self.body = constraints.body.get(self.primary_ct) if self.primary_ct else None
        self.success = endpoint.success_status
        self.params = {
            p.name: synth.value_for(constraints.parameters.get(p.name), p.name)
            for p in endpoint.parameters
            if p.required or p.location == "path"
        }
        self.payload = self.payload_for(self.primary_ct)

    def payload_for(self, content_type: str | None, include_optional: bool = False) -> Any:
        if content_type is None:
            return None
        c = self.constraints.body.get(content_type)
        if c is None or (c.type is None and not c.properties):
            return {}
        if c.type == "object" or c.properties:
            return self.synth.build_object(c, include_optional)
        return self.synth.value_for(c)

    @property
    def client_error(self) -> int:
        if "400" not in self.endpoint.responses and "422" in self.endpoint.responses:
            return 422
        return 400

    def body_fields(self) -> dict[str, DataConstraints]:
        if self.body is None or not self.body.properties or not isinstance(self.payload, dict):
            return {}
        return dict(self.body.properties)

    def string_body_fields(self) -> list[str]:
        if not self.body_fields():
            return []
        return self.body.string_fields()

    def string_params(self) -> list[str]:
        out = []
        for p in self.endpoint.parameters:
            c = self.constraints.parameters.get(p.name)
            if p.param_type == "string" and not (c and c.enum_values) and not (c and c.format in ("uuid", "date", "date-time")):
                out.append(p.name)
        return out

    def with_field(self, name: str, value: Any) -> dict:
        payload = dict(self.payload)
        payload[name] = value
        return payload

    def without_field(self, name: str) -> dict:
        return {k: v for k, v in self.payload.items() if k != name}


class ScenarioCaseGenerator:
    """Builds candidate cases per scenario category for one endpoint."""

    def __init__(
        self,
        edge_level: EdgeCaseLevel = EdgeCaseLevel.STANDARD,
        synthesizer: PayloadSynthesizer | None = None,
        payloads_per_corpus: int | None = 1,
    ):
        self.edge_level = edge_level
        self.synth = synthesizer or PayloadSynthesizer()
        self.payloads_per_corpus = payloads_per_corpus

    def generate(
        self,
        endpoint: ApiEndpoint,
        constraints: EndpointConstraints,
        analysis: EndpointAnalysis,
        enabled: Iterable[TestType],
        dependencies: tuple[str, ...] = (),
    ) -> list[CandidateTestCase]:
        enabled = set(enabled)
        if not enabled:
            return []
        ctx = _Context(endpoint, constraints, analysis, self.synth)

        cases: list[CandidateTestCase] = []
        if TestType.FUNCTIONAL in enabled:
            cases.extend(self.functional(ctx))
        if TestType.NEGATIVE in enabled:
            cases.extend(self.negative(ctx))
        if TestType.BOUNDARY in enabled:
            cases.extend(self.boundary(ctx))
        if TestType.SECURITY in enabled:
            cases.extend(self.security(ctx))
        if TestType.PERFORMANCE in enabled:
            cases.extend(self.performance(ctx))
        if TestType.EDGE_CASE in enabled:
            cases.extend(self.edge_cases(ctx))
        cases.extend(self.data_quality(ctx, enabled))
        if TestType.INTEGRATION in enabled and dependencies:
            cases.extend(self.integration(ctx, dependencies))
        return cases

    def functional(self, ctx: _Context) -> list[CandidateTestCase]:
        ep = ctx.endpoint
        success_schema = ctx.constraints.responses.get(str(ctx.success))
        agnostic = success_schema is None or (success_schema.type is None and not success_schema.properties)
        tags = ("functional", "happy-path") + (("body-shape-agnostic",) if agnostic else ())

        cases = []
        for ct in ctx.content_types:
            suffix = f" ({ct})" if ct and len(ctx.content_types) > 1 else ""
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.FUNCTIONAL,
                    strategy="functional_happy_path",
                    name=f"{ep.method} {ep.path} happy path{suffix}",
                    description=ep.summary or f"Valid request to {ep.key}",
                    content_type=ct,
                    payload=ctx.payload_for(ct),
                    parameters=ctx.params,
                    expected_status=ctx.success,
                    tags=tags,
                    priority=1,
                    expectations=Expectations(body_shape_agnostic=agnostic, response_schema=not agnostic),
                )
            )

        body = ctx.body
        if body and body.properties and body.required_fields and len(body.required_fields) < len(body.properties):
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.FUNCTIONAL,
                    strategy="functional_all_fields",
                    name=f"{ep.method} {ep.path} with all optional fields",
                    description="Valid request including every declared property",
                    content_type=ctx.primary_ct,
                    payload=ctx.payload_for(ctx.primary_ct, include_optional=True),
                    parameters=ctx.params,
                    expected_status=ctx.success,
                    tags=("functional",),
                    priority=2,
                )
            )
        return cases

    def negative(self, ctx: _Context) -> list[CandidateTestCase]:
        ep = ctx.endpoint
        cases = []

        def add(strategy: str, name: str, description: str, status: int | None = None, **fields: Any) -> None:
            fields.setdefault("payload", ctx.payload)
            fields.setdefault("parameters", ctx.params)
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.FUNCTIONAL,
                    strategy=strategy,
                    name=name,
                    description=description,
                    content_type=ctx.primary_ct,
                    expected_status=status or ctx.client_error,
                    expect_success=False,
                    tags=("negative", "error-handling"),
                    priority=2,
                    **fields,
                )
            )

        fields = ctx.body_fields()
        required = [n for n in fields if ctx.body.is_required(n)]
        for name in required[:MAX_MISSING_FIELD_CASES]:
            add("negative_missing_field", f"missing required field '{name}'", f"Omit required property '{name}'",
                payload=ctx.without_field(name))

        if ctx.body is not None:
            add("negative_wrong_body_type", "wrong request body type", "Send a body of the wrong JSON type",
                payload=self.synth.invalid_type_value(ctx.body))
            typed = next((n for n, c in fields.items() if c.type and not c.enum_values), None)
            if typed:
                add("negative_wrong_field_type", f"wrong type for field '{typed}'", f"'{typed}' has the wrong JSON type",
                    payload=ctx.with_field(typed, self.synth.invalid_type_value(fields[typed])))

        required_params = [p for p in ep.parameters if p.required and p.location != "path"]
        for p in required_params[:MAX_MISSING_PARAM_CASES]:
            params = {k: v for k, v in ctx.params.items() if k != p.name}
            add("negative_missing_parameter", f"missing required {p.location} parameter '{p.name}'",
                f"Omit required parameter '{p.name}'", parameters=params)

        enum_field = next((n for n, c in fields.items() if c.enum_values), None)
        if enum_field:
            add("negative_invalid_enum", f"invalid enum value for '{enum_field}'", "Value outside the declared enum",
                payload=ctx.with_field(enum_field, INVALID_ENUM_VALUE))
        else:
            enum_param = next(
                (p.name for p in ep.parameters if (ctx.constraints.parameters.get(p.name) or DataConstraints()).enum_values),
                None,
            )
            if enum_param:
                add("negative_invalid_enum", f"invalid enum value for parameter '{enum_param}'",
                    "Value outside the declared enum", parameters={**ctx.params, enum_param: INVALID_ENUM_VALUE})

        if ep.path_parameters:
            params = dict(ctx.params)
            for p in ep.path_parameters:
                params[p.name] = 999999999 if p.param_type == "integer" else NONEXISTENT_ID
            add("negative_not_found", "non-existent resource", "Path parameters point at a missing resource",
                status=404, parameters=params)
        return cases

    def boundary(self, ctx: _Context) -> list[CandidateTestCase]:
        cases = []
        valid_by_field: dict[str, list[tuple[str, Any]]] = {}

        for name, c in ctx.body_fields().items():
            for label, value, valid in self.synth.boundary_values(c, name):
                cases.append(self._boundary_case(ctx, name, label, valid, payload=ctx.with_field(name, value)))
                if valid:
                    valid_by_field.setdefault(name, []).append((label, value))

        for p in ctx.endpoint.parameters:
            c = ctx.constraints.parameters.get(p.name)
            if c is None:
                continue
            for label, value, valid in self.synth.boundary_values(c, p.name):
                cases.append(
                    self._boundary_case(ctx, p.name, label, valid, parameters={**ctx.params, p.name: value})
                )

        pairs = list(itertools.combinations(valid_by_field, 2))[:MAX_BOUNDARY_PAIRS]
        for a, b in pairs:
            label_a, value_a = valid_by_field[a][0]
            label_b, value_b = valid_by_field[b][-1]
            payload = ctx.with_field(a, value_a)
            payload[b] = value_b
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.BOUNDARY,
                    strategy="boundary_combination",
                    name=f"boundary pair {a} {label_a} + {b} {label_b}",
                    description=f"'{a}' and '{b}' both on a bound",
                    content_type=ctx.primary_ct,
                    payload=payload,
                    parameters=ctx.params,
                    expected_status=ctx.success,
                    tags=("boundary", "combination"),
                    priority=3,
                )
            )
        return cases

    def _boundary_case(self, ctx: _Context, field: str, label: str, valid: bool, **fields: Any) -> CandidateTestCase:
        fields.setdefault("payload", ctx.payload)
        fields.setdefault("parameters", ctx.params)
        return CandidateTestCase(
            category=ScenarioCategory.BOUNDARY,
            strategy="boundary_value" if valid else "boundary_out_of_range",
            name=f"boundary {field} {label}",
            description=f"'{field}' at {label}" if valid else f"'{field}' just outside its bound ({label})",
            content_type=ctx.primary_ct,
            expected_status=ctx.success if valid else ctx.client_error,
            expect_success=valid,
            tags=("boundary",) if valid else ("boundary", "error-handling"),
            priority=2,
            **fields,
        )

    def security(self, ctx: _Context) -> list[CandidateTestCase]:
        ep = ctx.endpoint
        cases = []
        body_targets = ctx.string_body_fields()
        param_targets = ctx.string_params()

        if body_targets or param_targets:
            for corpus in FIELD_CORPORA:
                if not corpus.applies_to(ctx.primary_ct):
                    continue
                for index, attack in enumerate(self._payloads(corpus)):
                    payload = ctx.payload
                    if body_targets:
                        payload = dict(payload)
                        for name in body_targets:
                            payload[name] = attack
                    params = {**ctx.params, **{n: attack for n in param_targets}}
                    cases.append(self._security_case(ctx, corpus, index, payload=payload, parameters=params))

        for corpus in BODY_CORPORA:
            xml_types = [ct for ct in ctx.content_types if corpus.applies_to(ct)]
            if not xml_types:
                continue
            for index, attack in enumerate(self._payloads(corpus)):
                cases.append(
                    self._security_case(
                        ctx, corpus, index, content_type=xml_types[0], payload=None, raw_body=attack, parameters=ctx.params
                    )
                )

        if ep.requires_authentication:
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.SECURITY,
                    strategy="security_auth_bypass",
                    name="missing authentication",
                    description="Request without credentials must be rejected",
                    content_type=ctx.primary_ct,
                    payload=ctx.payload,
                    parameters=ctx.params,
                    expected_status=401,
                    expect_success=False,
                    tags=("security", "authentication"),
                    priority=1,
                    expectations=Expectations(omit_auth=True, allowed_statuses=(401, 403)),
                )
            )
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.SECURITY,
                    strategy="security_invalid_token",
                    name="invalid authentication token",
                    description="Request with a forged token must be rejected",
                    content_type=ctx.primary_ct,
                    payload=ctx.payload,
                    parameters=ctx.params,
                    headers={"Authorization": "Bearer invalid-token"},
                    expected_status=401,
                    expect_success=False,
                    tags=("security", "authentication"),
                    priority=1,
                    expectations=Expectations(invalid_auth=True, allowed_statuses=(401, 403)),
                )
            )
        return cases

    def _payloads(self, corpus: AttackCorpus) -> tuple[str, ...]:
        if self.payloads_per_corpus is None:
            return corpus.payloads
        return corpus.payloads[: self.payloads_per_corpus]

    def _security_case(self, ctx: _Context, corpus: AttackCorpus, index: int, **fields: Any) -> CandidateTestCase:
        fields.setdefault("content_type", ctx.primary_ct)
        return CandidateTestCase(
            category=ScenarioCategory.SECURITY,
            strategy=corpus.strategy,
            name=f"{corpus.name} #{index + 1}",
            description=f"{corpus.name} payload must be rejected or neutralized",
            expected_status=ctx.client_error,
            expect_success=False,
            tags=("security", corpus.strategy.replace("security_", "").replace("_", "-")),
            priority=1,
            expectations=Expectations(
                allowed_statuses=(ctx.client_error, 403, 422) if ctx.client_error != 422 else (422, 400, 403),
                security_markers=corpus.markers,
            ),
            **fields,
        )

    def performance(self, ctx: _Context) -> list[CandidateTestCase]:
        ceiling = RESPONSE_TIME_CEILINGS_MS[ctx.analysis.performance_impact]
        cases = [
            CandidateTestCase(
                category=ScenarioCategory.PERFORMANCE,
                strategy="performance_load",
                name=f"load with {level} concurrent requests",
                description=f"{level} concurrent valid requests stay under {ceiling} ms",
                content_type=ctx.primary_ct,
                payload=ctx.payload,
                parameters=ctx.params,
                expected_status=ctx.success,
                tags=("performance", "load"),
                priority=3,
                expectations=Expectations(concurrency=level, response_time_ms=ceiling),
            )
            for level in CONCURRENCY_LEVELS
        ]
        if ctx.body is not None:
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.PERFORMANCE,
                    strategy="performance_large_payload",
                    name="large payload",
                    description="Body sized at its declared limits",
                    content_type=ctx.primary_ct,
                    payload=self.synth.large_value(ctx.body) if ctx.body.type else "a" * 5000,
                    parameters=ctx.params,
                    expected_status=ctx.success,
                    tags=("performance", "large-payload"),
                    priority=3,
                    expectations=Expectations(
                        large_payload=True,
                        response_time_ms=ceiling * 2,
                        allowed_statuses=(ctx.success, 400, 413),
                    ),
                )
            )
        return cases

    def edge_cases(self, ctx: _Context) -> list[CandidateTestCase]:
        rank = self.edge_level.rank
        has_body = ctx.body is not None
        cases = []

        def add(strategy: str, name: str, description: str, level: EdgeCaseLevel, status: int | None = None, **fields: Any) -> None:
            fields.setdefault("payload", ctx.payload)
            fields.setdefault("parameters", ctx.params)
            fields.setdefault("content_type", ctx.primary_ct)
            expected = status if status is not None else ctx.client_error
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.EDGE_CASE,
                    strategy=strategy,
                    name=f"edge: {name}",
                    description=description,
                    expected_status=expected,
                    expect_success=expected < 400,
                    tags=("edge", f"edge-{level.value}"),
                    priority=4,
                    **fields,
                )
            )

        strings = ctx.string_body_fields()
        params = ctx.string_params()

        if rank >= EdgeCaseLevel.BASIC.rank:
            if has_body:
                must_fail = bool(ctx.body.required_fields) or ctx.endpoint.request_body.required
                add("edge_empty_body", "empty body", "Empty JSON object", EdgeCaseLevel.BASIC,
                    status=None if must_fail else ctx.success, payload={})
                add("edge_null_body", "null body", "Literal JSON null as body", EdgeCaseLevel.BASIC,
                    payload=None, raw_body="null")
            elif params:
                add("edge_empty_parameters", "empty parameter values", "String parameters sent empty",
                    EdgeCaseLevel.BASIC, parameters={**ctx.params, **{n: "" for n in params}})

        if rank >= EdgeCaseLevel.STANDARD.rank and (strings or params):
            unicode_payload = ctx.payload
            if strings:
                unicode_payload = dict(ctx.payload)
                for n in strings:
                    unicode_payload[n] = self.synth.fit_length(UNICODE_SAMPLE, ctx.body.properties[n])
            add("edge_unicode", "unicode content", "Multi-script and emoji text in string fields",
                EdgeCaseLevel.STANDARD, status=ctx.success, payload=unicode_payload,
                parameters={**ctx.params, **{n: UNICODE_SAMPLE for n in params}} if not strings else ctx.params)
            if strings:
                add("edge_whitespace", "whitespace-only strings", "String fields containing only spaces",
                    EdgeCaseLevel.STANDARD, payload={**ctx.payload, **{n: WHITESPACE_SAMPLE for n in strings}})

        if rank >= EdgeCaseLevel.AGGRESSIVE.rank:
            if strings:
                oversized = dict(ctx.payload)
                for n in strings:
                    limit = ctx.body.properties[n].max_length
                    oversized[n] = "x" * ((limit + 1) if limit is not None else self.synth.string_cap + 1)
                add("edge_oversized", "oversized payload", "String fields past their limits",
                    EdgeCaseLevel.AGGRESSIVE, payload=oversized)
            elif params:
                add("edge_oversized", "oversized parameter", "String parameters past any sane length",
                    EdgeCaseLevel.AGGRESSIVE, parameters={**ctx.params, **{n: "x" * 8192 for n in params}})
            if has_body and isinstance(ctx.payload, dict):
                add("edge_deep_nesting", "deeply nested structure", f"Object nested {NESTING_DEPTH} levels deep",
                    EdgeCaseLevel.AGGRESSIVE, payload={**ctx.payload, "nested": _nested(NESTING_DEPTH)})

        if rank >= EdgeCaseLevel.EXTREME.rank:
            if has_body:
                text = json.dumps(ctx.payload, sort_keys=True)
                add("edge_truncated", "truncated JSON", "Body cut off mid-document", EdgeCaseLevel.EXTREME,
                    payload=None, raw_body=text[: max(1, len(text) // 2)])
                add("edge_corrupted", "corrupted bytes", "Binary garbage in the body", EdgeCaseLevel.EXTREME,
                    payload=None, raw_body=CORRUPTED_BODY)
                add("edge_wrong_content_type", "wrong content type", "JSON body labelled text/plain",
                    EdgeCaseLevel.EXTREME, status=415, content_type="text/plain", payload=None, raw_body=text)
            elif params:
                add("edge_null_byte", "null byte in parameter", "Parameters containing NUL",
                    EdgeCaseLevel.EXTREME, parameters={**ctx.params, **{n: "abc\x00def" for n in params}})
        return cases

    def data_quality(self, ctx: _Context, enabled: set[TestType]) -> list[CandidateTestCase]:
        schema_on = TestType.SCHEMA_VALIDATION in enabled
        integrity_on = TestType.DATA_INTEGRITY in enabled
        success_schema = ctx.constraints.responses.get(str(ctx.success))
        has_schema = success_schema is not None and (success_schema.type is not None or bool(success_schema.properties))
        cases = []

        if schema_on and has_schema:
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.DATA_QUALITY,
                    strategy="schema_validation",
                    name="response schema validation",
                    description=f"Response body conforms to the declared {ctx.success} schema",
                    content_type=ctx.primary_ct,
                    payload=ctx.payload,
                    parameters=ctx.params,
                    expected_status=ctx.success,
                    tags=("schema", "data-quality"),
                    priority=2,
                    expectations=Expectations(response_schema=True),
                )
            )
        if integrity_on and ctx.endpoint.is_mutating and ctx.body is not None:
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.DATA_QUALITY,
                    strategy="data_integrity",
                    name="data integrity round trip",
                    description="Values sent are stored and returned unchanged",
                    content_type=ctx.primary_ct,
                    payload=ctx.payload_for(ctx.primary_ct, include_optional=True),
                    parameters=ctx.params,
                    expected_status=ctx.success,
                    tags=("data-integrity", "data-quality"),
                    priority=2,
                    expectations=Expectations(response_schema=has_schema),
                )
            )
        if schema_on and integrity_on:
            payload = ctx.payload
            if isinstance(payload, dict):
                payload = {**payload, "metadata": _nested(DEEP_STRUCTURE_DEPTH)}
            cases.append(
                CandidateTestCase(
                    category=ScenarioCategory.DATA_QUALITY,
                    strategy="schema_integrity_deep_nesting",
                    name="schema integrity deep nested structure",
                    description="Deeply nested data is either preserved intact or rejected cleanly",
                    content_type=ctx.primary_ct,
                    payload=payload,
                    parameters=ctx.params,
                    expected_status=ctx.success,
                    tags=("schema", "data-integrity", "data-quality"),
                    priority=3,
                    expectations=Expectations(response_schema=has_schema, allowed_statuses=(ctx.success, 400, 422)),
                )
            )
        return cases

    def integration(self, ctx: _Context, dependencies: tuple[str, ...]) -> list[CandidateTestCase]:
        chain = " -> ".join(dependencies + (ctx.endpoint.key,))
        return [
            CandidateTestCase(
                category=ScenarioCategory.FUNCTIONAL,
                strategy="integration_workflow",
                name=f"business workflow {chain}",
                description=f"Run {', '.join(dependencies)} first, then {ctx.endpoint.key} on the created resource",
                content_type=ctx.primary_ct,
                payload=ctx.payload,
                parameters=ctx.params,
                expected_status=ctx.success,
                tags=("integration", "workflow"),
                priority=2,
            )
        ]


def _nested(depth: int) -> dict:
    node: dict = {"value": "leaf"}
    for level in range(depth):
        node = {"level": depth - level, "child": node}
    return node
