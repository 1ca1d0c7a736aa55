"""Generation orchestrator.

Drives one run through Idle -> Analyzing -> Strategizing -> Generating ->
Optimizing -> Validating -> Completed. Endpoint work fans out over a
bounded worker pool; AI calls go through their own, smaller gate. Any
per-endpoint failure is replaced by a fallback, so the result always has
exactly one suite per input endpoint.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from api_test_synth.analysis.constraints import EndpointConstraints, SchemaConstraintAnalyzer, fingerprint
from api_test_synth.analysis.dependencies import analyze_dependencies, execution_order
from api_test_synth.analysis.scoring import EndpointAnalysis, EndpointScorer, RiskLevel, fallback_analysis
from api_test_synth.cache import CacheService, safe_get, safe_set
from api_test_synth.config import GenerationConfig, GenerationStrategy, QualityTier, TestType, validate_config
from api_test_synth.exceptions import AiProviderError, GenerationError, SynthError
from api_test_synth.generator.ai import AiCaseGenerator
from api_test_synth.generator.builder import build_test_cases
from api_test_synth.generator.metrics import quality_metrics
from api_test_synth.generator.plan import build_plan
from api_test_synth.generator.prioritizer import prioritize
from api_test_synth.generator.scenarios import ScenarioCaseGenerator
from api_test_synth.llm import AiProvider, build_provider
from api_test_synth.logging_config import get_logger
from api_test_synth.models import (
    GeneratedTestCase,
    GenerationResult,
    GenerationState,
    StrategyRecommendation,
    TestSuite,
)
from api_test_synth.parser.base import ApiEndpoint, unique_operation_ids
from api_test_synth.parser.detect import load_document
from api_test_synth.parser.swagger import parse_document

logger = get_logger(__name__)

BASE_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.5

# attack payloads per corpus for each quality tier; None means the whole corpus
CORPUS_DEPTH = {
    QualityTier.MINIMAL: 1,
    QualityTier.STANDARD: 1,
    QualityTier.COMPREHENSIVE: 2,
    QualityTier.EXHAUSTIVE: None,
}

_ORDER = [
    GenerationState.IDLE,
    GenerationState.ANALYZING,
    GenerationState.STRATEGIZING,
    GenerationState.GENERATING,
    GenerationState.OPTIMIZING,
    GenerationState.VALIDATING,
    GenerationState.COMPLETED,
]
_TERMINAL = {GenerationState.COMPLETED, GenerationState.FAILED}

# failures inside one endpoint's analysis that are recovered with a fallback
RECOVERABLE_ERRORS = (SynthError, AttributeError, KeyError, TypeError, ValueError, RecursionError)


def recommend_strategy(analyses: list[EndpointAnalysis], config: GenerationConfig) -> StrategyRecommendation:
    """Aggregate per-endpoint analyses into one strategy for the batch."""
    real = [a for a in analyses if not a.fallback]
    if not real:
        return StrategyRecommendation(
            strategy=config.strategy,
            confidence=FALLBACK_CONFIDENCE,
            rationale="No endpoint could be analyzed; using the configured strategy",
        )

    average = sum(a.complexity_score for a in real) / len(real)
    risky = [a.endpoint_key for a in real if a.security_risk in (RiskLevel.HIGH, RiskLevel.CRITICAL)]
    heavy = [a.endpoint_key for a in real if a.performance_impact in (RiskLevel.HIGH, RiskLevel.CRITICAL)]

    if average > config.thresholds.advanced_average_complexity:
        strategy = GenerationStrategy.ADVANCED
        rationale = f"Average complexity {average:.1f} exceeds {config.thresholds.advanced_average_complexity:g}"
    elif risky:
        strategy = GenerationStrategy.SECURITY_FIRST
        rationale = f"High security risk on {len(risky)} endpoint(s): {', '.join(risky[:3])}"
    elif heavy:
        strategy = GenerationStrategy.PERFORMANCE_FOCUSED
        rationale = f"High performance impact on {len(heavy)} endpoint(s): {', '.join(heavy[:3])}"
    else:
        strategy = config.strategy
        rationale = f"No escalation needed (average complexity {average:.1f})"

    confidence = BASE_CONFIDENCE
    if any(a.parameter_analysis and a.parameter_analysis.path_count + a.parameter_analysis.query_count for a in real):
        confidence += 0.1
    if any(a.response_patterns for a in real):
        confidence += 0.1
    confidence *= len(real) / len(analyses)
    return StrategyRecommendation(strategy=strategy, confidence=round(min(1.0, max(0.0, confidence)), 3), rationale=rationale)


class GenerationOrchestrator:
    """Runs analysis and generation for a batch of endpoints. One run per instance."""

    def __init__(
        self,
        config: GenerationConfig | None = None,
        ai_provider: AiProvider | None = None,
        cache: CacheService | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = validate_config(config or GenerationConfig())
        self.ai_provider = ai_provider or build_provider(self.config.ai_providers)
        self.cache = cache
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.execution_id = uuid.uuid4().hex
        self.scorer = EndpointScorer(self.config.thresholds)
        self._state = GenerationState.IDLE
        self._shutdown = asyncio.Event()
        self._shutdown_requested = False
        self._started = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def state(self) -> GenerationState:
        return self._state

    def _set_state(self, state: GenerationState) -> None:
        if self._state in _TERMINAL:
            raise GenerationError("Run already finished", context={"state": self._state.value})
        if state == GenerationState.FAILED:
            self._state = state
            return
        if self._state == GenerationState.SHUTTING_DOWN:
            # phases still run to produce fallbacks, but the run stays marked as interrupted
            return
        if state != GenerationState.SHUTTING_DOWN and _ORDER.index(state) <= _ORDER.index(self._state):
            raise GenerationError(
                "Invalid state transition", context={"from": self._state.value, "to": state.value}
            )
        logger.info("[%s] %s -> %s", self.execution_id[:8], self._state.value, state.value)
        self._state = state

    def request_shutdown(self) -> None:
        """Stop starting new endpoint work; in-flight work gets the grace period.

        Safe to call from any thread or a signal handler: once a run has
        started, the event and state change are applied on the run's loop.
        """
        self._shutdown_requested = True
        loop = self._loop
        if loop is not None and not loop.is_closed() and _running_loop() is not loop:
            try:
                loop.call_soon_threadsafe(self._begin_shutdown)
                return
            except RuntimeError:
                # loop closed after the check; the run is over
                pass
        self._begin_shutdown()

    def _begin_shutdown(self) -> None:
        self._shutdown.set()
        if self._state not in _TERMINAL:
            self._set_state(GenerationState.SHUTTING_DOWN)

    def generate(self, endpoints: list[ApiEndpoint], document: dict | None = None) -> GenerationResult:
        """Synchronous wrapper around ``run``."""
        return asyncio.run(self.run(endpoints, document))

    async def generate_document(self, path: Path) -> GenerationResult:
        """Load, parse and generate for an API document. Input errors are fatal."""
        try:
            document = load_document(path)
            endpoints = parse_document(document)
        except SynthError:
            self._state = GenerationState.FAILED
            raise
        return await self.run(endpoints, document)

    async def run(self, endpoints: list[ApiEndpoint], document: dict | None = None) -> GenerationResult:
        if self._started:
            raise GenerationError("Orchestrator already used; create a new one per run")
        self._started = True
        self._loop = asyncio.get_running_loop()
        try:
            return await self._run(endpoints, document or {})
        except Exception:
            self._state = GenerationState.FAILED
            raise

    async def _run(self, endpoints: list[ApiEndpoint], document: dict) -> GenerationResult:
        # case ids are built from operation ids, so they must not repeat across endpoints
        endpoints = unique_operation_ids(endpoints)
        created_at = self.clock()
        workers = asyncio.Semaphore(self.config.max_workers)
        analyzer = SchemaConstraintAnalyzer(
            document, self.cache.constraints if self.cache else None, self.config.max_schema_depth
        )
        doc_key = fingerprint(document)

        self._set_state(GenerationState.ANALYZING)
        analyzed = await self._fan_out(
            endpoints, lambda ep: self._guarded(workers, lambda: asyncio.to_thread(self._analyze, analyzer, ep, doc_key))
        )
        for ep in endpoints:
            if ep.key not in analyzed:
                analyzed[ep.key] = (EndpointConstraints(), fallback_analysis(ep))

        self._set_state(GenerationState.STRATEGIZING)
        recommendation = recommend_strategy([analyzed[ep.key][1] for ep in endpoints], self.config)
        logger.info("Strategy %s (confidence %.2f): %s", recommendation.strategy.value,
                    recommendation.confidence, recommendation.rationale)

        self._set_state(GenerationState.GENERATING)
        dependencies = analyze_dependencies(endpoints)
        generator = ScenarioCaseGenerator(
            edge_level=self.config.edge_level,
            payloads_per_corpus=_corpus_depth(self.config.quality, recommendation.strategy),
        )
        ai = AiCaseGenerator(self.ai_provider, self.config) if self.config.ai_enabled else None

        suite_cache = self.cache.suites if self.cache else None

        def suite_key(ep: ApiEndpoint) -> tuple:
            return (ep.identity, self.config.fingerprint(), doc_key, recommendation.strategy.value)

        # cached entries are (prioritized cases, ai_enhanced), before the batch-wide budget
        selected: dict[str, tuple[tuple[GeneratedTestCase, ...], bool]] = {}
        todo = []
        for ep in endpoints:
            if analyzed[ep.key][1].fallback:
                continue
            hit = safe_get(suite_cache, suite_key(ep))
            if hit is not None:
                logger.debug("Suite cache hit for %s", ep.key)
                selected[ep.key] = hit
            else:
                todo.append(ep)

        generated = await self._fan_out(
            todo,
            lambda ep: self._guarded(
                workers,
                lambda: self._generate(ep, analyzed[ep.key], dependencies.get(ep.key, ()), generator, ai,
                                       recommendation.strategy, created_at),
            ),
        )

        self._set_state(GenerationState.OPTIMIZING)
        budget = self.config.quality.max_cases
        for ep in todo:
            if ep.key in generated:
                cases, ai_enhanced = generated[ep.key]
                selected[ep.key] = (tuple(prioritize(cases, budget)), ai_enhanced)
                safe_set(suite_cache, suite_key(ep), selected[ep.key])
        per_endpoint = {key: list(cases) for key, (cases, _) in selected.items()}
        if self.config.max_total_cases is not None:
            per_endpoint = self._apply_total_budget(per_endpoint, endpoints)

        self._set_state(GenerationState.VALIDATING)
        suites: dict[str, TestSuite] = {}
        failed = []
        for ep in endpoints:
            analysis = analyzed[ep.key][1]
            deps = dependencies.get(ep.key, ())
            if ep.key in per_endpoint:
                cases = per_endpoint[ep.key]
                suite = TestSuite(
                    endpoint_key=ep.key,
                    operation_id=ep.operation_id,
                    analysis=analysis,
                    test_cases=tuple(cases),
                    plan=build_plan(cases),
                    metrics=quality_metrics(cases, self.config.test_types, budget),
                    dependencies=deps,
                    ai_enhanced=selected[ep.key][1],
                    execution_id=self.execution_id,
                )
            else:
                suite = self.fallback_suite(ep, analysis, deps, created_at)
                failed.append(ep.key)
            suites[ep.key] = suite

        ordered_ids = [cid for ep in execution_order(endpoints) for cid in suites[ep.key].case_ids]
        all_cases = [c for ep in endpoints for c in suites[ep.key].test_cases]
        overall = build_plan(all_cases, order=ordered_ids)

        self._set_state(GenerationState.COMPLETED)
        final_state = GenerationState.SHUTTING_DOWN if self._shutdown_requested else GenerationState.COMPLETED
        return GenerationResult(
            execution_id=self.execution_id,
            state=final_state,
            recommendation=recommendation,
            suites=suites,
            plan=overall,
            failed_endpoints=tuple(failed),
        )

    def _analyze(self, analyzer: SchemaConstraintAnalyzer, ep: ApiEndpoint, doc_key: str):
        key = ("analysis", ep.identity, doc_key, self.config.fingerprint())
        hit = safe_get(self.cache.analyses if self.cache else None, key)
        if hit is not None:
            return hit
        try:
            constraints = analyzer.analyze_endpoint(ep)
            analysis = self.scorer.score(ep, constraints)
        except RECOVERABLE_ERRORS as e:
            logger.warning("Analysis of %s failed, using fallback: %s", ep.key, e)
            return EndpointConstraints(), fallback_analysis(ep)
        result = (constraints, analysis)
        safe_set(self.cache.analyses if self.cache else None, key, result)
        return result

    async def _generate(
        self,
        ep: ApiEndpoint,
        analyzed: tuple[EndpointConstraints, EndpointAnalysis],
        dependencies: tuple[str, ...],
        generator: ScenarioCaseGenerator,
        ai: AiCaseGenerator | None,
        strategy: GenerationStrategy,
        created_at: datetime,
    ) -> tuple[list[GeneratedTestCase], bool]:
        constraints, analysis = analyzed
        candidates = generator.generate(ep, constraints, analysis, self.config.test_types, dependencies)

        ai_enhanced = False
        if ai is not None and not analysis.fallback and analysis.meets_ai_threshold:
            try:
                extra = await ai.generate(ep, analysis, candidates, strategy)
            except AiProviderError as e:
                logger.warning("AI generation for %s failed, keeping deterministic cases: %s", ep.key, e)
            else:
                candidates = candidates + extra
                ai_enhanced = bool(extra)

        return build_test_cases(candidates, ep, created_at), ai_enhanced

    def fallback_suite(
        self,
        ep: ApiEndpoint,
        analysis: EndpointAnalysis | None = None,
        dependencies: tuple[str, ...] = (),
        created_at: datetime | None = None,
    ) -> TestSuite:
        """Minimal deterministic suite: the functional cases only, from an unconstrained view."""
        analysis = analysis or fallback_analysis(ep)
        cases: list[GeneratedTestCase] = []
        if TestType.FUNCTIONAL in self.config.test_types:
            generator = ScenarioCaseGenerator(edge_level=self.config.edge_level)
            candidates = generator.generate(ep, EndpointConstraints(), analysis, {TestType.FUNCTIONAL})
            cases = build_test_cases(candidates, ep, created_at or self.clock())
        return TestSuite(
            endpoint_key=ep.key,
            operation_id=ep.operation_id,
            analysis=analysis,
            test_cases=tuple(cases),
            plan=build_plan(cases),
            metrics=quality_metrics(cases, self.config.test_types, self.config.quality.max_cases),
            dependencies=dependencies,
            fallback=True,
            execution_id=self.execution_id,
        )

    def _apply_total_budget(
        self, per_endpoint: dict[str, list[GeneratedTestCase]], endpoints: list[ApiEndpoint]
    ) -> dict[str, list[GeneratedTestCase]]:
        combined = [c for ep in endpoints for c in per_endpoint.get(ep.key, [])]
        keep = {(c.endpoint_key, c.id) for c in prioritize(combined, self.config.max_total_cases)} if combined else set()
        return {key: [c for c in cases if (c.endpoint_key, c.id) in keep] for key, cases in per_endpoint.items()}

    async def _guarded(self, workers: asyncio.Semaphore, work: Callable[[], Awaitable[Any]]) -> Any:
        async with workers:
            if self._shutdown.is_set():
                return None
            return await work()

    async def _fan_out(self, endpoints: list[ApiEndpoint], start: Callable[[ApiEndpoint], Awaitable[Any]]) -> dict[str, Any]:
        """Run one task per endpoint; honour shutdown. Returns results by endpoint key.

        Endpoints whose task failed, was cancelled or never started are
        missing from the result.
        """
        tasks = {ep.key: asyncio.ensure_future(start(ep)) for ep in endpoints}
        if not tasks:
            return {}
        stop = asyncio.ensure_future(self._shutdown.wait())
        pending = set(tasks.values())
        try:
            while pending:
                done, pending = await asyncio.wait(pending | {stop}, return_when=asyncio.FIRST_COMPLETED)
                if stop in done:
                    pending.discard(stop)
                    await self._drain(pending)
                    break
                pending.discard(stop)
        finally:
            stop.cancel()

        results = {}
        for key, task in tasks.items():
            if not task.done() or task.cancelled():
                logger.warning("Work for %s interrupted by shutdown", key)
                continue
            error = task.exception()
            if error is not None:
                logger.warning("Work for %s failed: %s", key, error)
                continue
            if task.result() is not None:
                results[key] = task.result()
        return results

    async def _drain(self, pending: set[asyncio.Future]) -> None:
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=self.config.shutdown_grace_seconds)
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)


def _corpus_depth(quality: QualityTier, strategy: GenerationStrategy) -> int | None:
    depth = CORPUS_DEPTH[quality]
    if depth is not None and strategy in (GenerationStrategy.SECURITY_FIRST, GenerationStrategy.ADVANCED):
        depth *= 2
    return depth


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
