"""CLI entry point for api-test-synth."""

import asyncio
import json
from pathlib import Path

import click
import yaml

from api_test_synth.analysis.constraints import SchemaConstraintAnalyzer
from api_test_synth.analysis.scoring import EndpointScorer
from api_test_synth.cache import CacheService
from api_test_synth.config import (
    EdgeCaseLevel,
    GenerationConfig,
    GenerationStrategy,
    QualityTier,
    TestType,
    build_config,
    load_config,
)
from api_test_synth.exceptions import ConfigError, InputError
from api_test_synth.orchestrator import GenerationOrchestrator
from api_test_synth.parser.detect import load_document
from api_test_synth.parser.swagger import parse_document


def _choices(enum) -> click.Choice:
    return click.Choice([e.value for e in enum])


def _load(doc_path: Path):
    document = load_document(doc_path)
    return document, parse_document(document)


@click.group()
def main():
    """API Test Synth: derive structured test suites from OpenAPI/Swagger documents."""
    pass


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, path_type=Path))
def analyze(doc_path: Path):
    """Print complexity, security and performance scores per endpoint."""
    try:
        document, endpoints = _load(doc_path)
    except InputError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Found {len(endpoints)} endpoints.")
    analyzer = SchemaConstraintAnalyzer(document)
    scorer = EndpointScorer()
    for ep in endpoints:
        a = scorer.score(ep, analyzer.analyze_endpoint(ep))
        click.echo(
            f"{ep.key}: complexity {a.complexity_score} ({a.complexity_level.value}), "
            f"security {a.security_score} ({a.security_risk.value}), "
            f"performance {a.performance_score} ({a.performance_impact.value})"
        )


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output file for the generation result.")
@click.option("--config", "config_path", default=None, type=click.Path(path_type=Path), help="YAML config file.")
@click.option("--strategy", default=None, type=_choices(GenerationStrategy), help="Generation strategy.")
@click.option("--quality", default=None, type=_choices(QualityTier), help="Quality tier (cases per endpoint).")
@click.option("--edge-level", default=None, type=_choices(EdgeCaseLevel), help="Edge case depth.")
@click.option("--test-type", "test_types", multiple=True, type=_choices(TestType), help="Enabled test type; repeatable.")
@click.option("--ai-provider", "ai_providers", multiple=True, help="litellm model name; repeatable, tried in order.")
@click.option("--workers", default=None, type=int, help="Maximum concurrent endpoint workers.")
@click.option("--format", "fmt", default="json", type=click.Choice(["json", "yaml"]), help="Output format.")
def generate(
    doc_path: Path,
    output: Path,
    config_path: Path | None,
    strategy: str | None,
    quality: str | None,
    edge_level: str | None,
    test_types: tuple[str, ...],
    ai_providers: tuple[str, ...],
    workers: int | None,
    fmt: str,
):
    """Generate test suites and an execution plan from an API document."""
    overrides = {
        "strategy": strategy,
        "quality": quality,
        "edge_level": edge_level,
        "test_types": list(test_types) or None,
        "ai_providers": list(ai_providers) or None,
        "max_workers": workers,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        config = load_config(config_path, **overrides) if config_path else build_config(**overrides)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Parsing {doc_path}...")
    try:
        document, endpoints = _load(doc_path)
    except InputError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    click.echo(f"Found {len(endpoints)} endpoints.")

    result = _run(config, endpoints, document)

    data = result.model_dump(mode="json")
    if fmt == "yaml":
        text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(data, indent=2, ensure_ascii=False)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")

    total = len(result.plan.case_ids)
    click.echo(f"Strategy: {result.recommendation.strategy.value} ({result.recommendation.rationale})")
    click.echo(f"Generated {total} test cases for {len(result.suites)} endpoints.")
    if result.failed_endpoints:
        click.echo(f"Fallback suites for: {', '.join(result.failed_endpoints)}")
    click.echo(f"Result saved to {output}")


def _run(config: GenerationConfig, endpoints, document):
    cache = CacheService(config.cache_ttl_seconds, auto_purge_interval_seconds=None)
    try:
        orchestrator = GenerationOrchestrator(config, cache=cache)
        return asyncio.run(orchestrator.run(endpoints, document))
    finally:
        cache.shutdown()
