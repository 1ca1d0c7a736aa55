"""Skill loader: selects prompt knowledge modules based on endpoint characteristics."""

from pathlib import Path

from api_test_synth.analysis.scoring import PAGINATION_PARAM_NAMES, EndpointAnalysis, RiskLevel
from api_test_synth.config import GenerationStrategy
from api_test_synth.parser.base import ApiEndpoint

SKILLS_DIR = Path(__file__).parent


def select_skills(
    endpoint: ApiEndpoint,
    analysis: EndpointAnalysis | None = None,
    strategy: GenerationStrategy = GenerationStrategy.COMPREHENSIVE,
) -> list[str]:
    """Select which skill files to load based on endpoint features and strategy."""
    skills = ["base.md"]

    if endpoint.parameters:
        skills.append("param-validation.md")

    if _has_pagination_params(endpoint):
        skills.append("pagination.md")

    if any("multipart" in ct for ct in endpoint.content_types):
        skills.append("file-upload.md")

    if endpoint.requires_authentication:
        skills.append("auth-testing.md")

    if endpoint.method in ("PUT", "DELETE"):
        skills.append("idempotency.md")

    high_risk = analysis is not None and analysis.security_risk.rank >= RiskLevel.HIGH.rank
    if high_risk or strategy in (GenerationStrategy.SECURITY_FIRST, GenerationStrategy.ADVANCED):
        skills.append("security-testing.md")

    heavy = analysis is not None and analysis.performance_impact.rank >= RiskLevel.HIGH.rank
    if heavy or strategy == GenerationStrategy.PERFORMANCE_FOCUSED:
        skills.append("performance.md")

    return skills


def load_skill_content(skill_names: list[str]) -> str:
    """Load and concatenate the content of the given skill files."""
    parts = []
    for name in skill_names:
        path = SKILLS_DIR / name
        if path.exists():
            parts.append(path.read_text(encoding="utf-8"))
    return "\n\n---\n\n".join(parts)


def _has_pagination_params(endpoint: ApiEndpoint) -> bool:
    param_names = {p.name.lower() for p in endpoint.parameters}
    return bool(param_names & PAGINATION_PARAM_NAMES)
