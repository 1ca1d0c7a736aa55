from api_test_synth.analysis.scoring import EndpointScorer
from api_test_synth.config import GenerationStrategy
from api_test_synth.parser.base import ApiEndpoint, Param, RequestBody
from api_test_synth.skills.loader import load_skill_content, select_skills


def _make_endpoint(**overrides) -> ApiEndpoint:
    defaults = dict(method="GET", path="/api/test", summary="Test")
    defaults.update(overrides)
    return ApiEndpoint(**defaults)


class TestSelectSkills:
    def test_always_includes_base(self):
        assert select_skills(_make_endpoint()) == ["base.md"]

    def test_params_include_param_validation(self):
        ep = _make_endpoint(parameters=(Param(name="q", location="query", required=False, param_type="string"),))
        assert "param-validation.md" in select_skills(ep)

    def test_pagination_detected(self):
        ep = _make_endpoint(
            parameters=(
                Param(name="page", location="query", required=False, param_type="integer"),
                Param(name="size", location="query", required=False, param_type="integer"),
            )
        )
        assert "pagination.md" in select_skills(ep)

    def test_file_upload_detected(self):
        ep = _make_endpoint(method="POST", request_body=RequestBody(content={"multipart/form-data": None}))
        assert "file-upload.md" in select_skills(ep)

    def test_auth_and_idempotency(self):
        ep = _make_endpoint(method="PUT", security_schemes=("bearerAuth",))
        skills = select_skills(ep)
        assert "auth-testing.md" in skills
        assert "idempotency.md" in skills

    def test_security_strategy_adds_security_skill(self):
        skills = select_skills(_make_endpoint(), strategy=GenerationStrategy.SECURITY_FIRST)
        assert "security-testing.md" in skills

    def test_high_risk_analysis_adds_security_skill(self):
        ep = _make_endpoint(method="POST", path="/admin/export", request_body=RequestBody(content={"application/json": None}))
        analysis = EndpointScorer().score(ep)
        assert "security-testing.md" in select_skills(ep, analysis)

    def test_performance_strategy(self):
        skills = select_skills(_make_endpoint(), strategy=GenerationStrategy.PERFORMANCE_FOCUSED)
        assert "performance.md" in skills


class TestLoadSkillContent:
    def test_load_base_skill(self):
        content = load_skill_content(["base.md"])
        assert len(content) > 0
        assert "test" in content.lower()

    def test_load_multiple_skills(self):
        content = load_skill_content(["base.md", "param-validation.md"])
        assert "---" in content

    def test_missing_skill_skipped(self):
        assert load_skill_content(["nonexistent.md"]) == ""
