from pathlib import Path

from api_test_synth.analysis.constraints import SchemaConstraintAnalyzer
from api_test_synth.analysis.scoring import (
    ComplexityLevel,
    EndpointScorer,
    RiskLevel,
    bucket,
    fallback_analysis,
    is_injection_prone,
    path_tokens,
    response_patterns,
)
from api_test_synth.config import ScoringThresholds
from api_test_synth.parser.base import ApiEndpoint, Param, RequestBody
from api_test_synth.parser.detect import load_document
from api_test_synth.parser.swagger import parse_document

FIXTURES = Path(__file__).parent / "fixtures"


def _petstore():
    doc = load_document(FIXTURES / "petstore.yaml")
    analyzer = SchemaConstraintAnalyzer(doc)
    return [(ep, analyzer.analyze_endpoint(ep)) for ep in parse_document(doc)]


class TestBucket:
    def test_inclusive_upper_bounds(self):
        levels = list(ComplexityLevel)
        assert bucket(10, (10, 25, 40), levels) == ComplexityLevel.LOW
        assert bucket(11, (10, 25, 40), levels) == ComplexityLevel.MEDIUM
        assert bucket(40, (10, 25, 40), levels) == ComplexityLevel.HIGH
        assert bucket(41, (10, 25, 40), levels) == ComplexityLevel.VERY_HIGH


class TestEndpointScorer:
    def test_simple_get(self):
        ep = ApiEndpoint(method="GET", path="/health")
        a = EndpointScorer().score(ep)
        assert a.complexity_score == 2
        assert a.complexity_level == ComplexityLevel.LOW
        assert a.fallback is False
        assert a.parameter_analysis is not None
        assert a.response_patterns == ()

    def test_petstore_create(self):
        (_, _), (create, constraints), _ = _petstore()
        a = EndpointScorer().score(create, constraints)
        # body 5 + required body 3 + 2 responses 4 + auth 4 + 1 scheme 2 + POST 6 + 4 properties 4
        assert a.complexity_score == 28
        assert a.complexity_level == ComplexityLevel.HIGH
        assert a.security_score == 3
        assert a.security_risk == RiskLevel.MEDIUM
        assert "has_field:id" in a.response_patterns
        assert "field_type:name:string" in a.response_patterns

    def test_petstore_list_is_performance_sensitive(self):
        (listing, constraints), _, _ = _petstore()
        a = EndpointScorer().score(listing, constraints)
        # collection 2 + array response 3 + 1 query param 1 + unbounded array 2
        assert a.performance_score == 8
        assert a.performance_impact == RiskLevel.HIGH
        assert a.meets_ai_threshold
        assert "has_field:name" in a.response_patterns

    def test_unauthenticated_sensitive_endpoint(self):
        ep = ApiEndpoint(
            method="POST",
            path="/admin/upload",
            parameters=(Param(name="filePath", location="query", required=True, param_type="string"),),
            request_body=RequestBody(content={"application/json": None}),
        )
        a = EndpointScorer().score(ep)
        # no auth 3 + unauthenticated mutation 2 + mutating 2 + admin 3 + upload 3 + filePath 2 + body 1
        assert a.security_score == 16
        assert a.security_risk == RiskLevel.CRITICAL
        assert a.parameter_analysis.injection_prone == ("filePath",)

    def test_custom_thresholds(self):
        ep = ApiEndpoint(method="GET", path="/health")
        a = EndpointScorer(ScoringThresholds(complexity=(1, 2, 3))).score(ep)
        assert a.complexity_level == ComplexityLevel.MEDIUM

    def test_scoring_is_deterministic(self):
        (listing, constraints), _, _ = _petstore()
        scorer = EndpointScorer()
        assert scorer.score(listing, constraints) == scorer.score(listing, constraints)


class TestFallbackAnalysis:
    def test_fallback_marks_absence(self):
        a = fallback_analysis(ApiEndpoint(method="GET", path="/x"))
        assert a.fallback is True
        assert a.parameter_analysis is None
        assert a.response_patterns is None
        assert a.complexity_level == ComplexityLevel.LOW
        assert not a.meets_ai_threshold


class TestHelpers:
    def test_path_tokens_skip_parameters(self):
        assert path_tokens("/api/v1/users/{userId}/export") == ["api", "v1", "users", "export"]

    def test_injection_prone_names(self):
        assert is_injection_prone("q")
        assert is_injection_prone("searchTerm")
        assert is_injection_prone("file_path")
        assert not is_injection_prone("quantity")
        assert not is_injection_prone("name")

    def test_response_patterns_none(self):
        assert response_patterns(None) == []
