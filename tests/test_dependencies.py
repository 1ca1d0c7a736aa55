from api_test_synth.analysis.dependencies import (
    analyze_dependencies,
    execution_order,
    group_by_resource,
    resource_group,
)
from api_test_synth.parser.base import ApiEndpoint


def _ep(method: str, path: str, tags=()) -> ApiEndpoint:
    return ApiEndpoint(method=method, path=path, tags=tags)


CRUD = [
    _ep("DELETE", "/pets/{id}"),
    _ep("GET", "/pets/{id}"),
    _ep("PUT", "/pets/{id}"),
    _ep("GET", "/pets"),
    _ep("POST", "/pets"),
]


class TestResourceGroup:
    def test_first_tag_wins(self):
        assert resource_group(_ep("GET", "/v1/pets", tags=("Pet Store", "other"))) == "pet_store"

    def test_first_literal_segment(self):
        assert resource_group(_ep("GET", "/{tenant}/Orders/{id}")) == "orders"

    def test_root_path(self):
        assert resource_group(_ep("GET", "/")) == "default"

    def test_grouping_keeps_first_appearance_order(self):
        groups = group_by_resource([_ep("GET", "/b"), _ep("GET", "/a"), _ep("POST", "/b")])
        assert list(groups) == ["b", "a"]
        assert len(groups["b"]) == 2


class TestAnalyzeDependencies:
    def test_crud_dependencies(self):
        deps = analyze_dependencies(CRUD)
        assert deps["POST /pets"] == ()
        assert deps["GET /pets"] == ()
        assert deps["GET /pets/{id}"] == ("GET /pets",)
        assert deps["PUT /pets/{id}"] == ("POST /pets", "GET /pets")
        assert deps["DELETE /pets/{id}"] == ("POST /pets", "GET /pets")

    def test_no_collection_endpoints(self):
        deps = analyze_dependencies([_ep("DELETE", "/jobs/{id}")])
        assert deps == {"DELETE /jobs/{id}": ()}

    def test_groups_are_independent(self):
        deps = analyze_dependencies([_ep("POST", "/pets"), _ep("DELETE", "/orders/{id}")])
        assert deps["DELETE /orders/{id}"] == ()


class TestExecutionOrder:
    def test_crud_order(self):
        keys = [ep.key for ep in execution_order(CRUD)]
        assert keys == ["POST /pets", "GET /pets/{id}", "GET /pets", "PUT /pets/{id}", "DELETE /pets/{id}"]

    def test_unknown_methods_last(self):
        keys = [ep.key for ep in execution_order([_ep("HEAD", "/pets"), _ep("GET", "/pets")])]
        assert keys == ["GET /pets", "HEAD /pets"]

    def test_groups_in_first_appearance_order(self):
        keys = [ep.key for ep in execution_order([_ep("DELETE", "/b/{id}"), _ep("POST", "/a"), _ep("POST", "/b")])]
        assert keys == ["POST /b", "DELETE /b/{id}", "POST /a"]
