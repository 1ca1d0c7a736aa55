import json
from pathlib import Path

import pytest

from api_test_synth.exceptions import InputError
from api_test_synth.parser.base import ApiEndpoint, unique_operation_ids
from api_test_synth.parser.detect import detect_format, load_document, stringify_keys, validate_document
from api_test_synth.parser.swagger import lookup_ref, parse_document, parse_openapi, resolve

FIXTURES = Path(__file__).parent / "fixtures"


class TestDetectFormat:
    def test_detect_openapi3(self):
        assert detect_format(load_document(FIXTURES / "petstore.yaml")) == "openapi3"

    def test_detect_swagger2(self):
        assert detect_format(load_document(FIXTURES / "swagger2.json")) == "swagger2"

    def test_detect_unknown(self):
        assert detect_format({"info": {}}) == "unknown"
        assert detect_format(["not", "a", "mapping"]) == "unknown"


class TestLoadDocument:
    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError):
            load_document(tmp_path / "missing.yaml")

    def test_not_openapi(self, tmp_path):
        f = tmp_path / "doc.md"
        f.write_text("# API Docs\nSome text")
        with pytest.raises(InputError):
            load_document(f)

    def test_invalid_yaml(self, tmp_path):
        f = tmp_path / "bad.yaml"
        f.write_text("openapi: [3.0\n  paths: {")
        with pytest.raises(InputError):
            load_document(f)

    def test_missing_paths(self):
        with pytest.raises(InputError):
            validate_document({"openapi": "3.0.0"})

    def test_path_item_must_be_mapping(self):
        with pytest.raises(InputError):
            validate_document({"openapi": "3.0.0", "paths": {"/pets": "nope"}})


class TestNumericStatusKeys:
    def test_status_keys_become_strings(self):
        doc = load_document(FIXTURES / "numeric_status.yaml")
        assert list(doc["paths"]["/orders"]["get"]["responses"]) == ["200", "default"]

    def test_parse_numeric_status_document(self):
        get_orders, create_order = parse_openapi(FIXTURES / "numeric_status.yaml")
        assert set(get_orders.responses) == {"200", "default"}
        assert create_order.success_status == 201


class TestOpenApiParser:
    def test_parse_petstore_endpoints_count(self):
        endpoints = parse_openapi(FIXTURES / "petstore.yaml")
        assert [e.key for e in endpoints] == ["GET /pets", "POST /pets", "GET /pets/{petId}"]

    def test_parse_get_pets(self):
        endpoints = parse_openapi(FIXTURES / "petstore.yaml")
        get_pets = endpoints[0]
        assert get_pets.summary == "List all pets"
        assert get_pets.operation_id == "listPets"
        assert len(get_pets.parameters) == 1
        assert get_pets.parameters[0].name == "limit"
        assert get_pets.parameters[0].required is False
        assert get_pets.parameters[0].param_type == "integer"
        assert get_pets.requires_authentication is False

    def test_parse_post_pets_has_body(self):
        endpoints = parse_openapi(FIXTURES / "petstore.yaml")
        post_pets = endpoints[1]
        assert post_pets.request_body is not None
        assert post_pets.request_body.required is True
        assert post_pets.content_types == ["application/json"]
        assert post_pets.request_body.content["application/json"] == {"$ref": "#/components/schemas/NewPet"}
        assert post_pets.security_schemes == ("bearerAuth",)
        assert post_pets.success_status == 201

    def test_path_level_params_are_merged(self):
        endpoints = parse_openapi(FIXTURES / "petstore.yaml")
        get_pet = endpoints[2]
        assert get_pet.parameters[0].name == "petId"
        assert get_pet.parameters[0].location == "path"
        assert get_pet.parameters[0].required is True

    def test_operation_param_overrides_path_param(self):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/items/{id}": {
                    "parameters": [{"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}],
                    "get": {
                        "parameters": [{"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}}],
                        "responses": {"200": {"description": "ok"}},
                    },
                }
            },
        }
        [ep] = parse_document(doc)
        assert len(ep.parameters) == 1
        assert ep.parameters[0].param_type == "integer"

    def test_non_method_keys_ignored(self):
        doc = {
            "openapi": "3.0.0",
            "paths": {"/x": {"summary": "s", "x-extra": {}, "get": {"responses": {}}}},
        }
        endpoints = parse_document(doc)
        assert [e.method for e in endpoints] == ["GET"]
        assert endpoints[0].operation_id == "get_x"

    def test_global_security_and_override(self):
        doc = {
            "openapi": "3.0.0",
            "security": [{"apiKey": []}],
            "paths": {
                "/a": {"get": {"responses": {}}},
                "/b": {"get": {"security": [], "responses": {}}},
                "/c": {"get": {"security": [{}, {"apiKey": []}], "responses": {}}},
            },
        }
        a, b, c = parse_document(doc)
        assert a.security_schemes == ("apiKey",)
        assert b.security_schemes == ()
        assert c.security_schemes == ()

    def test_parses_from_json_string(self, tmp_path):
        f = tmp_path / "api.json"
        f.write_text(json.dumps({"openapi": "3.1.0", "paths": {"/ping": {"head": {"responses": {"200": {}}}}}}))
        [ep] = parse_openapi(f)
        assert ep.method == "HEAD"


class TestSwagger2Parser:
    def test_body_parameter_becomes_request_body(self):
        endpoints = parse_openapi(FIXTURES / "swagger2.json")
        create = endpoints[0]
        assert create.parameters == ()
        assert create.content_types == ["application/json"]
        assert create.request_body.content["application/json"]["required"] == ["email"]
        assert create.responses["201"].schema_node["properties"]["id"]["type"] == "integer"

    def test_form_data_uses_operation_consumes(self):
        endpoints = parse_openapi(FIXTURES / "swagger2.json")
        upload = endpoints[1]
        assert upload.operation_id == "put_users_by_user_id_avatar"
        assert upload.content_types == ["multipart/form-data"]
        assert upload.request_body.content["multipart/form-data"]["required"] == ["file"]
        assert [p.name for p in upload.parameters] == ["userId"]
        assert upload.parameters[0].param_type == "integer"


class TestRefResolution:
    def test_lookup_escaped_pointer(self):
        doc = {"paths": {"/a/b": {"get": {"x": 1}}}}
        assert lookup_ref(doc, "#/paths/~1a~1b/get") == {"x": 1}

    def test_external_ref_rejected(self):
        with pytest.raises(InputError):
            lookup_ref({}, "other.yaml#/components/schemas/Pet")

    def test_unresolvable_ref(self):
        with pytest.raises(InputError):
            lookup_ref({"components": {}}, "#/components/schemas/Missing")

    def test_circular_ref_chain(self):
        doc = {"components": {"schemas": {"A": {"$ref": "#/components/schemas/B"}, "B": {"$ref": "#/components/schemas/A"}}}}
        with pytest.raises(InputError):
            resolve(doc, {"$ref": "#/components/schemas/A"})


class TestOperationIds:
    def test_declared_duplicates_get_suffixes(self):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/a": {"get": {"operationId": "fetch", "responses": {}}},
                "/b": {"get": {"operationId": "fetch", "responses": {}}},
                "/c": {"get": {"operationId": "fetch", "responses": {}}},
            },
        }
        assert [e.operation_id for e in parse_document(doc)] == ["fetch", "fetch_2", "fetch_3"]

    def test_colliding_derived_ids(self):
        doc = {
            "openapi": "3.0.0",
            "paths": {
                "/user-profile": {"get": {"responses": {}}},
                "/user_profile": {"get": {"responses": {}}},
            },
        }
        assert [e.operation_id for e in parse_document(doc)] == ["get_user_profile", "get_user_profile_2"]

    def test_suffix_skips_ids_already_declared(self):
        endpoints = [
            ApiEndpoint(method="GET", path="/a", operation_id="fetch"),
            ApiEndpoint(method="GET", path="/b", operation_id="fetch"),
            ApiEndpoint(method="GET", path="/c", operation_id="fetch_2"),
        ]
        assert [e.operation_id for e in unique_operation_ids(endpoints)] == ["fetch", "fetch_3", "fetch_2"]

    def test_missing_ids_are_derived(self):
        [ep] = unique_operation_ids([ApiEndpoint(method="GET", path="/pets/{petId}")])
        assert ep.operation_id == "get_pets_by_pet_id"


class TestStringifyKeys:
    def test_nested_mappings_and_lists(self):
        node = {200: {"content": [{1: "a"}]}, "default": None}
        assert stringify_keys(node) == {"200": {"content": [{"1": "a"}]}, "default": None}
