"""OpenAPI / Swagger document parser.

Parses OpenAPI 3.x and Swagger 2.0 documents into ApiEndpoint models.
Schemas are kept raw (``$ref`` included); the constraint analyzer
resolves them later against the same document.
"""

from pathlib import Path
from typing import Any

from api_test_synth.exceptions import InputError
from api_test_synth.parser.base import (
    ApiEndpoint,
    Param,
    RequestBody,
    ResponseSpec,
    derive_operation_id,
    unique_operation_ids,
)
from api_test_synth.parser.detect import detect_format, load_document, validate_document

HTTP_METHODS = ("get", "post", "put", "delete", "patch", "head", "options", "trace")

MAX_REF_HOPS = 32


def parse_openapi(file_path: Path) -> list[ApiEndpoint]:
    """Parse an OpenAPI/Swagger file into a list of ApiEndpoint."""
    return parse_document(load_document(file_path))


def parse_document(doc: dict) -> list[ApiEndpoint]:
    """Parse an already-loaded document. Endpoints keep document order."""
    validate_document(doc)
    swagger2 = detect_format(doc) == "swagger2"

    endpoints = []
    for path, path_item in doc["paths"].items():
        path_item = resolve(doc, path_item)
        shared_params = path_item.get("parameters", [])

        for method, operation in path_item.items():
            if method.lower() not in HTTP_METHODS:
                continue
            if not isinstance(operation, dict):
                raise InputError("Operation is not a mapping", context={"path": path, "method": method})

            raw_params = _merge_parameters(doc, shared_params, operation.get("parameters", []))
            if swagger2:
                params = [_parse_swagger2_param(p) for p in raw_params if p.get("in") not in ("body", "formData")]
                request_body = _swagger2_request_body(doc, operation, raw_params)
                responses = _parse_responses(doc, operation.get("responses", {}), _produces(doc, operation))
            else:
                params = [_parse_param(doc, p) for p in raw_params]
                request_body = _parse_request_body(doc, operation.get("requestBody"))
                responses = _parse_responses(doc, operation.get("responses", {}))

            endpoints.append(
                ApiEndpoint(
                    method=method.upper(),
                    path=path,
                    operation_id=operation.get("operationId") or derive_operation_id(method, path),
                    summary=operation.get("summary", ""),
                    parameters=tuple(params),
                    request_body=request_body,
                    responses=responses,
                    security_schemes=_security_schemes(doc, operation),
                    tags=tuple(operation.get("tags", [])),
                    deprecated=bool(operation.get("deprecated", False)),
                )
            )

    return unique_operation_ids(endpoints)


def resolve(doc: dict, node: Any) -> Any:
    """Follow a local ``$ref`` chain (``#/components/...``) to its target node."""
    hops = 0
    while isinstance(node, dict) and "$ref" in node:
        node = lookup_ref(doc, node["$ref"])
        hops += 1
        if hops > MAX_REF_HOPS:
            raise InputError("$ref chain too long or circular")
    return node


def lookup_ref(doc: dict, ref: str) -> Any:
    if not ref.startswith("#/"):
        raise InputError("Only local $ref pointers are supported", context={"ref": ref})
    node: Any = doc
    for token in ref[2:].split("/"):
        token = token.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or token not in node:
            raise InputError("Unresolvable $ref", context={"ref": ref})
        node = node[token]
    return node


def _merge_parameters(doc: dict, shared: list, own: list) -> list[dict]:
    # operation-level parameters override path-level ones with the same (name, in)
    merged: dict[tuple[str, str], dict] = {}
    for raw in list(shared) + list(own):
        p = resolve(doc, raw)
        if not isinstance(p, dict) or "name" not in p:
            raise InputError("Parameter without a name")
        merged[(p["name"], p.get("in", "query"))] = p
    return list(merged.values())


def _parse_param(doc: dict, p: dict) -> Param:
    schema = p.get("schema") or {}
    if not schema and "content" in p:
        first = next(iter(p["content"].values()), {}) or {}
        schema = first.get("schema") or {}
    resolved = resolve(doc, schema)
    location = p.get("in", "query")
    return Param(
        name=p["name"],
        location=location,
        required=bool(p.get("required", location == "path")),
        param_type=_schema_type(resolved),
        description=p.get("description", ""),
        schema_node=schema,
    )


def _parse_swagger2_param(p: dict) -> Param:
    # Swagger 2.0 puts the schema keywords on the parameter itself
    schema = {k: v for k, v in p.items() if k not in ("name", "in", "required", "description", "collectionFormat")}
    location = p.get("in", "query")
    return Param(
        name=p["name"],
        location=location,
        required=bool(p.get("required", location == "path")),
        param_type=_schema_type(schema),
        description=p.get("description", ""),
        schema_node=schema,
    )


def _parse_request_body(doc: dict, body: dict | None) -> RequestBody | None:
    if not body:
        return None
    body = resolve(doc, body)
    content = {ct: (media or {}).get("schema") for ct, media in (body.get("content") or {}).items()}
    return RequestBody(
        required=bool(body.get("required", False)),
        description=body.get("description", ""),
        content=content,
    )


def _swagger2_request_body(doc: dict, operation: dict, params: list[dict]) -> RequestBody | None:
    consumes = operation.get("consumes") or doc.get("consumes") or ["application/json"]
    body_param = next((p for p in params if p.get("in") == "body"), None)
    if body_param is not None:
        schema = body_param.get("schema")
        return RequestBody(
            required=bool(body_param.get("required", False)),
            description=body_param.get("description", ""),
            content={ct: schema for ct in consumes},
        )

    form = [p for p in params if p.get("in") == "formData"]
    if not form:
        return None
    schema: dict[str, Any] = {"type": "object", "properties": {}, "required": []}
    for p in form:
        schema["properties"][p["name"]] = {k: v for k, v in p.items() if k not in ("name", "in", "required")}
        if p.get("required"):
            schema["required"].append(p["name"])
    form_types = [ct for ct in consumes if "form" in ct] or ["application/x-www-form-urlencoded"]
    return RequestBody(
        required=bool(schema["required"]),
        content={ct: schema for ct in form_types},
    )


def _produces(doc: dict, operation: dict) -> list[str]:
    return operation.get("produces") or doc.get("produces") or ["application/json"]


def _parse_responses(doc: dict, responses: dict, produces: list[str] | None = None) -> dict[str, ResponseSpec]:
    result = {}
    for status_code, resp in responses.items():
        resp = resolve(doc, resp) or {}
        if produces is not None:
            schema = resp.get("schema")
            content = {ct: schema for ct in produces} if schema else {}
        else:
            content = {ct: (media or {}).get("schema") for ct, media in (resp.get("content") or {}).items()}
        result[str(status_code)] = ResponseSpec(
            status_code=str(status_code),
            description=resp.get("description", ""),
            content=content,
        )
    return result


def _security_schemes(doc: dict, operation: dict) -> tuple[str, ...]:
    """Scheme names required by the operation. ``security: []`` disables auth.

    A requirement list containing an empty object makes auth optional, which
    counts as not required.
    """
    requirements = operation["security"] if "security" in operation else doc.get("security", [])
    if not requirements or any(not req for req in requirements):
        return ()
    names = set()
    for req in requirements:
        names.update(req.keys())
    return tuple(sorted(names))


def _schema_type(schema: dict) -> str:
    declared = schema.get("type", "string")
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), "string")
    return declared
