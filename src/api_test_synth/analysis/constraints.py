"""Schema constraint analysis.

Turns raw JSON-schema nodes (as found in OpenAPI documents) into
normalized DataConstraints records. A bound that the schema does not
declare stays ``None``; it is never replaced by a zero or empty default.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel, ConfigDict

from api_test_synth.cache import TTLCache, safe_get, safe_set
from api_test_synth.exceptions import AnalysisError, InputError
from api_test_synth.parser.base import ApiEndpoint
from api_test_synth.parser.detect import stringify_keys
from api_test_synth.parser.swagger import lookup_ref

DEFAULT_MAX_DEPTH = 8

_COMBINATORS = ("oneOf", "anyOf")


class DataConstraints(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str | None = None
    nullable: bool | None = None
    format: str | None = None
    pattern: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    exclusive_minimum: bool | None = None
    exclusive_maximum: bool | None = None
    multiple_of: float | None = None
    min_items: int | None = None
    max_items: int | None = None
    unique_items: bool | None = None
    items: DataConstraints | None = None
    properties: dict[str, DataConstraints] | None = None
    required_fields: tuple[str, ...] | None = None
    min_properties: int | None = None
    max_properties: int | None = None
    enum_values: tuple[Any, ...] | None = None
    example: Any = None
    ref: str | None = None
    truncated: bool = False

    @property
    def has_length_bounds(self) -> bool:
        return self.min_length is not None or self.max_length is not None

    @property
    def has_numeric_bounds(self) -> bool:
        return self.minimum is not None or self.maximum is not None

    @property
    def has_item_bounds(self) -> bool:
        return self.min_items is not None or self.max_items is not None

    @property
    def is_bounded(self) -> bool:
        return self.has_length_bounds or self.has_numeric_bounds or self.has_item_bounds

    def is_required(self, name: str) -> bool:
        return bool(self.required_fields) and name in self.required_fields

    def string_fields(self) -> list[str]:
        """Names of string-typed properties, in declaration order."""
        return [n for n, c in (self.properties or {}).items() if c.type == "string" and not c.enum_values]


DataConstraints.model_rebuild()


class EndpointConstraints(BaseModel):
    """All constraints for one endpoint: body per content type, parameters, responses."""

    model_config = ConfigDict(frozen=True)

    body: dict[str, DataConstraints] = {}
    parameters: dict[str, DataConstraints] = {}
    responses: dict[str, DataConstraints] = {}

    def primary_body(self) -> DataConstraints | None:
        if "application/json" in self.body:
            return self.body["application/json"]
        return next(iter(self.body.values()), None)


def fingerprint(node: Any) -> str:
    """Stable content hash of a JSON-like node. Mapping keys are compared as strings."""
    raw = json.dumps(stringify_keys(node), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class SchemaConstraintAnalyzer:
    """Analyzes schema nodes of one document.

    ``$ref`` pointers are resolved against ``document``. Recursion stops at
    ``max_depth`` and on any ``$ref`` already being expanded on the current
    path; both cases yield an unconstrained node flagged ``truncated``.
    Only top-level ``analyze`` results are cached, so a cache hit always
    equals a fresh depth-0 analysis.
    """

    def __init__(self, document: dict | None = None, cache: TTLCache | None = None, max_depth: int = DEFAULT_MAX_DEPTH):
        self.document = document or {}
        self.cache = cache
        self.max_depth = max_depth
        self._doc_key = fingerprint(self.document)

    def analyze(self, schema_node: Any) -> DataConstraints:
        if not isinstance(schema_node, dict) or not schema_node:
            return DataConstraints()
        key = ("constraints", self._doc_key, self.max_depth, fingerprint(schema_node))
        cached = safe_get(self.cache, key)
        if cached is not None:
            return cached
        result = self._analyze(schema_node, 0, frozenset())
        safe_set(self.cache, key, result)
        return result

    def analyze_endpoint(self, endpoint: ApiEndpoint) -> EndpointConstraints:
        body = {}
        if endpoint.request_body:
            body = {ct: self.analyze(schema) for ct, schema in endpoint.request_body.content.items()}
        return EndpointConstraints(
            body=body,
            parameters={p.name: self.analyze(p.schema_node) for p in endpoint.parameters},
            responses={code: self.analyze(r.schema_node) for code, r in endpoint.responses.items()},
        )

    def analyze_components(self) -> dict[str, DataConstraints]:
        """Analyze every shared schema (``components.schemas`` or ``definitions``)."""
        schemas = (self.document.get("components") or {}).get("schemas") or self.document.get("definitions") or {}
        prefix = "#/components/schemas/" if "components" in self.document else "#/definitions/"
        return {name: self.analyze({"$ref": prefix + name}) for name in schemas}

    def _analyze(self, node: dict, depth: int, visiting: frozenset[str]) -> DataConstraints:
        if depth > self.max_depth:
            return DataConstraints(truncated=True)

        ref_name = None
        while "$ref" in node:
            ref = node["$ref"]
            ref_name = ref.rsplit("/", 1)[-1]
            if ref in visiting:
                return DataConstraints(ref=ref_name, truncated=True)
            visiting = visiting | {ref}
            node = self._lookup(ref)

        if "allOf" in node:
            node = self._merge_all_of(node, visiting)
        chosen = self._pick_alternative(node)
        if chosen is not node and ("$ref" in chosen or "allOf" in chosen):
            return self._analyze(chosen, depth, visiting)

        return self._build(chosen, depth, visiting, ref_name)

    def _lookup(self, ref: str) -> dict:
        try:
            target = lookup_ref(self.document, ref)
        except InputError as e:
            raise AnalysisError("Cannot resolve schema reference", context={"ref": ref}, original_error=e) from e
        if not isinstance(target, dict):
            raise AnalysisError("Schema reference does not point to a schema", context={"ref": ref})
        return target

    def _merge_all_of(self, node: dict, visiting: frozenset[str]) -> dict:
        merged: dict[str, Any] = {}
        properties: dict[str, Any] = {}
        required: list[str] = []
        for member in node["allOf"]:
            seen = visiting
            while isinstance(member, dict) and "$ref" in member:
                if member["$ref"] in seen:
                    member = {}
                    break
                seen = seen | {member["$ref"]}
                member = self._lookup(member["$ref"])
            if not isinstance(member, dict):
                continue
            if "allOf" in member:
                member = self._merge_all_of(member, seen)
            properties.update(member.get("properties") or {})
            required.extend(r for r in member.get("required", []) if r not in required)
            merged.update({k: v for k, v in member.items() if k not in ("properties", "required")})

        merged.update({k: v for k, v in node.items() if k not in ("allOf", "properties", "required")})
        properties.update(node.get("properties") or {})
        required.extend(r for r in node.get("required", []) if r not in required)
        if properties:
            merged["properties"] = properties
            merged.setdefault("type", "object")
        if required:
            merged["required"] = required
        return merged

    def _pick_alternative(self, node: dict) -> dict:
        for key in _COMBINATORS:
            if key not in node:
                continue
            options = [o for o in node[key] if isinstance(o, dict)]
            nullable = any(o.get("type") == "null" for o in options)
            options = [o for o in options if o.get("type") != "null"]
            rest = {k: v for k, v in node.items() if k != key}
            if not options:
                return rest
            chosen = dict(options[0])
            chosen.update(rest)
            if nullable:
                chosen["nullable"] = True
            return chosen
        return node

    def _build(self, node: dict, depth: int, visiting: frozenset[str], ref_name: str | None) -> DataConstraints:
        declared = node.get("type")
        nullable = node.get("nullable", node.get("x-nullable"))
        if isinstance(declared, list):
            if "null" in declared:
                nullable = True
            rest = [t for t in declared if t != "null"]
            declared = rest[0] if rest else None
        if declared is None and "properties" in node:
            declared = "object"
        elif declared is None and "items" in node:
            declared = "array"

        minimum, exclusive_min = _numeric_bound(node, "minimum", "exclusiveMinimum")
        maximum, exclusive_max = _numeric_bound(node, "maximum", "exclusiveMaximum")

        items = None
        if isinstance(node.get("items"), dict):
            items = self._analyze(node["items"], depth + 1, visiting)

        properties = None
        if isinstance(node.get("properties"), dict):
            properties = {
                name: self._analyze(sub, depth + 1, visiting) if isinstance(sub, dict) else DataConstraints()
                for name, sub in node["properties"].items()
            }

        enum_values = tuple(node["enum"]) if isinstance(node.get("enum"), list) and node["enum"] else None
        required = node.get("required")

        return DataConstraints(
            type=declared,
            nullable=bool(nullable) if nullable is not None else None,
            format=node.get("format"),
            pattern=node.get("pattern"),
            min_length=node.get("minLength"),
            max_length=node.get("maxLength"),
            minimum=minimum,
            maximum=maximum,
            exclusive_minimum=exclusive_min,
            exclusive_maximum=exclusive_max,
            multiple_of=node.get("multipleOf"),
            min_items=node.get("minItems"),
            max_items=node.get("maxItems"),
            unique_items=node.get("uniqueItems"),
            items=items,
            properties=properties,
            required_fields=tuple(required) if isinstance(required, list) else None,
            min_properties=node.get("minProperties"),
            max_properties=node.get("maxProperties"),
            enum_values=enum_values,
            example=node.get("example", _first_example(node)),
            ref=ref_name,
        )


def _numeric_bound(node: dict, key: str, exclusive_key: str) -> tuple[float | None, bool | None]:
    bound = node.get(key)
    exclusive = node.get(exclusive_key)
    # OpenAPI 3.1 / JSON Schema 2019+: exclusiveMinimum is itself the bound
    if isinstance(exclusive, (int, float)) and not isinstance(exclusive, bool):
        return exclusive, True
    if bound is None:
        return None, None
    return bound, bool(exclusive) if exclusive is not None else None


def _first_example(node: dict) -> Any:
    examples = node.get("examples")
    if isinstance(examples, list) and examples:
        return examples[0]
    return None
