"""Data models for parsed API endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict

MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")


class Param(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    location: str  # path, query, header, cookie
    required: bool
    param_type: str
    description: str = ""
    schema_node: dict[str, Any] = {}


class RequestBody(BaseModel):
    """Request body descriptor. ``content`` maps content type to its raw schema."""

    model_config = ConfigDict(frozen=True)

    required: bool = False
    description: str = ""
    content: dict[str, dict[str, Any] | None] = {}

    @property
    def content_types(self) -> list[str]:
        return list(self.content)


class ResponseSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: str
    description: str = ""
    content: dict[str, dict[str, Any] | None] = {}

    @property
    def schema_node(self) -> dict[str, Any] | None:
        """First declared schema, JSON preferred."""
        if self.content.get("application/json"):
            return self.content["application/json"]
        for schema in self.content.values():
            if schema:
                return schema
        return None


class ApiEndpoint(BaseModel):
    """One (method, path) operation of an API document.

    Identity is ``(method, path, operation_id)``; ``key`` is the short
    ``"METHOD /path"`` form used to index suites.
    """

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    operation_id: str = ""
    summary: str = ""
    parameters: tuple[Param, ...] = ()
    request_body: RequestBody | None = None
    responses: dict[str, ResponseSpec] = {}
    security_schemes: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    deprecated: bool = False

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.method, self.path, self.operation_id)

    @property
    def has_parameters(self) -> bool:
        return bool(self.parameters)

    @property
    def has_request_body(self) -> bool:
        return self.request_body is not None

    @property
    def requires_authentication(self) -> bool:
        return bool(self.security_schemes)

    @property
    def is_mutating(self) -> bool:
        return self.method in MUTATING_METHODS

    @property
    def content_types(self) -> list[str]:
        if self.request_body and self.request_body.content:
            return self.request_body.content_types
        return []

    @property
    def path_parameters(self) -> list[Param]:
        return [p for p in self.parameters if p.location == "path"]

    @property
    def query_parameters(self) -> list[Param]:
        return [p for p in self.parameters if p.location == "query"]

    @property
    def success_status(self) -> int:
        """Lowest declared 2xx status, else 200."""
        codes = sorted(int(c) for c in self.responses if c.isdigit() and c.startswith("2"))
        if codes:
            return codes[0]
        return 200

    def success_response(self) -> ResponseSpec | None:
        return self.responses.get(str(self.success_status))


def derive_operation_id(method: str, path: str) -> str:
    """Build a stable operationId from method and path: GET /pets/{petId} -> get_pets_by_pet_id."""
    parts = [method.lower()]
    for segment in path.strip("/").split("/"):
        if not segment:
            continue
        if segment.startswith("{") and segment.endswith("}"):
            parts.append("by")
            segment = segment[1:-1]
        parts.append(_snake(segment))
    return "_".join(p for p in parts if p)


def _snake(text: str) -> str:
    out = []
    for i, ch in enumerate(text):
        if ch.isupper() and i > 0 and not text[i - 1].isupper():
            out.append("_")
        out.append(ch.lower() if ch.isalnum() else "_")
    return "".join(out).strip("_")


def unique_operation_ids(endpoints: list[ApiEndpoint]) -> list[ApiEndpoint]:
    """Give every endpoint a distinct, non-empty operation id.

    Missing ids are derived from method and path. Repeats keep the first
    occurrence as is and suffix later ones with ``_2``, ``_3``, ... in
    document order, skipping any suffix the document already uses.
    """
    wanted = [ep.operation_id or derive_operation_id(ep.method, ep.path) for ep in endpoints]
    taken = set(wanted)
    seen: set[str] = set()
    result = []
    for ep, op_id in zip(endpoints, wanted):
        if op_id in seen:
            n = 2
            while f"{op_id}_{n}" in taken:
                n += 1
            op_id = f"{op_id}_{n}"
            taken.add(op_id)
        seen.add(op_id)
        if op_id != ep.operation_id:
            ep = ep.model_copy(update={"operation_id": op_id})
        result.append(ep)
    return result
