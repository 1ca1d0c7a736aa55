"""CRUD dependency analysis between endpoints of the same resource."""

from api_test_synth.parser.base import ApiEndpoint

METHOD_PRIORITY = {"POST": 1, "GET": 2, "PUT": 3, "PATCH": 3, "DELETE": 4}
DEFAULT_PRIORITY = 5


def resource_group(endpoint: ApiEndpoint) -> str:
    """First tag, else the first literal path segment, else 'default'."""
    if endpoint.tags:
        return endpoint.tags[0].lower().replace(" ", "_")
    for segment in endpoint.path.strip("/").split("/"):
        if segment and not segment.startswith("{"):
            return segment.lower()
    return "default"


def group_by_resource(endpoints: list[ApiEndpoint]) -> dict[str, list[ApiEndpoint]]:
    groups: dict[str, list[ApiEndpoint]] = {}
    for ep in endpoints:
        groups.setdefault(resource_group(ep), []).append(ep)
    return groups


def dependency_priority(endpoint: ApiEndpoint) -> int:
    return METHOD_PRIORITY.get(endpoint.method, DEFAULT_PRIORITY)


def analyze_dependencies(endpoints: list[ApiEndpoint]) -> dict[str, tuple[str, ...]]:
    """Map each endpoint key to the keys of endpoints that must run before it.

    Within a resource group, PUT/PATCH/DELETE depend on the collection POST
    (a POST whose path has no parameter), and any non-POST item endpoint
    (path with a parameter) depends on the collection GET.
    """
    result: dict[str, tuple[str, ...]] = {}
    for members in group_by_resource(endpoints).values():
        create = next((e for e in members if e.method == "POST" and "{" not in e.path), None)
        listing = next((e for e in members if e.method == "GET" and "{" not in e.path), None)
        for ep in members:
            deps = []
            if create is not None and ep.method in ("PUT", "PATCH", "DELETE"):
                deps.append(create.key)
            if listing is not None and ep.method != "POST" and "{" in ep.path:
                deps.append(listing.key)
            result[ep.key] = tuple(d for d in deps if d != ep.key)
    return result


def execution_order(endpoints: list[ApiEndpoint]) -> list[ApiEndpoint]:
    """Endpoints ordered by resource group (first appearance), then dependency priority.

    Stable: equal priorities keep document order.
    """
    order = []
    for members in group_by_resource(endpoints).values():
        order.extend(sorted(members, key=dependency_priority))
    return order
