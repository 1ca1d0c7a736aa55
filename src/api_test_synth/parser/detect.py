"""Load an API document and detect its format."""

import json
from pathlib import Path
from typing import Any

import yaml

from api_test_synth.exceptions import InputError


def detect_format(doc: Any) -> str:
    """Detect the format of a loaded document.

    Returns: 'openapi3', 'swagger2', or 'unknown'.
    """
    if not isinstance(doc, dict):
        return "unknown"
    if str(doc.get("openapi", "")).startswith("3"):
        return "openapi3"
    if str(doc.get("swagger", "")).startswith("2"):
        return "swagger2"
    return "unknown"


def load_document(file_path: Path) -> dict:
    """Read a JSON or YAML OpenAPI/Swagger file and check its top-level shape.

    Raises InputError when the file cannot be read, is not valid JSON/YAML,
    is not an OpenAPI 3.x / Swagger 2.0 document, or has no ``paths`` mapping.
    """
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise InputError("Cannot read API document", context={"path": str(file_path)}, original_error=e) from e

    # YAML is a superset of JSON, but JSON first gives better error positions
    try:
        doc = json.loads(text)
    except ValueError:
        try:
            doc = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise InputError("API document is neither JSON nor YAML", context={"path": str(file_path)}, original_error=e) from e

    doc = stringify_keys(doc)
    validate_document(doc)
    return doc


def validate_document(doc: Any) -> None:
    """Raise InputError unless ``doc`` is an OpenAPI/Swagger mapping with ``paths``."""
    if detect_format(doc) == "unknown":
        raise InputError("Not an OpenAPI 3.x or Swagger 2.0 document")
    paths = doc.get("paths")
    if not isinstance(paths, dict):
        raise InputError("API document has no 'paths' mapping")
    for path, item in paths.items():
        if not isinstance(item, dict):
            raise InputError("Path item is not a mapping", context={"path": path})


def stringify_keys(node: Any) -> Any:
    """Copy of ``node`` with every mapping key as a string.

    YAML reads unquoted status codes (``200:``) as integers, which would
    otherwise sit next to string keys such as ``default``.
    """
    if isinstance(node, dict):
        return {str(k): stringify_keys(v) for k, v in node.items()}
    if isinstance(node, list):
        return [stringify_keys(v) for v in node]
    return node
