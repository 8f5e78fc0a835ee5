"""Structured-output schemas in the strict subset backends enforce.

Strict JSON-schema response formats accept less than pydantic emits. Every
object must list all of its properties under ``required`` and close
``additionalProperties``. Unions must be written as ``anyOf``, and keywords
such as ``default`` are rejected. :func:`to_strict_json_schema` rewrites a
schema into that subset. Properties that were optional become nullable, and
``WireModel`` maps ``null`` back to the field default when validating.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping

DROPPED_KEYWORDS = frozenset({"default", "discriminator"})
SCHEMA_MAPS = ("properties", "$defs")
TYPED_KEYWORDS = ("type", "anyOf", "$ref", "const", "enum", "allOf")

_SCALAR_VALUE: Dict[str, Any] = {"anyOf": [{"type": "string"}, {"type": "number"}, {"type": "boolean"}]}
ANY_VALUE: Dict[str, Any] = {
    "anyOf": [
        {"type": "string"},
        {"type": "number"},
        {"type": "boolean"},
        {"type": "array", "items": _SCALAR_VALUE},
    ]
}


def _is_tag(schema: Mapping[str, Any]) -> bool:
    return "const" in schema or len(schema.get("enum", ())) == 1


def is_nullable(schema: Mapping[str, Any]) -> bool:
    kind = schema.get("type")
    if kind == "null" or (isinstance(kind, list) and "null" in kind):
        return True
    return any(isinstance(option, dict) and is_nullable(option) for option in schema.get("anyOf", ()))


def _nullable(schema: Dict[str, Any]) -> Dict[str, Any]:
    if is_nullable(schema):
        return schema
    return {"anyOf": [schema, {"type": "null"}]}


def _rewrite(node: Any) -> Any:
    if isinstance(node, list):
        return [_rewrite(item) for item in node]
    if not isinstance(node, dict):
        return node

    out: Dict[str, Any] = {}
    for key, value in node.items():
        if key in DROPPED_KEYWORDS:
            continue
        if key in SCHEMA_MAPS:
            out[key] = {name: _rewrite(sub) for name, sub in value.items()}
        elif key in ("required", "enum", "const"):
            out[key] = copy.deepcopy(value)
        else:
            out["anyOf" if key == "oneOf" else key] = _rewrite(value)

    if "properties" in out or out.get("type") == "object":
        properties = out.setdefault("properties", {})
        required = set(out.get("required", ()))
        for name, sub in properties.items():
            if name not in required and not _is_tag(sub):
                properties[name] = _nullable(sub)
        out["required"] = list(properties)
        out["additionalProperties"] = False
    elif not any(key in out for key in TYPED_KEYWORDS):
        # ``Any`` fields come out as an empty schema, which strict mode rejects.
        out.update(copy.deepcopy(ANY_VALUE))
    return out


def to_strict_json_schema(schema: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a strict-mode copy of ``schema``; the input is left untouched."""

    return _rewrite(dict(schema))


def keyed_object_schema(entries: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    """Object schema with exactly the keys of ``entries``.

    Each entry may be a full pydantic schema; their ``$defs`` are hoisted to
    the root so ``#/$defs/...`` references keep resolving.
    """

    definitions: Dict[str, Any] = {}
    properties: Dict[str, Any] = {}
    for key, entry in entries.items():
        body = dict(entry)
        definitions.update(body.pop("$defs", {}))
        properties[key] = body
    schema: Dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }
    if definitions:
        schema["$defs"] = definitions
    return schema


def strict_violations(schema: Mapping[str, Any]) -> list[str]:
    """List every place ``schema`` breaks the strict subset (empty when it conforms)."""

    problems: list[str] = []

    def visit(node: Any, path: str) -> None:
        if isinstance(node, list):
            for index, item in enumerate(node):
                visit(item, f"{path}[{index}]")
            return
        if not isinstance(node, dict):
            return
        for key in node:
            if key in DROPPED_KEYWORDS or key == "oneOf":
                problems.append(f"{path}: {key}")
        if "properties" in node or node.get("type") == "object":
            properties = node.get("properties", {})
            if sorted(node.get("required", [])) != sorted(properties):
                problems.append(f"{path}: required != properties")
            if node.get("additionalProperties") is not False:
                problems.append(f"{path}: additionalProperties not false")
        elif path != "$" and not any(key in node for key in TYPED_KEYWORDS):
            problems.append(f"{path}: untyped schema")
        for key, value in node.items():
            if key in SCHEMA_MAPS:
                for name, sub in value.items():
                    visit(sub, f"{path}.{key}.{name}")
            elif key in ("items", "anyOf", "allOf", "prefixItems", "additionalProperties"):
                visit(value, f"{path}.{key}")

    visit(schema, "$")
    return problems


__all__ = ["ANY_VALUE", "is_nullable", "keyed_object_schema", "strict_violations", "to_strict_json_schema"]
