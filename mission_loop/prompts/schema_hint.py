"""Derive a human-readable JSON shape from example values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from pydantic import BaseModel


@dataclass
class _Shape:
    kind: str = "primitive"  # primitive | array | object
    types: set[str] = field(default_factory=set)
    keys: dict[str, "_Shape"] = field(default_factory=dict)
    element: "_Shape | None" = None


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _merge(target: _Shape, value: Any) -> None:
    kind = _json_type(value)
    if kind == "array":
        target.kind = "array"
        if target.element is None:
            target.element = _Shape()
        for item in value:
            _merge(target.element, item)
    elif kind == "object":
        target.kind = "object"
        for key, child in value.items():
            _merge(target.keys.setdefault(key, _Shape()), child)
    else:
        target.kind = "primitive"
        target.types.add(kind)


def _render(node: _Shape, indent: int = 0) -> str:
    pad = "  " * indent
    if node.kind == "primitive":
        return " | ".join(sorted(node.types)) if node.types else "unknown"
    if node.kind == "array":
        if node.element is None:
            return "array"
        return f"array<{_render(node.element, indent)}>"
    if not node.keys:
        return "object"
    lines = ["{"]
    for key, child in node.keys.items():
        lines.append(f"{pad}  {key}: {_render(child, indent + 1)};")
    lines.append(pad + "}")
    return "\n".join(lines)


def describe_shape_from_examples(examples: Iterable[Any], name: str) -> str:
    """
    Describe the approximate JSON shape shared by example values.

    Primitive types seen for the same key are merged into a union and array
    element shapes are merged across all elements.

    Args:
        examples: Values of the same kind (dicts or pydantic models)
        name: Type name to mention in the description

    Returns:
        Description suitable for appending to a prompt
    """
    root = _Shape()
    for example in examples:
        if isinstance(example, BaseModel):
            example = example.model_dump(mode="json", by_alias=True, exclude_none=True)
        _merge(root, example)
    return f"The {name} value must be JSON with the following approximate shape:\n{_render(root)}"


__all__ = ["describe_shape_from_examples"]
