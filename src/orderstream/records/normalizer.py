"""Record Normalizer — typed attribute trees to plain documents.

The primary store's change log carries item images as attribute trees: every
value is a one-key mapping from a type tag to the encoded value::

    {"orderId": {"S": "o-1"},
     "total":   {"N": "42.50"},
     "items":   {"L": [{"M": {"sku": {"S": "A-1"}, "qty": {"N": "2"}}}]}}

``normalize`` turns that into ``{"orderId": "o-1", "total": 42.5, "items":
[{"sku": "A-1", "qty": 2}]}``. It is a pure recursive transform with an
exhaustive tag table: any tag not in ``Tag`` fails closed with
``MalformedRecord``, as does a node with zero or several tags or a value of
the wrong type for its tag.

Numbers decode to ``int`` when their text has no fraction or exponent,
else to ``float``.

``to_attribute_tree`` is the inverse, so a document can be re-read as a tree
of the same shape; ``normalize(to_attribute_tree(doc)) == doc`` for any
document produced by ``normalize``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from orderstream.core.errors import MalformedRecord

AttributeValue = Mapping[str, Any]
AttributeTree = Mapping[str, AttributeValue]
NormalizedDocument = dict[str, Any]

_NUMBER = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


class Tag(str, Enum):
    """Type tags of an attribute value."""

    S = "S"
    N = "N"
    BOOL = "BOOL"
    NULL = "NULL"
    L = "L"
    M = "M"
    SS = "SS"
    NS = "NS"


def normalize(tree: AttributeTree) -> NormalizedDocument:
    """Flatten a top-level item image into a plain document.

    Raises:
        MalformedRecord: On unknown tags or tag/value mismatches
    """
    if not isinstance(tree, Mapping):
        raise MalformedRecord(
            f"Item image must be a mapping, got {type(tree).__name__}", path="$"
        )
    return _decode_map(tree, "$")


def normalize_value(node: AttributeValue) -> Any:
    """Decode a single tagged attribute value."""
    return _decode(node, "$")


def _decode(node: Any, path: str) -> Any:
    if not isinstance(node, Mapping) or len(node) != 1:
        raise MalformedRecord(
            f"Attribute at {path} must carry exactly one type tag", path=path
        )
    ((raw_tag, value),) = node.items()
    try:
        tag = Tag(raw_tag)
    except ValueError:
        raise MalformedRecord(f"Unknown type tag {raw_tag!r} at {path}", path=path) from None
    return _DECODERS[tag](value, path)


def _decode_string(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise _mismatch(Tag.S, value, path)
    return value


def _decode_number(value: Any, path: str) -> int | float:
    if not isinstance(value, str) or not _NUMBER.fullmatch(value):
        raise _mismatch(Tag.N, value, path)
    if any(c in value for c in ".eE"):
        number = float(value)
        if not math.isfinite(number):
            raise MalformedRecord(f"Number out of range at {path}: {value!r}", path=path)
        return number
    return int(value)


def _decode_bool(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise _mismatch(Tag.BOOL, value, path)
    return value


def _decode_null(value: Any, path: str) -> None:
    if value is not True:
        raise _mismatch(Tag.NULL, value, path)
    return None


def _decode_list(value: Any, path: str) -> list[Any]:
    if not isinstance(value, list):
        raise _mismatch(Tag.L, value, path)
    return [_decode(item, f"{path}[{i}]") for i, item in enumerate(value)]


def _decode_map(value: Any, path: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise _mismatch(Tag.M, value, path)
    result: dict[str, Any] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise MalformedRecord(f"Map key at {path} must be a string: {key!r}", path=path)
        result[key] = _decode(item, f"{path}.{key}")
    return result


def _decode_string_set(value: Any, path: str) -> list[str]:
    if not isinstance(value, list):
        raise _mismatch(Tag.SS, value, path)
    return [_decode_string(item, f"{path}[{i}]") for i, item in enumerate(value)]


def _decode_number_set(value: Any, path: str) -> list[int | float]:
    if not isinstance(value, list):
        raise _mismatch(Tag.NS, value, path)
    return [_decode_number(item, f"{path}[{i}]") for i, item in enumerate(value)]


def _mismatch(tag: Tag, value: Any, path: str) -> MalformedRecord:
    return MalformedRecord(
        f"Tag {tag.value} at {path} does not match value of type {type(value).__name__}",
        path=path,
    )


_DECODERS: dict[Tag, Callable[[Any, str], Any]] = {
    Tag.S: _decode_string,
    Tag.N: _decode_number,
    Tag.BOOL: _decode_bool,
    Tag.NULL: _decode_null,
    Tag.L: _decode_list,
    Tag.M: _decode_map,
    Tag.SS: _decode_string_set,
    Tag.NS: _decode_number_set,
}

# Every tag must have a decoder
if set(_DECODERS) != set(Tag):
    missing = sorted(t.value for t in set(Tag) - set(_DECODERS))
    raise RuntimeError(f"Tags without a decoder: {missing}")


# =============================================================================
# Inverse
# =============================================================================


def to_attribute_tree(document: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Encode a plain document back into a tagged item image.

    Raises:
        MalformedRecord: If a value has no attribute-tree representation
    """
    return {key: to_attribute_value(value) for key, value in document.items()}


def to_attribute_value(value: Any) -> dict[str, Any]:
    """Encode one plain value as a tagged attribute value."""
    if value is None:
        return {Tag.NULL.value: True}
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {Tag.BOOL.value: value}
    if isinstance(value, int):
        return {Tag.N.value: str(value)}
    if isinstance(value, float):
        if not math.isfinite(value):
            raise MalformedRecord(f"Non-finite number {value!r} cannot be encoded")
        return {Tag.N.value: repr(value)}
    if isinstance(value, Decimal):
        return {Tag.N.value: str(value)}
    if isinstance(value, str):
        return {Tag.S.value: value}
    if isinstance(value, Mapping):
        return {Tag.M.value: {str(k): to_attribute_value(v) for k, v in value.items()}}
    if isinstance(value, (list, tuple)):
        return {Tag.L.value: [to_attribute_value(v) for v in value]}
    raise MalformedRecord(f"Value of type {type(value).__name__} cannot be encoded")
