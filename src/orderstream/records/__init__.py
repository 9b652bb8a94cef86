"""
orderstream.records - attribute-tree decoding.

Exports:
    normalize, normalize_value: Tagged item image -> plain document
    to_attribute_tree: Plain document -> tagged item image
"""

from orderstream.records.normalizer import (
    AttributeTree,
    AttributeValue,
    NormalizedDocument,
    Tag,
    normalize,
    normalize_value,
    to_attribute_tree,
    to_attribute_value,
)

__all__ = [
    "AttributeTree",
    "AttributeValue",
    "NormalizedDocument",
    "Tag",
    "normalize",
    "normalize_value",
    "to_attribute_tree",
    "to_attribute_value",
]
