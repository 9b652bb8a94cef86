"""orderstream.search - search index read model."""

from orderstream.search.bridge import SearchIndexBridge

__all__ = ["SearchIndexBridge"]
