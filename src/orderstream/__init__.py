"""
orderstream - event-driven order-processing core.

Change-feed fan-out to a search index and an order workflow, plus
clickstream fan-out to recommendations and a buffered analytics sink.
"""

__version__ = "0.1.0"
