"""Prometheus metrics definitions for Cartwise."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "cartwise_http_requests_total",
    "Total number of HTTP requests processed by the Cartwise API",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "cartwise_http_request_duration_seconds",
    "Latency of HTTP requests processed by the Cartwise API",
    ["method", "path"],
)

CART_TRANSITIONS = Counter(
    "cartwise_cart_transitions_total",
    "Number of cart phase transitions by source and target phase",
    ["previous", "current"],
)

CATALOG_MERGES = Counter(
    "cartwise_catalog_merges_total",
    "Shopping-only items promoted into the catalog on trip completion",
    ["result"],
)

__all__ = [
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "CART_TRANSITIONS",
    "CATALOG_MERGES",
]
