"""Prometheus metrics for DealSpotter.

Defines and exposes operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram

# Basket comparison metrics
basket_comparisons_total = Counter(
    "dealspotter_basket_comparisons_total",
    "Total basket comparisons served",
    ["cached"]  # cached: true|false
)

basket_duration_seconds = Histogram(
    "dealspotter_basket_duration_seconds",
    "Time spent computing an uncached basket comparison in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Matching pipeline metrics
match_stage_failures_total = Counter(
    "dealspotter_match_stage_failures_total",
    "Candidate source failures recovered by skipping a pipeline stage",
    ["stage"]  # stage: user_correction|text_search|regex|fuzzy
)

match_results_total = Counter(
    "dealspotter_match_results_total",
    "Matched basket items by credited match source",
    ["match_source", "matched"]  # matched: true|false
)

match_confidence_histogram = Histogram(
    "dealspotter_match_confidence",
    "Match confidence score distribution",
    buckets=[0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
)

# Result cache metrics
cache_events_total = Counter(
    "dealspotter_cache_events_total",
    "Basket cache lookups and invalidations",
    ["event"]  # event: hit|miss|invalidation|eviction
)

# Catalog write metrics
catalog_deals_written_total = Counter(
    "dealspotter_catalog_deals_written_total",
    "Deals written by the ingestion path",
    ["store", "outcome"]  # outcome: created|updated|error
)
