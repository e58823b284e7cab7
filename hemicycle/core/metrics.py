"""Prometheus metrics for monitoring the ingestion pipeline.

Provides counters and histograms for tracking:
- Fetch outcomes (success, retry exhaustion, redirects, transport failures)
- Records written per collection
- Unclassified taxonomy labels
- Whole-cycle duration
"""

from prometheus_client import Counter, Histogram

fetch_total = Counter(
    "fetch_total",
    "Total logical fetches by outcome",
    ["outcome"],  # success/empty/redirect/http_error/transport_error
)

records_upserted_total = Counter(
    "records_upserted_total",
    "Total records handed to the storage collaborator",
    ["collection"],
)

unclassified_labels_total = Counter(
    "unclassified_labels_total",
    "Total theme labels the reconciler could not match",
    ["reason"],  # unrecognized/too_long
)

entities_skipped_total = Counter(
    "entities_skipped_total",
    "Total primary entities skipped because their top-level record was absent",
    ["collection"],
)

ingest_cycle_duration_seconds = Histogram(
    "ingest_cycle_duration_seconds",
    "Duration of a full ingestion cycle in seconds",
    buckets=[60, 300, 900, 1800, 3600, 7200, 14400],
)
