"""Prometheus metrics for the search-as-you-type pipeline."""

from prometheus_client import Counter, Gauge, Histogram, Info

from searchstream.core.logging import get_logger

logger = get_logger(__name__)


def _safe_counter(*args, **kwargs):
    try:
        return Counter(*args, **kwargs)
    except ValueError:
        # Return a dummy that does nothing
        class DummyMetric:
            def labels(self, *args, **kwargs):
                return self

            def inc(self, *args, **kwargs):
                pass

        return DummyMetric()


def _safe_histogram(*args, **kwargs):
    try:
        return Histogram(*args, **kwargs)
    except ValueError:

        class DummyMetric:
            def labels(self, *args, **kwargs):
                return self

            def observe(self, *args, **kwargs):
                pass

        return DummyMetric()


def _safe_gauge(*args, **kwargs):
    try:
        return Gauge(*args, **kwargs)
    except ValueError:

        class DummyMetric:
            def labels(self, *args, **kwargs):
                return self

            def set(self, *args, **kwargs):
                pass

            def inc(self, *args, **kwargs):
                pass

            def dec(self, *args, **kwargs):
                pass

        return DummyMetric()


# Application info
try:
    app_info = Info("searchstream_app", "SearchStream application information")
    app_info.info({"component": "search-gateway"})
except ValueError:
    pass

# Ingestion
search_fragments_total = _safe_counter(
    "searchstream_fragments_total",
    "Query fragments accepted by a session engine",
    ["channel"],
)
search_settled_terms_total = _safe_counter(
    "searchstream_settled_terms_total",
    "Terms that survived the quiet period",
    ["channel"],
)

# Lookups
search_lookups_total = _safe_counter(
    "searchstream_lookups_total",
    "Search lookups by outcome",
    ["channel", "outcome"],  # ok, error, timeout, cancelled, stale
)
search_lookup_duration_seconds = _safe_histogram(
    "searchstream_lookup_duration_seconds",
    "Search backend lookup latency",
    ["mode"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
search_results_per_lookup = _safe_histogram(
    "searchstream_results_per_lookup",
    "Ranked hits returned per lookup",
    buckets=[0, 1, 2, 5, 10, 20, 50, 100],
)

# Delivery
search_batches_sent_total = _safe_counter(
    "searchstream_batches_sent_total",
    "Result batches delivered to clients",
    ["channel"],
)
search_serialization_errors_total = _safe_counter(
    "searchstream_serialization_errors_total",
    "Result batches that failed to encode",
)

# Sessions
search_sessions_active = _safe_gauge(
    "searchstream_sessions_active",
    "Open search sessions",
    ["channel"],
)
search_sessions_closed_total = _safe_counter(
    "searchstream_sessions_closed_total",
    "Closed search sessions by reason",
    ["channel", "reason"],
)

# Keystroke transport
query_bus_publish_failures_total = _safe_counter(
    "searchstream_query_bus_publish_failures_total",
    "Fragments that could not be published to the query bus",
    ["backend"],
)

# Connection pools (refreshed on each /metrics scrape)
db_pool_size = _safe_gauge("searchstream_db_pool_size", "Database connection pool size")
db_pool_checked_out = _safe_gauge("searchstream_db_pool_checked_out", "Database connections in use")
db_pool_overflow = _safe_gauge("searchstream_db_pool_overflow", "Database overflow connections")
redis_pool_max_connections = _safe_gauge("searchstream_redis_pool_max_connections", "Redis pool connection limit")
redis_pool_in_use = _safe_gauge("searchstream_redis_pool_in_use", "Redis connections in use")
