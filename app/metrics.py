"""Prometheus metrics definitions for the venue cache server.

Exposes metrics for:
1. HTTP API metrics (requests, latency, errors)
2. Venue directory (Foursquare) client metrics (calls, latency, errors)
3. Proximity cache metrics (hits, misses, reconciliation results)
4. Background job metrics (runs, duration)
"""
from prometheus_client import Counter, Histogram, Gauge, Info

# =============================================================================
# HTTP API METRICS
# =============================================================================

# Request counter with method, endpoint, and status labels
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
)

# Request latency histogram
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Active requests gauge
HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method", "endpoint"],
)

# Response size histogram
HTTP_RESPONSE_SIZE_BYTES = Histogram(
    "http_response_size_bytes",
    "HTTP response body size in bytes",
    ["method", "endpoint"],
    buckets=(100, 500, 1000, 5000, 10000, 50000, 100000, 500000),
)

# =============================================================================
# VENUE DIRECTORY CLIENT METRICS
# =============================================================================

# API call counter
FOURSQUARE_API_CALLS_TOTAL = Counter(
    "foursquare_api_calls_total",
    "Total number of Foursquare API calls",
    ["endpoint", "status"],  # status: success, error
)

# API call latency
FOURSQUARE_API_CALL_DURATION_SECONDS = Histogram(
    "foursquare_api_call_duration_seconds",
    "Foursquare API call latency in seconds",
    ["endpoint"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# API error counter by error type
FOURSQUARE_API_ERRORS_TOTAL = Counter(
    "foursquare_api_errors_total",
    "Total number of Foursquare API errors",
    ["endpoint", "error_type"],  # error_type: http_error, timeout, connection_error, invalid_response
)

# =============================================================================
# PROXIMITY CACHE METRICS
# =============================================================================

# Freshness lookups
VENUE_CACHE_LOOKUPS_TOTAL = Counter(
    "venue_cache_lookups_total",
    "Results of search log freshness lookups",
    ["result"],  # result: hit, miss, log_error
)

# Reconciliation results, one per candidate
VENUE_UPSERT_RESULTS = Counter(
    "venue_upsert_results_total",
    "Results of venue upserts from the venue directory",
    ["result"],  # result: inserted, updated, malformed, error
)

# Swallowed search log write failures
SEARCH_LOG_WRITE_FAILURES_TOTAL = Counter(
    "search_log_write_failures_total",
    "Total number of search log writes that failed",
)

# Total venues in the store
VENUES_TOTAL = Gauge(
    "venues_total",
    "Total number of venues in the store",
)

# Distinct query shapes in the search log
SEARCH_LOG_ENTRIES = Gauge(
    "search_log_entries",
    "Number of distinct query shapes in the search log",
)

# =============================================================================
# BACKGROUND JOB METRICS
# =============================================================================

# Job run counter
BACKGROUND_JOB_RUNS_TOTAL = Counter(
    "background_job_runs_total",
    "Total number of background job runs",
    ["job_name", "status"],  # status: success, error
)

# Job duration
BACKGROUND_JOB_DURATION_SECONDS = Histogram(
    "background_job_duration_seconds",
    "Background job execution duration in seconds",
    ["job_name"],
    buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
)

# Last job run timestamp
BACKGROUND_JOB_LAST_RUN_TIMESTAMP = Gauge(
    "background_job_last_run_timestamp_seconds",
    "Unix timestamp of the last successful job run",
    ["job_name"],
)

# =============================================================================
# APPLICATION INFO
# =============================================================================

APP_INFO = Info(
    "venuecache",
    "Venue cache server application information",
)

# Set application info at module load
APP_INFO.info({
    "version": "1.0.0",
    "description": "Location-aware chat venue proximity cache",
})
