"""
Prometheus metrics for the match analyzer
"""

from prometheus_client import Counter, Histogram, Info, start_http_server
import logging

logger = logging.getLogger(__name__)

# Analysis pipeline metrics
MATCH_ANALYSES = Counter(
    "match_analyses_total",
    "Total match analysis requests",
    ["status"],  # success, failed, rejected
)

MATCH_ANALYSIS_DURATION = Histogram(
    "match_analysis_duration_seconds",
    "Time to complete a match analysis (fetch + reduce + insights)",
    buckets=[0.5, 1, 2, 5, 10, 30, 60, 120],
)

ANALYSIS_STAGE_FAILURES = Counter(
    "analysis_stage_failures_total",
    "Analysis aborts by pipeline stage",
    ["stage"],  # fetch_match, extract_telemetry_url, fetch_telemetry, ...
)

PLAYERS_ANALYZED = Counter("players_analyzed_total", "Total player reductions performed")

# Telemetry metrics
TELEMETRY_FETCH_DURATION = Histogram(
    "telemetry_fetch_duration_seconds",
    "Time to download and decode a telemetry payload",
    buckets=[0.5, 1, 2, 5, 10, 30, 60],
)

TELEMETRY_EVENTS_DECODED = Counter(
    "telemetry_events_decoded_total",
    "Total telemetry events decoded",
    ["event_type"],  # PlayerKill, PlayerPosition, Ignored, ...
)

# Upstream API
API_REQUESTS = Counter(
    "pubg_api_requests_total",
    "Total PUBG API requests",
    ["endpoint", "status"],  # status: success, not_found, rate_limited, failed
)

ANALYZER_INFO = Info("analyzer", "Analyzer process information")


def start_metrics_server(port: int = 9090, worker_name: str = "unknown"):
    """
    Start the Prometheus metrics HTTP server

    Args:
        port: Port to expose metrics on
        worker_name: Name of the process for logging and info metric
    """
    try:
        ANALYZER_INFO.info({"worker_name": worker_name, "metrics_port": str(port)})
        start_http_server(port)
        logger.info(f"Metrics server started on port {port} for: {worker_name}")
    except OSError as e:
        if e.errno == 98:  # Address already in use
            logger.warning(f"Metrics server port {port} already in use, skipping startup")
        else:
            logger.error(f"Failed to start metrics server on port {port}: {e}")
            raise
