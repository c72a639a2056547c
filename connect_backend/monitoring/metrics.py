"""
Prometheus metrics for the Connect backend.

Tracks:
- Stripe API calls, durations and errors
- Circuit breaker state
- Identity resolution outcomes
- Customer directory scans
"""
from prometheus_client import Counter, Gauge, Histogram

# Stripe API metrics
stripe_api_requests_total = Counter(
    "stripe_api_requests_total",
    "Total Stripe API requests",
    ["operation", "status"],  # status: success, error
)

stripe_api_errors_total = Counter(
    "stripe_api_errors_total",
    "Total Stripe API errors",
    ["kind"],
)

stripe_api_duration_seconds = Histogram(
    "stripe_api_duration_seconds",
    "Stripe API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# Circuit breaker metrics
stripe_circuit_breaker_state = Gauge(
    "stripe_circuit_breaker_state",
    "Stripe circuit breaker state (0=closed, 1=open, 2=half_open)",
)

# Identity metrics
identity_resolutions_total = Counter(
    "identity_resolutions_total",
    "Total user to customer resolutions",
    ["outcome"],  # cache_hit, directory_hit, created
)

customer_directory_pages_scanned_total = Counter(
    "customer_directory_pages_scanned_total",
    "Total customer directory pages fetched during resolution",
)

customer_directory_scan_failures_total = Counter(
    "customer_directory_scan_failures_total",
    "Directory scans that failed and fell through to customer creation",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_stripe_api_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record Stripe API call."""
        stripe_api_requests_total.labels(operation=operation, status=status).inc()
        stripe_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_stripe_api_error(kind: str) -> None:
        """Record Stripe API error."""
        stripe_api_errors_total.labels(kind=kind).inc()

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        """Set circuit breaker state."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        stripe_circuit_breaker_state.set(state_map.get(state, 0))

    @staticmethod
    def record_identity_resolution(outcome: str) -> None:
        """Record how a user id was resolved."""
        identity_resolutions_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_directory_page() -> None:
        customer_directory_pages_scanned_total.inc()

    @staticmethod
    def record_directory_scan_failure() -> None:
        customer_directory_scan_failures_total.inc()


# Export singleton instance
metrics = MetricsCollector()
