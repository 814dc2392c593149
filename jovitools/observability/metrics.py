"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from jovitools.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    KIND = "kind"
    EVENT = "event"
    ERROR_TYPE = "error_type"


class PortalMetrics:
    """
    Centralized metrics for the JoviTools API.

    Covers:
    - HTTP requests (rate, duration, in-flight)
    - Coin ledger (deductions by outcome, resets)
    - Invite redemptions by outcome
    - Payment webhook events
    - AI generation requests and provider latency
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info("jovitools_service", "Service information")
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "jovitools_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "jovitools_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.http_requests_in_progress = Gauge(
            "jovitools_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.METHOD],
        )

        # ====================================================================
        # Coin Ledger Metrics
        # ====================================================================
        self.coin_deductions_total = Counter(
            "jovitools_coin_deductions_total",
            "Coin deduction attempts",
            [MetricLabels.OUTCOME],
        )

        self.coin_resets_total = Counter(
            "jovitools_coin_resets_total",
            "Coin ledgers restored to the ceiling",
        )

        # ====================================================================
        # Invite Metrics
        # ====================================================================
        self.invite_redemptions_total = Counter(
            "jovitools_invite_redemptions_total",
            "Invite redemption attempts",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Webhook Metrics
        # ====================================================================
        self.webhook_events_total = Counter(
            "jovitools_webhook_events_total",
            "Payment webhook events received",
            [MetricLabels.EVENT, MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Generation Metrics
        # ====================================================================
        self.generation_requests_total = Counter(
            "jovitools_generation_requests_total",
            "AI generation requests",
            [MetricLabels.KIND, MetricLabels.OUTCOME],
        )

        self.generation_duration_seconds = Histogram(
            "jovitools_generation_duration_seconds",
            "Provider call duration in seconds",
            [MetricLabels.KIND],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
        )

        self.video_jobs_watched = Gauge(
            "jovitools_video_jobs_watched",
            "Video jobs currently being polled",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "jovitools_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_coin_deduction(self, success: bool) -> None:
        self.coin_deductions_total.labels(
            outcome="charged" if success else "insufficient"
        ).inc()

    def record_invite_redemption(self, outcome: str) -> None:
        self.invite_redemptions_total.labels(outcome=outcome).inc()

    def record_webhook_event(self, event: str, outcome: str) -> None:
        self.webhook_events_total.labels(event=event or "unknown", outcome=outcome).inc()

    def record_generation(self, kind: str, outcome: str, duration: float | None = None) -> None:
        """Record an image/video generation attempt."""
        self.generation_requests_total.labels(kind=kind, outcome=outcome).inc()
        if duration is not None:
            self.generation_duration_seconds.labels(kind=kind).observe(duration)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = PortalMetrics()
