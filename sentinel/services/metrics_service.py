"""
Prometheus metrics service for Sentinel.

This module tracks price checks, payments and scheduler activity in process
and exposes them in Prometheus text format.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class MetricsCollector:
    """Collects and exposes application metrics for Prometheus."""

    # Request metrics
    request_count: int = 0
    request_duration_seconds: float = 0.0
    request_errors: int = 0

    # Check cycle metrics
    checks_total: int = 0
    checks_success: int = 0
    checks_failed: int = 0
    check_duration_seconds: float = 0.0
    alerts_triggered: int = 0

    # Payment metrics
    payments_total: int = 0
    payments_success: int = 0
    payments_failed: int = 0
    payments_total_value: Decimal = Decimal("0")

    # Protocol server metrics
    challenges_issued: int = 0
    settlements: int = 0
    verification_failures: int = 0

    # Scheduler metrics
    auto_pauses: int = 0
    active_loops: int = 0

    # Timing tracking
    start_time: float = field(default_factory=time.time)

    def record_request(self, duration_seconds: float, error: bool = False) -> None:
        """Record a request."""
        self.request_count += 1
        self.request_duration_seconds += duration_seconds
        if error:
            self.request_errors += 1

    def record_check(self, duration_seconds: float, success: bool, triggered: bool = False) -> None:
        """Record a completed check cycle."""
        self.checks_total += 1
        self.check_duration_seconds += duration_seconds
        if success:
            self.checks_success += 1
        else:
            self.checks_failed += 1
        if triggered:
            self.alerts_triggered += 1

    def record_payment(self, amount: Decimal, success: bool) -> None:
        """Record a payment."""
        self.payments_total += 1
        if success:
            self.payments_success += 1
            self.payments_total_value += Decimal(amount)
        else:
            self.payments_failed += 1

    def record_challenge(self) -> None:
        self.challenges_issued += 1

    def record_settlement(self) -> None:
        self.settlements += 1

    def record_verification_failure(self) -> None:
        self.verification_failures += 1

    def record_auto_pause(self) -> None:
        self.auto_pauses += 1

    def set_active_loops(self, count: int) -> None:
        self.active_loops = max(0, count)

    def reset(self) -> None:
        """Reset all counters."""
        fresh = MetricsCollector()
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(fresh, name))

    def get_prometheus_metrics(self) -> str:
        """
        Get all metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        uptime_seconds = time.time() - self.start_time
        avg_request_duration = (
            self.request_duration_seconds / self.request_count
            if self.request_count > 0 else 0.0
        )
        avg_check_duration = (
            self.check_duration_seconds / self.checks_total
            if self.checks_total > 0 else 0.0
        )

        # (name, type, help, value)
        series = [
            ("uptime_seconds", "gauge", "Application uptime in seconds", f"{uptime_seconds:.2f}"),
            ("request_total", "counter", "Total number of HTTP requests", self.request_count),
            ("request_errors_total", "counter", "Total number of HTTP request errors", self.request_errors),
            ("request_duration_seconds", "gauge", "Average request duration in seconds", f"{avg_request_duration:.3f}"),
            ("checks_total", "counter", "Total number of price-check cycles", self.checks_total),
            ("checks_success_total", "counter", "Successful price-check cycles", self.checks_success),
            ("checks_failed_total", "counter", "Failed price-check cycles", self.checks_failed),
            ("check_duration_seconds", "gauge", "Average price-check cycle duration", f"{avg_check_duration:.3f}"),
            ("alerts_triggered_total", "counter", "Cycles whose threshold condition was met", self.alerts_triggered),
            ("payments_total", "counter", "Total number of fee payments", self.payments_total),
            ("payments_success_total", "counter", "Confirmed fee payments", self.payments_success),
            ("payments_failed_total", "counter", "Failed fee payments", self.payments_failed),
            ("payments_total_value", "counter", "Total value of confirmed payments in stablecoin units", self.payments_total_value),
            ("challenges_issued_total", "counter", "Payment challenges issued by the price-check endpoint", self.challenges_issued),
            ("settlements_total", "counter", "Paid price checks settled by the price-check endpoint", self.settlements),
            ("verification_failures_total", "counter", "Payment proofs rejected by the price-check endpoint", self.verification_failures),
            ("auto_pauses_total", "counter", "Sentinels paused for insufficient funds", self.auto_pauses),
            ("active_loops", "gauge", "Currently running sentinel loops", self.active_loops),
        ]

        lines: list[str] = []
        for name, metric_type, help_text, value in series:
            lines.extend([
                f"# HELP sentinel_{name} {help_text}",
                f"# TYPE sentinel_{name} {metric_type}",
                f"sentinel_{name} {value}",
                "",
            ])

        return "\n".join(lines)


# Global metrics collector instance
metrics_collector = MetricsCollector()
