"""
Operator alerting service for critical failures.

This module provides an alerting system that notifies the operator when a
sentinel is auto-paused, a safety cap is hit, storage fails, or an unhandled
error reaches the API layer. It is separate from the user-facing notifier
that delivers price alerts.

Supported alert channels:
- Console logging (default, always enabled)
- Webhook notifications (configurable)
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from sentinel.core.config import settings

logger = logging.getLogger(__name__)


class AlertSeverity(Enum):
    """Severity levels for alerts."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AlertType(Enum):
    """Types of alerts."""
    PAYMENT_FAILURE = "payment_failure"
    PAYMENT_CEILING_VIOLATION = "payment_ceiling_violation"
    SENTINEL_AUTO_PAUSED = "sentinel_auto_paused"
    PERSISTENCE_FAILURE = "persistence_failure"
    NOTIFIER_FAILURE = "notifier_failure"
    EXTERNAL_SERVICE_FAILURE = "external_service_failure"


@dataclass
class Alert:
    """Represents a single alert."""

    alert_type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: str
    details: dict[str, Any] | None = None
    correlation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert alert to dictionary."""
        return {
            "alert_type": self.alert_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "details": self.details or {},
            "correlation_id": self.correlation_id,
        }


class AlertingService:
    """
    Service for managing and dispatching alerts.

    Handlers may be plain callables or coroutine functions. Coroutine handlers
    are scheduled on the running loop so that raising an alert never blocks
    the caller.
    """

    def __init__(self, webhook_url: str | None = None) -> None:
        """Initialize the alerting service."""
        self.webhook_url = webhook_url if webhook_url is not None else settings.alert_webhook_url
        self.alert_handlers: list[Callable[[Alert], Any]] = []
        self.history: list[Alert] = []
        self._setup_default_handlers()

    def _setup_default_handlers(self) -> None:
        """Set up default alert handlers."""
        self.alert_handlers.append(self._console_handler)

        if self.webhook_url:
            self.alert_handlers.append(self._webhook_handler)

    def _console_handler(self, alert: Alert) -> None:
        """Handle alerts by logging to console."""
        level = {
            AlertSeverity.INFO: logging.INFO,
            AlertSeverity.WARNING: logging.WARNING,
            AlertSeverity.ERROR: logging.ERROR,
            AlertSeverity.CRITICAL: logging.CRITICAL,
        }.get(alert.severity, logging.INFO)

        logger.log(
            level,
            f"[ALERT] {alert.alert_type.value.upper()}: {alert.message} | "
            f"Details: {alert.details} | Correlation: {alert.correlation_id}"
        )

    async def _webhook_handler(self, alert: Alert) -> None:
        """Handle alerts by sending to webhook."""
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.webhook_url,
                    json=alert.to_dict(),
                    headers={"Content-Type": "application/json"},
                    timeout=5.0,
                )
                if response.status_code >= 400:
                    logger.warning(f"Webhook alert returned status {response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook alert: {e}")

    def add_handler(self, handler: Callable[[Alert], Any]) -> None:
        """Add a custom alert handler."""
        self.alert_handlers.append(handler)

    def send_alert(
        self,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
        details: dict[str, Any] | None = None,
        correlation_id: str | None = None
    ) -> Alert:
        """
        Send an alert through all registered handlers.

        Args:
            alert_type: Type of alert
            severity: Severity level
            message: Alert message
            details: Additional context/details
            correlation_id: ID for tracking related events

        Returns:
            The dispatched alert
        """
        alert = Alert(
            alert_type=alert_type,
            severity=severity,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            details=details,
            correlation_id=correlation_id,
        )
        self.history.append(alert)
        del self.history[:-100]

        for handler in self.alert_handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    try:
                        loop = asyncio.get_running_loop()
                        loop.create_task(handler(alert))
                    except RuntimeError:
                        logger.debug(f"Cannot call async handler {handler.__name__} - no running loop")
                else:
                    handler(alert)
            except Exception as e:
                logger.error(f"Alert handler {getattr(handler, '__name__', handler)} failed: {e}")

        return alert

    def send_critical(self, alert_type: AlertType, message: str, **kwargs: Any) -> Alert:
        """Send a critical severity alert."""
        return self.send_alert(alert_type, AlertSeverity.CRITICAL, message, **kwargs)

    def send_error(self, alert_type: AlertType, message: str, **kwargs: Any) -> Alert:
        """Send an error severity alert."""
        return self.send_alert(alert_type, AlertSeverity.ERROR, message, **kwargs)

    def send_warning(self, alert_type: AlertType, message: str, **kwargs: Any) -> Alert:
        """Send a warning severity alert."""
        return self.send_alert(alert_type, AlertSeverity.WARNING, message, **kwargs)


# Global alerting service instance
alerting_service = AlertingService()


def send_critical_alert(
    alert_type: AlertType,
    message: str,
    details: dict[str, Any] | None = None,
    correlation_id: str | None = None
) -> None:
    """Send a critical alert."""
    alerting_service.send_critical(
        alert_type,
        message,
        details=details,
        correlation_id=correlation_id,
    )


def send_error_alert(
    alert_type: AlertType,
    message: str,
    details: dict[str, Any] | None = None,
    correlation_id: str | None = None
) -> None:
    """Send an error alert."""
    alerting_service.send_error(
        alert_type,
        message,
        details=details,
        correlation_id=correlation_id,
    )


def send_warning_alert(
    alert_type: AlertType,
    message: str,
    details: dict[str, Any] | None = None,
    correlation_id: str | None = None
) -> None:
    """Send a warning alert."""
    alerting_service.send_warning(
        alert_type,
        message,
        details=details,
        correlation_id=correlation_id,
    )


def get_alerting_service() -> AlertingService:
    """Get the global alerting service instance."""
    return alerting_service
