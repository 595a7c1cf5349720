"""
Business logic services package.

This package contains the service layer of the Sentinel application.

Services are imported on-demand to avoid circular import issues.
Individual services should be imported directly from their modules:
  from sentinel.services.monitoring_service import MonitoringService
  from sentinel.services.alerting_service import AlertType, send_error_alert
  etc.
"""

__all__ = [
    "ActivityRecorder",
    "AlertingService",
    "BalanceService",
    "KeyringCustody",
    "MarketPriceOracle",
    "MetricsCollector",
    "MonitoringService",
    "OnChainPaymentVerifier",
    "PaymentExecutor",
    "PriceCheckService",
    "SentinelStore",
    "WebhookNotifier",
    "X402PriceCheckClient",
]
