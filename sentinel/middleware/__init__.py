"""HTTP middleware."""

from sentinel.middleware.metrics import metrics_middleware

__all__ = ["metrics_middleware"]
