"""Unit tests for metrics collection and the metrics middleware."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sentinel.middleware.metrics import metrics_middleware
from sentinel.services.metrics_service import MetricsCollector


class TestMetricsCollector:
    def test_check_counters(self):
        collector = MetricsCollector()
        collector.record_check(0.5, success=True, triggered=True)
        collector.record_check(0.1, success=False)

        assert collector.checks_total == 2
        assert collector.checks_success == 1
        assert collector.checks_failed == 1
        assert collector.alerts_triggered == 1

    def test_payment_value_counts_confirmed_only(self):
        collector = MetricsCollector()
        collector.record_payment(Decimal("0.0001"), success=True)
        collector.record_payment(Decimal("0.0001"), success=False)

        assert collector.payments_total == 2
        assert collector.payments_total_value == Decimal("0.0001")

    def test_prometheus_output(self):
        collector = MetricsCollector()
        collector.record_auto_pause()
        collector.set_active_loops(3)

        output = collector.get_prometheus_metrics()

        assert "# TYPE sentinel_checks_total counter" in output
        assert "sentinel_auto_pauses_total 1" in output
        assert "sentinel_active_loops 3" in output

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_challenge()
        collector.reset()
        assert collector.challenges_issued == 0


class TestMetricsMiddleware:
    async def test_skips_non_api_routes(self):
        with patch("sentinel.middleware.metrics.metrics_collector") as mock_collector:
            mock_request = MagicMock()
            mock_request.url.path = "/health"
            mock_response = MagicMock()
            mock_call_next = AsyncMock(return_value=mock_response)

            assert await metrics_middleware(mock_request, mock_call_next) == mock_response
            mock_collector.record_request.assert_not_called()

    async def test_skips_metrics_endpoint(self):
        with patch("sentinel.middleware.metrics.metrics_collector") as mock_collector:
            mock_request = MagicMock()
            mock_request.url.path = "/api/v1/metrics"
            mock_call_next = AsyncMock(return_value=MagicMock())

            await metrics_middleware(mock_request, mock_call_next)
            mock_collector.record_request.assert_not_called()

    @pytest.mark.parametrize("status_code,error", [(200, False), (402, False), (404, True), (503, True)])
    async def test_error_classification(self, status_code, error):
        with patch("sentinel.middleware.metrics.metrics_collector") as mock_collector:
            mock_request = MagicMock()
            mock_request.url.path = "/api/v1/check-price"
            mock_response = MagicMock()
            mock_response.status_code = status_code
            mock_call_next = AsyncMock(return_value=mock_response)

            await metrics_middleware(mock_request, mock_call_next)
            assert mock_collector.record_request.call_args[1]["error"] is error

    async def test_tracks_exception_metrics(self):
        with patch("sentinel.middleware.metrics.metrics_collector") as mock_collector:
            mock_request = MagicMock()
            mock_request.url.path = "/api/v1/sentinels"
            mock_call_next = AsyncMock(side_effect=ValueError("Test error"))

            with pytest.raises(ValueError):
                await metrics_middleware(mock_request, mock_call_next)

            assert mock_collector.record_request.call_args[1]["error"] is True
