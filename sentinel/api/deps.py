"""
Request dependencies.

Long-lived services are built once in the application lifespan and kept on
``app.state``; these dependencies hand them to the routes.
"""

from fastapi import Request

from sentinel.services.balance_service import BalanceService
from sentinel.services.monitoring_service import MonitoringService
from sentinel.services.price_check_service import PriceCheckService
from sentinel.services.sentinel_store import SentinelStore


def get_price_check_service(request: Request) -> PriceCheckService:
    return request.app.state.price_check_service


def get_sentinel_store(request: Request) -> SentinelStore:
    return request.app.state.sentinel_store


def get_monitoring_service(request: Request) -> MonitoringService:
    return request.app.state.monitoring_service


def get_balance_service(request: Request) -> BalanceService:
    return request.app.state.balance_service
