"""
Sentinel - Autonomous pay-per-check price monitoring agents

This package contains the application source code for Sentinel, a service
that runs wallet-holding monitoring agents. Each agent periodically pays a
micro-fee over the x402 protocol to query a price oracle, compares the result
against its threshold and fires a notification when the condition is met.

Key modules:
    - api: FastAPI routes, including the paid price-check endpoint
    - core: Configuration, network profiles, errors and database setup
    - models: SQLAlchemy database models
    - schemas: Pydantic request/response schemas
    - services: Scheduler, payment execution and protocol services
    - x402: x402 payment protocol primitives
"""

__version__ = "0.1.0"
__author__ = "Sentinel Team"
