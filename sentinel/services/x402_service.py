"""
X402 price-check client.

This service runs one pay-then-retry exchange against the price-check
endpoint: send the sentinel's configuration, receive an HTTP 402 challenge,
pay it through the payment executor, and retry with the transaction hash as
proof. Each step is an explicit protocol state; there is no automatic retry
beyond the single paid retry.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import httpx
from eth_account.signers.local import LocalAccount
from pydantic import ValidationError

from sentinel.core.config import settings
from sentinel.core.errors import (
    NetworkUnavailable,
    ProtocolError,
    SentinelError,
    VerificationFailed,
)
from sentinel.core.networks import NetworkName
from sentinel.schemas.protocol import PaymentChallenge, PriceCheckRequest, SettledCheck
from sentinel.services.payment_executor import PaymentExecutor, PaymentReceipt
from sentinel.x402.protocol import (
    PAYMENT_PROOF_HEADER,
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_TOKEN_HEADER,
    TERMINAL_STATES,
    TRANSITIONS,
    ProtocolState,
    challenge_from_header,
    select_token,
)

logger = logging.getLogger(__name__)


class ProtocolRun:
    """State tracker for one price-check exchange."""

    def __init__(self, sentinel_id: UUID | None):
        self.sentinel_id = sentinel_id
        self.state = ProtocolState.INIT
        self.history: list[ProtocolState] = [ProtocolState.INIT]

    def advance(self, state: ProtocolState) -> None:
        if state not in TRANSITIONS[self.state]:
            raise ProtocolError(f"Invalid protocol transition {self.state.value} -> {state.value}")
        logger.debug(f"Sentinel {self.sentinel_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: Exception) -> None:
        if self.state in TERMINAL_STATES:
            return
        logger.info(
            f"Sentinel {self.sentinel_id}: price check failed in state {self.state.value}: {error}"
        )
        self.state = ProtocolState.FAILED
        self.history.append(ProtocolState.FAILED)


@dataclass
class PriceCheckResult:
    """Outcome of a settled exchange."""

    settled: SettledCheck
    receipt: PaymentReceipt
    states: list[ProtocolState] = field(default_factory=list)


class X402PriceCheckClient:
    """Client for the payment-gated price-check endpoint."""

    def __init__(
        self,
        executor: PaymentExecutor,
        url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            executor: Pays the challenges
            url: Price-check endpoint; defaults to the configured URL
            client: HTTP client; one with the protocol timeout is created when not given
        """
        self.executor = executor
        self.url = url or settings.price_check_url
        self.client = client or httpx.AsyncClient(timeout=settings.protocol_timeout_seconds)

    def _safe_parse_json(self, response: httpx.Response) -> dict[str, Any] | None:
        """
        Safely parse JSON from HTTP response with error handling.

        Returns:
            Parsed JSON dict or None if parsing fails
        """
        if not response.content:
            logger.warning("Empty response body received")
            return None
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in response: {e}")
            logger.debug(f"Response content (first 200 chars): {response.text[:200]}")
            return None
        return data if isinstance(data, dict) else None

    async def check(self, request: PriceCheckRequest, signer: LocalAccount) -> PriceCheckResult:
        """
        Run one paid price check.

        Args:
            request: The sentinel's configuration
            signer: Signer of the sentinel's wallet

        Returns:
            The settled check and the payment receipt

        Raises:
            NetworkUnavailable: Endpoint unreachable or reporting an outage
            VerificationFailed: Proof rejected; carries the fresh challenge
            ProtocolError: Unexpected response from the endpoint
            Any error raised by PaymentExecutor.pay
        """
        run = ProtocolRun(request.sentinel_id)
        body = request.model_dump(mode="json")
        receipt: PaymentReceipt | None = None

        try:
            run.advance(ProtocolState.REQUEST_SENT)
            response = await self._post(body)
            if response.status_code != 402:
                raise self._unexpected_response(response, "challenge")

            challenge = self._parse_challenge(response, request.network)
            run.advance(ProtocolState.CHALLENGED)
            if challenge.network != request.network:
                raise ProtocolError(
                    f"Challenge is for {challenge.network.value}, sentinel is on {request.network.value}"
                )
            if challenge.amount != settings.price_check_cost:
                logger.warning(
                    f"Sentinel {request.sentinel_id}: challenge asks {challenge.amount}, "
                    f"expected {settings.price_check_cost}"
                )

            token = select_token(challenge.accepted_tokens, request.payment_method, request.network)
            run.advance(ProtocolState.PAYING)
            receipt = await self.executor.pay(
                signer,
                challenge.recipient,
                challenge.amount,
                token,
                request.network,
            )

            run.advance(ProtocolState.PAID_RETRY_SENT)
            response = await self._post(
                body,
                headers={
                    PAYMENT_PROOF_HEADER: receipt.tx_hash,
                    PAYMENT_TOKEN_HEADER: token.value,
                },
            )

            if response.status_code == 402:
                fresh = self._parse_challenge(response, request.network)
                data = self._safe_parse_json(response) or {}
                raise VerificationFailed(
                    data.get("message") or "Payment proof was rejected",
                    challenge=fresh,
                    receipt=receipt,
                )
            if response.status_code != 200:
                raise self._unexpected_response(response, "settlement")

            settled = self._parse_settled(response)
            run.advance(ProtocolState.SETTLED)

        except SentinelError as e:
            if receipt is not None and e.receipt is None:
                e.receipt = receipt
            run.fail(e)
            raise

        logger.info(
            f"Sentinel {request.sentinel_id}: settled price {settled.price} "
            f"(triggered={settled.triggered}, tx={receipt.tx_hash})"
        )
        return PriceCheckResult(settled=settled, receipt=receipt, states=list(run.history))

    async def _post(self, body: dict[str, Any], headers: dict[str, str] | None = None) -> httpx.Response:
        request_headers = {"Accept": "application/json", "User-Agent": "Sentinel/1.0"}
        request_headers.update(headers or {})
        try:
            return await self.client.post(self.url, json=body, headers=request_headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Price-check request timed out: {e}")
            raise NetworkUnavailable("Price-check endpoint timed out") from e
        except httpx.HTTPError as e:
            logger.warning(f"Price-check request failed: {e}")
            raise NetworkUnavailable("Price-check endpoint unreachable", detail=str(e)) from e

    def _parse_challenge(self, response: httpx.Response, network: NetworkName) -> PaymentChallenge:
        """Read the challenge from the 402 body, falling back to the Payment-Required header."""
        data = self._safe_parse_json(response)
        if data and isinstance(data.get("challenge"), dict):
            try:
                return PaymentChallenge.model_validate(data["challenge"])
            except ValidationError as e:
                logger.warning(f"Malformed challenge body: {e}")

        header = response.headers.get(PAYMENT_REQUIRED_HEADER)
        if not header:
            raise ProtocolError("402 response carried no payment challenge")
        return challenge_from_header(header, network)

    def _parse_settled(self, response: httpx.Response) -> SettledCheck:
        data = self._safe_parse_json(response)
        if data is None:
            raise ProtocolError("Settlement response is not valid JSON")
        try:
            return SettledCheck.model_validate(data)
        except ValidationError as e:
            raise ProtocolError("Malformed settlement response", detail=str(e)) from e

    def _unexpected_response(self, response: httpx.Response, expected: str) -> SentinelError:
        data = self._safe_parse_json(response) or {}
        message = data.get("error") or data.get("detail") or "Unknown error"
        if response.status_code >= 500:
            return NetworkUnavailable(
                f"Price-check endpoint unavailable ({response.status_code})",
                detail=str(message),
            )
        return ProtocolError(
            f"Expected {expected}, got HTTP {response.status_code}",
            detail=str(message),
        )

    async def close(self) -> None:
        await self.client.aclose()
