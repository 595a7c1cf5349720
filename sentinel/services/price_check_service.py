"""
Server side of the payment-gated price check.

Issues payment challenges to unpaid requests and, once a payment proof
verifies, releases the current price together with the trigger evaluation.
A rejected proof yields a fresh challenge instead of an opaque error so the
client can tell "pay again" from "malformed request".
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal

from sentinel.core.config import settings
from sentinel.core.errors import NetworkUnavailable, NotifierFailed, VerificationFailed
from sentinel.core.networks import TokenKind, get_network_profile
from sentinel.schemas.protocol import PaymentChallenge, PriceCheckRequest, SettledCheck
from sentinel.services.alert_evaluator import alert_title, evaluate
from sentinel.services.alerting_service import AlertType, send_warning_alert
from sentinel.services.metrics_service import metrics_collector
from sentinel.services.notifications import WebhookNotifier
from sentinel.services.payment_verifier import OnChainPaymentVerifier, PaymentExpectation
from sentinel.services.price_oracle import MarketPriceOracle

logger = logging.getLogger(__name__)


class PriceCheckService:
    """Issues challenges and settles paid price checks."""

    def __init__(
        self,
        oracle: MarketPriceOracle,
        verifier: OnChainPaymentVerifier,
        notifier: WebhookNotifier,
        recipient: str | None = None,
        fee: Decimal | None = None,
    ):
        self.oracle = oracle
        self.verifier = verifier
        self.notifier = notifier
        self.recipient = recipient or settings.payment_recipient_address
        self.fee = fee if fee is not None else settings.price_check_cost
        self.proof_max_age = settings.proof_max_age_seconds
        # Proof reference -> time it was consumed
        self._consumed: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def issue_challenge(self, request: PriceCheckRequest) -> PaymentChallenge:
        """Build a fresh payment challenge for the requester's network."""
        profile = get_network_profile(request.network)
        metrics_collector.record_challenge()
        return PaymentChallenge(
            amount=self.fee,
            recipient=self.recipient,
            accepted_tokens=profile.accepted_tokens,
            network=profile.name,
        )

    async def settle(self, request: PriceCheckRequest, proof: str, token_used: str | None) -> SettledCheck:
        """
        Verify a payment proof and release the price.

        Args:
            request: The original check request
            proof: Transaction hash presented as payment
            token_used: Token the client declares it paid with

        Returns:
            Settled price check

        Raises:
            VerificationFailed: Proof rejected; carries a fresh challenge
            NetworkUnavailable: Chain or price oracle could not be reached
        """
        profile = get_network_profile(request.network)
        reference = proof.strip().lower()

        token = self._accepted_token(token_used, profile.accepted_tokens)
        if token is None:
            raise self._rejection(request, f"Token '{token_used}' is not accepted on {profile.display_name}")

        if not await self._reserve(reference):
            raise self._rejection(request, "Payment proof has already been used")

        expectation = PaymentExpectation(
            recipient=self.recipient,
            amount=self.fee,
            token=token,
            network=profile.name,
        )
        try:
            valid = await self.verifier.verify(proof.strip(), expectation)
        except Exception:
            await self._release(reference)
            raise

        if not valid:
            await self._release(reference)
            raise self._rejection(request, "Payment verification failed")

        try:
            price = await self.oracle.get_current_price()
        except NetworkUnavailable:
            # The proof stays redeemable so a retry does not pay twice
            await self._release(reference)
            raise

        triggered = evaluate(price, request.threshold, request.condition)
        timestamp = datetime.now(timezone.utc)
        notified = False

        if triggered and request.notification_target:
            try:
                await self.notifier.notify(
                    request.notification_target,
                    alert_title(price, request.threshold, request.condition),
                    price,
                    request.threshold,
                    timestamp,
                )
                notified = True
            except NotifierFailed as e:
                logger.warning(f"Alert notification failed for sentinel {request.sentinel_id}: {e.message}")
                send_warning_alert(
                    AlertType.NOTIFIER_FAILURE,
                    "Price alert could not be delivered",
                    details={"sentinel_id": str(request.sentinel_id), "error": e.detail},
                )

        metrics_collector.record_settlement()
        logger.info(
            f"Settled price check for sentinel {request.sentinel_id}: price={price}, "
            f"triggered={triggered}, proof={reference}"
        )

        return SettledCheck(
            price=price,
            triggered=triggered,
            threshold=request.threshold,
            condition=request.condition,
            cost=self.fee,
            token_used=token,
            transaction_reference=proof.strip(),
            network=profile.name,
            timestamp=timestamp,
            notified=notified,
        )

    def _rejection(self, request: PriceCheckRequest, reason: str) -> VerificationFailed:
        metrics_collector.record_verification_failure()
        logger.info(f"Re-challenging sentinel {request.sentinel_id}: {reason}")
        return VerificationFailed(reason, challenge=self.issue_challenge(request))

    @staticmethod
    def _accepted_token(token_used: str | None, accepted: list[TokenKind]) -> TokenKind | None:
        if not token_used:
            # Single-token networks do not need the declaration
            return accepted[0] if len(accepted) == 1 else None
        for token in accepted:
            if token.value == token_used.strip().lower():
                return token
        return None

    async def _reserve(self, reference: str) -> bool:
        async with self._lock:
            self._prune()
            if reference in self._consumed:
                return False
            self._consumed[reference] = time.monotonic()
            return True

    async def _release(self, reference: str) -> None:
        async with self._lock:
            self._consumed.pop(reference, None)

    def _prune(self) -> None:
        # Proofs older than the max age fail verification anyway
        cutoff = time.monotonic() - self.proof_max_age * 2
        for reference in [ref for ref, at in self._consumed.items() if at < cutoff]:
            del self._consumed[reference]
