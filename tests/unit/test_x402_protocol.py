"""Unit tests for x402 protocol primitives."""

from decimal import Decimal

import pytest

from sentinel.core.errors import InvalidPaymentMethod, ProtocolError
from sentinel.core.networks import NetworkName, TokenKind
from sentinel.schemas.protocol import PaymentChallenge
from sentinel.x402.protocol import (
    TRANSITIONS,
    ProtocolState,
    challenge_from_header,
    parse_payment_required_header,
    select_token,
)

RECIPIENT = "0x" + "33" * 20


class TestPaymentRequiredHeader:
    def test_parse_header(self):
        info = parse_payment_required_header(
            f"x402; amount=0.0001; recipient={RECIPIENT}; tokens=usdc,usdt; network=mainnet"
        )
        assert "x402" in info
        assert info["amount"] == "0.0001"
        assert info["recipient"] == RECIPIENT
        assert info["tokens"] == "usdc,usdt"
        assert info["network"] == "mainnet"

    def test_challenge_header_round_trip(self):
        challenge = PaymentChallenge(
            amount=Decimal("0.0001"),
            recipient=RECIPIENT,
            accepted_tokens=[TokenKind.USDC, TokenKind.USDT],
            network=NetworkName.MAINNET,
        )
        parsed = challenge_from_header(challenge.to_header(), NetworkName.TESTNET)
        assert parsed.amount == Decimal("0.0001")
        assert parsed.recipient == RECIPIENT
        assert parsed.accepted_tokens == [TokenKind.USDC, TokenKind.USDT]
        assert parsed.network == NetworkName.MAINNET

    def test_missing_network_uses_fallback(self):
        parsed = challenge_from_header(f"x402; amount=1; recipient={RECIPIENT}; tokens=usdc", NetworkName.TESTNET)
        assert parsed.network == NetworkName.TESTNET

    def test_non_x402_header_rejected(self):
        with pytest.raises(ProtocolError):
            challenge_from_header("Bearer token", NetworkName.TESTNET)

    @pytest.mark.parametrize(
        "header",
        [
            f"x402; recipient={RECIPIENT}; tokens=usdc",
            f"x402; amount=abc; recipient={RECIPIENT}; tokens=usdc",
            f"x402; amount=1; recipient={RECIPIENT}; tokens=dai",
        ],
    )
    def test_malformed_header_rejected(self, header):
        with pytest.raises(ProtocolError):
            challenge_from_header(header, NetworkName.TESTNET)


class TestTransitions:
    def test_happy_path_is_allowed(self):
        path = [
            ProtocolState.INIT,
            ProtocolState.REQUEST_SENT,
            ProtocolState.CHALLENGED,
            ProtocolState.PAYING,
            ProtocolState.PAID_RETRY_SENT,
            ProtocolState.SETTLED,
        ]
        for current, following in zip(path, path[1:]):
            assert following in TRANSITIONS[current]

    def test_every_live_state_can_fail(self):
        for state, allowed in TRANSITIONS.items():
            if state not in (ProtocolState.SETTLED, ProtocolState.FAILED):
                assert ProtocolState.FAILED in allowed

    def test_terminal_states_have_no_exits(self):
        assert TRANSITIONS[ProtocolState.SETTLED] == frozenset()
        assert TRANSITIONS[ProtocolState.FAILED] == frozenset()

    def test_payment_cannot_be_skipped(self):
        assert ProtocolState.PAID_RETRY_SENT not in TRANSITIONS[ProtocolState.CHALLENGED]


class TestSelectToken:
    def test_testnet_uses_single_token(self):
        assert select_token([TokenKind.USDC], None, "testnet") == TokenKind.USDC

    def test_testnet_ignores_preference(self):
        assert select_token([TokenKind.USDC], TokenKind.USDT, NetworkName.TESTNET) == TokenKind.USDC

    def test_mainnet_honours_preference(self):
        accepted = [TokenKind.USDC, TokenKind.USDT]
        assert select_token(accepted, TokenKind.USDT, "mainnet") == TokenKind.USDT
        assert select_token(accepted, "usdc", "mainnet") == TokenKind.USDC

    def test_mainnet_unset_preference_uses_default(self):
        assert select_token([TokenKind.USDT, TokenKind.USDC], None, "mainnet") == TokenKind.USDC

    def test_mainnet_unset_preference_without_default_uses_first(self):
        assert select_token([TokenKind.USDT], None, "mainnet") == TokenKind.USDT

    def test_mainnet_unaccepted_preference_raises(self):
        with pytest.raises(InvalidPaymentMethod):
            select_token([TokenKind.USDC], TokenKind.USDT, "mainnet")

    def test_nothing_accepted_raises(self):
        with pytest.raises(InvalidPaymentMethod):
            select_token([], None, "mainnet")
