"""
Tests for payment dispatch and the provider clients
"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from academy.core.exceptions import PaymentProviderError
from academy.services.flutterwave_service import FlutterwaveService
from academy.services.nowpayments_service import NowPaymentsService
from academy.services.payment_service import PaymentOutcome, PaymentRequest, PaymentService
from academy.services.stripe_service import StripeService


@pytest.fixture
def providers():
    stripe_service = MagicMock(spec=StripeService)
    stripe_service.create_payment_intent.return_value = {
        "id": "pi_123", "client_secret": "pi_123_secret_abc", "status": "requires_payment_method",
    }
    flutterwave = MagicMock(spec=FlutterwaveService)
    flutterwave.generate_transaction_ref.return_value = "TA_1_abc"
    flutterwave.initiate_mobile_money = AsyncMock(return_value={
        "status": "success",
        "data": {"tx_ref": "TA_1_abc", "status": "pending"},
        "meta": {"authorization": {"mode": "redirect", "redirect": "https://checkout.flutterwave.com/abc"}},
    })
    flutterwave.initiate_bank_transfer = AsyncMock(return_value={"status": "error", "message": "Insufficient balance"})
    nowpayments = MagicMock(spec=NowPaymentsService)
    nowpayments.create_payment = AsyncMock(return_value={
        "payment_id": 5077125051, "pay_address": "bc1qexample", "pay_amount": 0.00042,
    })
    return stripe_service, flutterwave, nowpayments


@pytest.fixture
def payment_service(providers):
    stripe_service, flutterwave, nowpayments = providers
    return PaymentService(stripe_service=stripe_service, flutterwave_service=flutterwave,
                          nowpayments_service=nowpayments)


def _request(method, **kwargs):
    return PaymentRequest(subscription_id="sub_123", amount=Decimal("24.99"), payment_method=method,
                          email="alice@example.com", **kwargs)


class TestPaymentDispatch:
    """Each payment method reaches the right provider"""

    @pytest.mark.parametrize("method", ["stripe", "card_payment", "google_pay", "apple_pay"])
    async def test_card_methods_use_stripe(self, payment_service, providers, method):
        result = await payment_service.process_payment(_request(method))

        assert result.success is True
        assert result.status == PaymentOutcome.PENDING
        assert result.client_secret == "pi_123_secret_abc"
        metadata = providers[0].create_payment_intent.call_args.kwargs["metadata"]
        assert metadata == {"subscription_id": "sub_123", "payment_method": method}

    async def test_crypto_uses_nowpayments(self, payment_service, providers):
        result = await payment_service.process_payment(_request("crypto", pay_currency="eth"))

        assert result.provider == "nowpayments"
        assert result.reference == "5077125051"
        assert result.pay_address == "bc1qexample"
        kwargs = providers[2].create_payment.call_args.kwargs
        assert kwargs["order_id"] == "sub_123"
        assert kwargs["pay_currency"] == "eth"
        assert kwargs["ipn_callback_url"].endswith("/api/v1/webhooks/nowpayments")

    async def test_mobile_money_uses_flutterwave(self, payment_service, providers):
        result = await payment_service.process_payment(_request("mobile_money", phone_number="0241234567"))

        assert result.success is True
        assert result.status == PaymentOutcome.PENDING
        assert result.payment_url == "https://checkout.flutterwave.com/abc"
        meta = providers[1].initiate_mobile_money.call_args.kwargs["meta"]
        assert meta["subscription_id"] == "sub_123"

    async def test_mobile_money_requires_phone(self, payment_service, providers):
        result = await payment_service.process_payment(_request("mobile_money"))

        assert result.success is False
        assert "Phone number" in result.error
        providers[1].initiate_mobile_money.assert_not_called()

    async def test_opay_goes_through_mobile_money(self, payment_service, providers):
        await payment_service.process_payment(_request("opay", phone_number="0241234567"))

        providers[1].initiate_mobile_money.assert_awaited_once()

    async def test_provider_rejection_is_failed_result(self, payment_service):
        result = await payment_service.process_payment(_request("bank_transfer"))

        assert result.success is False
        assert result.status == PaymentOutcome.FAILED
        assert result.error == "Insufficient balance"

    async def test_unsupported_method(self, payment_service, providers):
        result = await payment_service.process_payment(_request("paypal"))

        assert result.success is False
        assert result.status == PaymentOutcome.FAILED
        assert "not supported" in result.error
        providers[0].create_payment_intent.assert_not_called()

    async def test_provider_exception_becomes_failed_result(self, payment_service, providers):
        providers[0].create_payment_intent.side_effect = PaymentProviderError("stripe", "card declined", 402)

        result = await payment_service.process_payment(_request("stripe"))

        assert result.success is False
        assert "card declined" in result.error


class TestStripeAmounts:
    """Conversion to minor units"""

    @pytest.mark.parametrize("amount,cents", [
        (Decimal("24.99"), 2499),
        (Decimal("499.99"), 49999),
        (19.995, 2000),
        (Decimal("0.005"), 1),
    ])
    def test_to_minor_units(self, amount, cents):
        assert StripeService.to_minor_units(amount) == cents

    def test_create_payment_intent_sends_cents(self):
        intent = {"id": "pi_1", "client_secret": "secret", "status": "requires_payment_method"}
        with patch("academy.services.stripe_service.stripe.PaymentIntent.create", return_value=intent) as create:
            result = StripeService(api_key="sk_test").create_payment_intent(Decimal("14.99"), "USD", {"subscription_id": "s"})

        assert result == intent
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 1499
        assert kwargs["currency"] == "usd"
        assert kwargs["metadata"] == {"subscription_id": "s"}

    def test_retrieve_payment_intent_converts_sdk_object(self):
        intent = MagicMock(spec=["to_dict"])
        intent.to_dict.return_value = {
            "id": "pi_1", "status": "succeeded", "amount": 2499, "currency": "usd",
            "metadata": {"subscription_id": "sub_1"},
        }
        with patch("academy.services.stripe_service.stripe.PaymentIntent.retrieve", return_value=intent):
            result = StripeService(api_key="sk_test").retrieve_payment_intent("pi_1")

        assert result["metadata"] == {"subscription_id": "sub_1"}
        assert result["amount"] == 2499


class TestProviderClients:
    """HTTP error handling in the httpx clients"""

    async def test_nowpayments_http_error_raises_provider_error(self):
        response = httpx.Response(500, text="internal error")
        with patch.object(httpx.AsyncClient, "request", AsyncMock(return_value=response)):
            with pytest.raises(PaymentProviderError) as exc_info:
                await NowPaymentsService(api_key="np").get_payment_status("123")

        assert exc_info.value.provider == "nowpayments"
        assert exc_info.value.status_code == 500

    async def test_flutterwave_connection_error(self):
        with patch.object(httpx.AsyncClient, "request", AsyncMock(side_effect=httpx.ConnectError("refused"))):
            with pytest.raises(PaymentProviderError) as exc_info:
                await FlutterwaveService(secret_key="sk").verify_payment("42")

        assert exc_info.value.provider == "flutterwave"

    def test_transaction_refs_are_unique(self):
        refs = {FlutterwaveService.generate_transaction_ref() for _ in range(50)}

        assert len(refs) == 50
        assert all(ref.startswith("TA_") for ref in refs)

    def test_flutterwave_signature_without_secret_accepts(self):
        assert FlutterwaveService(webhook_secret="").verify_webhook_signature(b"{}", None) is True

    def test_nowpayments_signature_round_trip(self):
        service = NowPaymentsService(ipn_secret="secret")
        body = b'{"payment_id": 1}'

        assert service.verify_ipn_signature(body, service.sign(body)) is True
        assert service.verify_ipn_signature(body, service.sign(b"tampered")) is False
