"""Tests for the AzamPay gateway client."""

import json

import httpx
import pytest

from ajira.config import Settings
from ajira.errors import PaymentGatewayError
from ajira.payments import AzamPayClient
from ajira.payments.azampay import _format_amount


def _settings(**overrides) -> Settings:
    data = {
        "supabase_url": "http://localhost:54321",
        "jwt_secret_key": "test-only-jwt-secret",
        "azampay_app_name": "ajira",
        "azampay_client_id": "client-id",
        "azampay_client_secret": "client-secret",
    }
    data.update(overrides)
    return Settings(**data)


def _client(handler, **overrides) -> AzamPayClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AzamPayClient(_settings(**overrides), http=http)


def _gateway(checkout_body: dict | None = None, checkout_status: int = 200, token="tok-1"):
    """Build a transport handler that answers the token and checkout calls."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/GenerateToken"):
            return httpx.Response(200, json={"data": {"accessToken": token}})
        return httpx.Response(checkout_status, json=checkout_body or {})

    return handler, seen


class TestToken:
    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        client = _client(lambda r: httpx.Response(500), azampay_client_secret=None)
        with pytest.raises(PaymentGatewayError, match="not configured"):
            await client.get_token()

    @pytest.mark.asyncio
    async def test_token_without_access_token(self):
        client = _client(lambda r: httpx.Response(200, json={"message": "Bad app"}))
        with pytest.raises(PaymentGatewayError, match="Bad app"):
            await client.get_token()

    @pytest.mark.asyncio
    async def test_token_http_error(self):
        client = _client(lambda r: httpx.Response(503))
        with pytest.raises(PaymentGatewayError, match="authenticate"):
            await client.get_token()


class TestCheckout:
    @pytest.mark.asyncio
    async def test_successful_checkout(self):
        handler, seen = _gateway({"success": True, "transactionId": "tx-9", "message": "Sent"})
        client = _client(handler)

        result = await client.mno_checkout(15000, "255712345678", "o1,o2", "Airtel")

        assert result.success
        assert result.transaction_id == "tx-9"
        assert result.reference == "o1,o2"
        checkout = seen[-1]
        assert checkout.headers["Authorization"] == "Bearer tok-1"
        payload = json.loads(checkout.content)
        assert payload["amount"] == "15000"
        assert payload["currency"] == "TZS"
        assert payload["externalId"] == "o1,o2"
        assert payload["provider"] == "Airtel"

    @pytest.mark.asyncio
    async def test_rejected_checkout(self):
        handler, _ = _gateway({"success": False, "message": "Insufficient balance"})
        result = await _client(handler).mno_checkout(100, "255712345678", "o1")
        assert not result.success
        assert result.message == "Insufficient balance"

    @pytest.mark.asyncio
    async def test_checkout_http_error_is_a_failed_result(self):
        handler, _ = _gateway(checkout_status=502)
        result = await _client(handler).mno_checkout(100, "255712345678", "o1")
        assert not result.success
        assert "communicate" in result.message


class TestDisburse:
    @pytest.mark.asyncio
    async def test_disburse_to_wallet(self):
        handler, seen = _gateway({"success": True, "transactionId": "po-1"})
        result = await _client(handler).disburse(
            50000, "255700000001", "payout-1", "Duka la Mama", "Tigo"
        )

        assert result.success
        assert result.message == "Payout initiated successfully"
        payload = json.loads(seen[-1].content)
        assert payload["destination"]["accountNumber"] == "255700000001"
        assert payload["destination"]["bankName"] == "Tigo"
        assert payload["externalReferenceId"] == "payout-1"


def test_format_amount():
    assert _format_amount(5000) == "5000"
    assert _format_amount(5000.0) == "5000"
    assert _format_amount(12.5) == "12.50"
