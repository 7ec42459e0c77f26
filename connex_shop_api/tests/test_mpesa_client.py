"""Tests for the Daraja client, with httpx.MockTransport in place of Safaricom."""
from __future__ import annotations

import asyncio
import base64
import json
from datetime import datetime, timezone

import httpx
import pytest

from connex.errors import (
    ConfigurationError,
    PaymentRejectedError,
    ProviderAuthError,
    ProviderTransportError,
)
from connex.services.mpesa import MpesaClient, stk_password, stk_timestamp
from connex.settings import Settings


def _settings(**overrides) -> Settings:
    values = dict(
        mpesa_consumer_key="key",
        mpesa_consumer_secret="secret",
        mpesa_shortcode="174379",
        mpesa_passkey="pass",
        mpesa_callback_url="https://shop.example/api/mpesa/callback",
    )
    values.update(overrides)
    return Settings().model_copy(update=values)


class FakeDaraja:
    def __init__(self, stk_body=None, stk_status=200, token_body=None):
        self.requests = []
        self.stk_body = stk_body if stk_body is not None else {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": "ws_CO_191220191020363925",
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
        }
        self.stk_status = stk_status
        self.token_body = token_body if token_body is not None else {
            "access_token": "tok-1", "expires_in": "3599"
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json=self.token_body)
        if request.url.path == "/mpesa/stkpush/v1/processrequest":
            return httpx.Response(self.stk_status, json=self.stk_body)
        return httpx.Response(404)


def _client(handler, **overrides) -> MpesaClient:
    http = httpx.AsyncClient(base_url="https://sandbox.example", transport=httpx.MockTransport(handler))
    return MpesaClient(_settings(**overrides), client=http)


def test_stk_timestamp_is_14_digit_utc():
    ts = stk_timestamp(datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    assert ts == "20260102030405"
    assert len(stk_timestamp()) == 14


def test_stk_password():
    expected = base64.b64encode(b"174379pass20260102030405").decode()
    assert stk_password("174379", "pass", "20260102030405") == expected


def test_initiate_stk_push_sends_expected_request():
    daraja = FakeDaraja()
    client = _client(daraja)

    data = asyncio.run(client.initiate_stk_push(
        amount=1250, phone="254712345678", reference="Order 5", description="Payment for Order 5"
    ))

    assert data["CheckoutRequestID"] == "ws_CO_191220191020363925"
    token_req, stk_req = daraja.requests
    assert token_req.headers["Authorization"] == "Basic " + base64.b64encode(b"key:secret").decode()
    assert token_req.url.params["grant_type"] == "client_credentials"

    assert stk_req.headers["Authorization"] == "Bearer tok-1"
    body = json.loads(stk_req.content)
    assert body["BusinessShortCode"] == "174379"
    assert body["TransactionType"] == "CustomerPayBillOnline"
    assert body["Amount"] == 1250
    assert body["PartyA"] == body["PhoneNumber"] == "254712345678"
    assert body["PartyB"] == "174379"
    assert body["AccountReference"] == "Order 5"
    assert body["CallBackURL"] == "https://shop.example/api/mpesa/callback"
    assert body["Password"] == stk_password("174379", "pass", body["Timestamp"])


def test_access_token_is_cached():
    daraja = FakeDaraja()
    client = _client(daraja)

    async def _twice():
        await client.get_access_token()
        await client.get_access_token()

    asyncio.run(_twice())
    assert len(daraja.requests) == 1


def test_missing_token_is_auth_error():
    client = _client(FakeDaraja(token_body={"errorMessage": "Invalid credentials"}))
    with pytest.raises(ProviderAuthError):
        asyncio.run(client.get_access_token())


def test_rejected_stk_push():
    body = {"ResponseCode": "1", "ResponseDescription": "Rejected", "CheckoutRequestID": "x"}
    client = _client(FakeDaraja(stk_body=body))
    with pytest.raises(PaymentRejectedError) as exc:
        asyncio.run(client.initiate_stk_push(amount=1, phone="254712345678",
                                             reference="Order 1", description="d"))
    assert exc.value.response_code == "1"


def test_http_error_is_rejection():
    client = _client(FakeDaraja(stk_status=500, stk_body={"errorCode": "500.001.1001"}))
    with pytest.raises(PaymentRejectedError):
        asyncio.run(client.initiate_stk_push(amount=1, phone="254712345678",
                                             reference="Order 1", description="d"))


def test_timeout_is_transport_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    client = _client(handler)
    with pytest.raises(ProviderTransportError):
        asyncio.run(client.initiate_stk_push(amount=1, phone="254712345678",
                                             reference="Order 1", description="d"))


def test_placeholder_passkey_is_config_error():
    daraja = FakeDaraja()
    client = _client(daraja, mpesa_passkey="YourSTKPushPassKey")
    with pytest.raises(ConfigurationError):
        asyncio.run(client.initiate_stk_push(amount=1, phone="254712345678",
                                             reference="Order 1", description="d"))
    assert daraja.requests == []
