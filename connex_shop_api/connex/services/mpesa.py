# connex/services/mpesa.py
from __future__ import annotations

import asyncio
import base64
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from ..errors import (
    ConfigurationError,
    PaymentRejectedError,
    ProviderAuthError,
    ProviderTransportError,
)
from ..events import E, log_event
from ..log import get_logger
from ..settings import Settings

logger = get_logger(__name__)

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
PLACEHOLDER_PASSKEY = "YourSTKPushPassKey"
STK_SUCCESS_CODE = "0"
# refresh a little before the provider says the token dies
TOKEN_EXPIRY_MARGIN = 60


def stk_timestamp(now: Optional[datetime] = None) -> str:
    """UTC time as the 14-digit YYYYMMDDHHMMSS string Daraja expects."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y%m%d%H%M%S")


def stk_password(short_code: str, passkey: str, timestamp: str) -> str:
    raw = f"{short_code}{passkey}{timestamp}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def basic_auth_header(consumer_key: str, consumer_secret: str) -> str:
    raw = f"{consumer_key}:{consumer_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


class MpesaClient:
    """
    Thin client for Daraja's OAuth and STK push endpoints.

    The access token is cached until shortly before its ``expires_in``; the
    only other state is the underlying httpx client, closed via ``aclose``.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.mpesa_base_url,
            timeout=settings.provider_timeout_seconds,
        )
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _check_config(self) -> None:
        s = self.settings
        if not s.mpesa_consumer_key or not s.mpesa_consumer_secret:
            raise ConfigurationError("MPESA_CONSUMER_KEY / MPESA_CONSUMER_SECRET are not configured")
        if not s.mpesa_passkey or s.mpesa_passkey == PLACEHOLDER_PASSKEY:
            raise ConfigurationError("MPESA_PASSKEY is missing or still set to the placeholder")
        if not s.mpesa_callback_url:
            raise ConfigurationError("MPESA_CALLBACK_URL is not configured")

    async def get_access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            headers = {
                "Authorization": basic_auth_header(
                    self.settings.mpesa_consumer_key or "",
                    self.settings.mpesa_consumer_secret or "",
                )
            }
            try:
                resp = await self._client.get(
                    TOKEN_PATH,
                    params={"grant_type": "client_credentials"},
                    headers=headers,
                )
            except httpx.RequestError as exc:
                log_event(logger, E.PAYMENT_TOKEN_FAIL, level=logging.ERROR, reason="transport", error=exc)
                raise ProviderTransportError("mpesa-oauth", str(exc)) from exc

            try:
                data = resp.json() if resp.is_success else {}
            except ValueError:
                data = {}
            token = data.get("access_token")
            if not token:
                log_event(
                    logger, E.PAYMENT_TOKEN_FAIL, level=logging.ERROR,
                    reason="auth", status=resp.status_code, body=resp.text[:200],
                )
                raise ProviderAuthError(f"M-Pesa token generation failed (HTTP {resp.status_code})")

            try:
                ttl = int(data.get("expires_in") or 0)
            except (TypeError, ValueError):
                ttl = 0
            self._token = token
            self._token_expires_at = time.monotonic() + max(0, ttl - TOKEN_EXPIRY_MARGIN)
            return token

    async def submit_payment_request(
        self,
        *,
        token: str,
        amount: int,
        phone: str,
        reference: str,
        description: str,
        timestamp: Optional[str] = None,
    ) -> Dict[str, Any]:
        s = self.settings
        timestamp = timestamp or stk_timestamp()
        payload = {
            "BusinessShortCode": s.mpesa_shortcode,
            "Password": stk_password(s.mpesa_shortcode, s.mpesa_passkey or "", timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": phone,
            "PartyB": s.mpesa_shortcode,
            "PhoneNumber": phone,
            "CallBackURL": s.mpesa_callback_url,
            "AccountReference": reference,
            "TransactionDesc": description,
        }
        try:
            resp = await self._client.post(
                STK_PUSH_PATH,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as exc:
            raise ProviderTransportError("mpesa-stkpush", str(exc)) from exc

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not resp.is_success or not isinstance(data, dict):
            code = data.get("errorCode") if isinstance(data, dict) else None
            raise PaymentRejectedError(code, f"HTTP {resp.status_code}: {resp.text[:200]}")

        if str(data.get("ResponseCode")) != STK_SUCCESS_CODE or not data.get("CheckoutRequestID"):
            raise PaymentRejectedError(data.get("ResponseCode"), data.get("ResponseDescription", ""))
        return data

    async def initiate_stk_push(
        self, *, amount: int, phone: str, reference: str, description: str
    ) -> Dict[str, Any]:
        """Token exchange + STK push. Returns the provider's acceptance body."""
        self._check_config()
        token = await self.get_access_token()
        return await self.submit_payment_request(
            token=token,
            amount=amount,
            phone=phone,
            reference=reference,
            description=description,
        )
