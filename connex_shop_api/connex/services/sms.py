# connex/services/sms.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ConfigurationError, NotificationError, ProviderTransportError
from ..events import E, log_event
from ..log import get_logger
from ..settings import Settings
from .phone import to_e164

logger = get_logger(__name__)

MESSAGING_PATH = "/version1/messaging"
# Africa's Talking per-recipient codes: 100 processed, 101 sent, 102 queued
AT_SUCCESS_CODES = {100, 101, 102}

PICKUP_TEMPLATE = (
    "Hello! Your order #{order_id} ({items}) is ready for pickup at {shop}. Thank you!"
)


def pickup_message(order_id: int, item_summary: str, shop_name: str) -> str:
    return PICKUP_TEMPLATE.format(order_id=order_id, items=item_summary, shop=shop_name)


class SmsSender:
    """Sends single-recipient messages through the Africa's Talking REST API."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.at_base_url,
            timeout=settings.provider_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, to: str, message: str) -> Dict[str, Any]:
        if not self.settings.at_api_key:
            raise ConfigurationError("AT_API_KEY is not configured")

        form = {
            "username": self.settings.at_username,
            "to": to,
            "message": message,
        }
        if self.settings.at_sender_id:
            form["from"] = self.settings.at_sender_id

        headers = {
            "apiKey": self.settings.at_api_key,
            "Accept": "application/json",
        }
        try:
            resp = await self._client.post(MESSAGING_PATH, data=form, headers=headers)
        except httpx.RequestError as exc:
            raise ProviderTransportError("africastalking", str(exc)) from exc

        if not resp.is_success:
            raise NotificationError(f"SMS gateway HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise NotificationError(f"SMS gateway returned non-JSON body: {resp.text[:200]}") from exc

        recipients = ((data or {}).get("SMSMessageData") or {}).get("Recipients") or []
        if not recipients:
            raise NotificationError(f"SMS not accepted: {data}")
        failed = [r for r in recipients if r.get("statusCode") not in AT_SUCCESS_CODES]
        if failed:
            raise NotificationError(f"SMS rejected for {failed[0].get('number')}: {failed[0].get('status')}")
        return data

    async def send_pickup_notice(
        self, phone_number: str, order_id: int, item_summary: str
    ) -> Dict[str, Any]:
        to = to_e164(phone_number, self.settings.country_code)
        message = pickup_message(order_id, item_summary, self.settings.shop_name)
        try:
            data = await self.send(to, message)
        except Exception as exc:
            log_event(logger, E.SMS_SEND_FAIL, level=logging.ERROR, order_id=order_id, to=to, error=exc)
            raise
        log_event(logger, E.SMS_SEND, order_id=order_id, to=to)
        return data
