# connex/services/phone.py
from __future__ import annotations

import re

from ..errors import InvalidPhoneNumberError

_SEPARATORS = re.compile(r"[\s\-().]")
LOCAL_NUMBER_LENGTH = 9


def normalize_msisdn(phone: str, country_code: str = "254") -> str:
    """
    Canonical digits-only form used by M-Pesa (e.g. 254712345678).

      0712345678     -> 254712345678
      712345678      -> 254712345678
      254712345678   -> 254712345678
      +254 712-345678 -> 254712345678
    """
    cleaned = _SEPARATORS.sub("", phone or "")
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if not cleaned.isdigit():
        raise InvalidPhoneNumberError(phone)

    if cleaned.startswith(country_code):
        msisdn = cleaned
    elif cleaned.startswith("0"):
        msisdn = country_code + cleaned[1:]
    elif len(cleaned) == LOCAL_NUMBER_LENGTH:
        msisdn = country_code + cleaned
    else:
        raise InvalidPhoneNumberError(phone)

    if len(msisdn) != len(country_code) + LOCAL_NUMBER_LENGTH:
        raise InvalidPhoneNumberError(phone)
    return msisdn


def to_e164(phone: str, country_code: str = "254") -> str:
    """Same number with a leading '+', as the SMS gateway wants it."""
    return "+" + normalize_msisdn(phone, country_code)
