"""Currency conversion and location/timezone to currency lookups."""

from __future__ import annotations

from os import environ
from typing import Any, Mapping, Optional, Union

import requests

from api.utils.http import get_json


EXCHANGE_RATE_URL = "https://api.exchangerate.host/convert"
REVERSE_GEOCODE_URL = "https://nominatim.openstreetmap.org/reverse"

# Amounts already in the reporting currency skip the conversion call
BASE_CURRENCY = "INR"
DEFAULT_CURRENCY = "INR"

COUNTRY_CURRENCIES = {
    "US": "USD",
    "IN": "INR",
    "GB": "GBP",
    "FR": "EUR",
    "JP": "JPY",
    "CA": "CAD",
    "AU": "AUD",
}

TIMEZONE_CURRENCIES = {
    "Asia/Kolkata": "INR",
    "America/New_York": "USD",
    "Europe/London": "GBP",
    "Europe/Paris": "EUR",
    "Asia/Tokyo": "JPY",
}

Number = Union[int, float]


def convert_currency(amount: Number, target_currency: Optional[str]) -> Number:
    """Convert a USD ``amount`` into ``target_currency`` rounded to cents.

    Returns ``amount`` untouched when no conversion is needed or the API
    call fails.
    """

    if not target_currency or target_currency == BASE_CURRENCY:
        return amount

    parameters: dict = {"from": "USD", "to": target_currency, "amount": amount}
    access_key = environ.get("EXCHANGERATE_API_KEY")
    if access_key:
        parameters["access_key"] = access_key

    try:
        data = get_json(EXCHANGE_RATE_URL, params=parameters)
        result = data.get("result") if isinstance(data, dict) else None
        if result is None:
            return amount
        return round(float(result), 2)
    except (requests.RequestException, ValueError, TypeError) as e:
        print(f"Currency conversion error: {e}")
        return amount


def currency_from_country_code(code: Optional[str]) -> str:
    return COUNTRY_CURRENCIES.get((code or "").upper(), DEFAULT_CURRENCY)


def currency_from_location(location: Optional[Mapping[str, Any]]) -> str:
    """Reverse-geocode ``{"latitude", "longitude"}`` and map the country to a currency."""

    if not location:
        return DEFAULT_CURRENCY

    try:
        data = get_json(
            REVERSE_GEOCODE_URL,
            params={
                "lat": location["latitude"],
                "lon": location["longitude"],
                "format": "json",
            },
        )
        country_code = ((data or {}).get("address") or {}).get("country_code")
        return currency_from_country_code(country_code)
    except (requests.RequestException, ValueError, KeyError, TypeError, AttributeError) as e:
        print(f"Location to currency error: {e}")
        return DEFAULT_CURRENCY


def currency_from_timezone(timezone_name: Optional[str]) -> str:
    if not timezone_name:
        return DEFAULT_CURRENCY
    return TIMEZONE_CURRENCIES.get(timezone_name, DEFAULT_CURRENCY)


__all__ = [
    "BASE_CURRENCY",
    "COUNTRY_CURRENCIES",
    "DEFAULT_CURRENCY",
    "TIMEZONE_CURRENCIES",
    "convert_currency",
    "currency_from_country_code",
    "currency_from_location",
    "currency_from_timezone",
]
