"""Utility helpers for the VIRTUAL_BUNNY bot."""

from api.utils.formatting import (
    DEFAULT_PRICE_USD,
    extract_usd_price,
    fmt_price,
    format_product_list,
    truncate_text,
)
from api.utils.expiring import TTL_TEMP_FILE, ExpiringFileRegistry
from api.utils.http import get_json, request_with_ssl_fallback

__all__ = [
    "DEFAULT_PRICE_USD",
    "extract_usd_price",
    "fmt_price",
    "format_product_list",
    "truncate_text",
    "TTL_TEMP_FILE",
    "ExpiringFileRegistry",
    "get_json",
    "request_with_ssl_fallback",
]
