"""Formatting and parsing helpers shared across the bot."""

import re
from typing import Any, Dict, Iterable, Optional, Union
from decimal import Decimal

__all__ = [
    "DEFAULT_PRICE_USD",
    "extract_usd_price",
    "fmt_price",
    "format_product_list",
    "truncate_text",
]

DEFAULT_PRICE_USD = 100
PRICE_PATTERN = re.compile(r"\$(\d+)")


def extract_usd_price(text: Optional[str], default: float = DEFAULT_PRICE_USD) -> float:
    """Return the first ``$<digits>`` amount found in ``text`` or ``default``."""
    if not text:
        return default
    match = PRICE_PATTERN.search(text)
    if not match:
        return default
    return float(match.group(1))


def fmt_price(value: Union[float, int, Decimal, str]) -> str:
    """Render a price with two decimals, or whole when it has no fraction."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:.2f}"


def format_product_list(header: str, products: Iterable[Dict[str, Any]]) -> str:
    """Build the Markdown product reply: header then a numbered entry per product."""
    reply = f"{header}\n\n"
    for i, product in enumerate(products, 1):
        reply += (
            f"{i}. [{product.get('title', '')}]({product.get('link', '')})\n"
            f"Price: {fmt_price(product.get('price', ''))} {product.get('currency', '')}\n"
            f"{product.get('description', '')}\n\n"
        )
    return reply


def truncate_text(text: Optional[str], max_length: int = 512) -> str:
    """Truncate text to max_length and add ellipsis if needed"""

    if text is None:
        return ""

    if max_length <= 0:
        return ""

    if max_length <= 3:
        return "." * max_length

    if len(text) <= max_length:
        return text

    return text[: max_length - 3] + "..."
