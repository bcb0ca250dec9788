"""DuckDuckGo instant-answer lookups used as the search fallback."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Union

from api.services.currency import DEFAULT_CURRENCY, convert_currency
from api.utils.formatting import extract_usd_price
from api.utils.http import get_json


DUCKDUCKGO_API_URL = "https://api.duckduckgo.com/"
DUCKDUCKGO_HOME = "https://duckduckgo.com"

SEARCH_NO_RESULTS = "Sorry, I couldn't find an answer."
SEARCH_ERROR = "Sorry, something went wrong fetching results."

DEFAULT_TEXT_RESULTS = 3
DEFAULT_PRODUCT_RESULTS = 5

ConvertFn = Callable[[Union[int, float], Optional[str]], Union[int, float]]


def fetch_related_topics(query: str) -> List[Dict[str, Any]]:
    """Return the ``RelatedTopics`` entries for ``query``.

    Category groups (entries carrying their own ``Topics`` list) are
    flattened so every item exposes ``Text``/``FirstURL`` directly.
    Network and decoding errors propagate.
    """

    data = get_json(
        DUCKDUCKGO_API_URL,
        params={"q": query, "format": "json", "no_html": 1},
    )
    topics: List[Dict[str, Any]] = []
    for entry in data.get("RelatedTopics") or []:
        if not isinstance(entry, dict):
            continue
        nested = entry.get("Topics")
        if isinstance(nested, list):
            topics.extend(item for item in nested if isinstance(item, dict))
        else:
            topics.append(entry)
    return topics


def search_text(query: str, max_results: int = DEFAULT_TEXT_RESULTS) -> str:
    try:
        topics = fetch_related_topics(query)[: max(0, max_results)]
        if not topics:
            return SEARCH_NO_RESULTS
        return "\n\n".join(
            str(topic.get("Text") or topic.get("FirstURL") or "") for topic in topics
        )
    except Exception as e:
        print(f"DuckDuckGo fetch error: {e}")
        return SEARCH_ERROR


def search_products(
    query: str,
    currency: str = DEFAULT_CURRENCY,
    max_results: int = DEFAULT_PRODUCT_RESULTS,
    convert: ConvertFn = convert_currency,
) -> List[Dict[str, Any]]:
    """Look up ``query`` and shape each related topic as a priced product."""

    try:
        topics = fetch_related_topics(query)[: max(0, max_results)]
        products = []
        for item in topics:
            text = item.get("Text") or ""
            price_usd = extract_usd_price(text)
            products.append(
                {
                    "title": text or item.get("FirstURL") or "",
                    "link": item.get("FirstURL") or DUCKDUCKGO_HOME,
                    "description": text,
                    "price": convert(price_usd, currency),
                    "currency": currency,
                }
            )
        return products
    except Exception as e:
        print(f"Product search error: {e}")
        return []


__all__ = [
    "DEFAULT_PRODUCT_RESULTS",
    "DEFAULT_TEXT_RESULTS",
    "SEARCH_ERROR",
    "SEARCH_NO_RESULTS",
    "fetch_related_topics",
    "search_products",
    "search_text",
]
