"""Telegram Bot API calls used by the webhook."""

from __future__ import annotations

import json
from os import environ
from typing import Any, Dict, List, Optional, Sequence, Union

import requests
from requests.exceptions import RequestException


TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/{method}"
TELEGRAM_TIMEOUT = 5

CATEGORIES = [
    "Electronics",
    "Fashion",
    "Beauty",
    "Home",
    "Sports",
    "Toys",
    "Books",
    "Accessories",
]

ALLOWED_UPDATES = ["message", "callback_query"]


def _api_url(method: str) -> str:
    return TELEGRAM_API_URL.format(token=environ.get("TELEGRAM_TOKEN"), method=method)


def category_keyboard(categories: Sequence[str] = CATEGORIES) -> Dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": category, "callback_data": category}] for category in categories
        ]
    }


def location_keyboard() -> Dict[str, Any]:
    return {
        "keyboard": [[{"text": "Share Location", "request_location": True}]],
        "one_time_keyboard": True,
    }


def _post(method: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        response = requests.post(_api_url(method), json=payload, timeout=TELEGRAM_TIMEOUT)
        response.raise_for_status()
        data = response.json()
    except (RequestException, ValueError) as e:
        print(f"Telegram {method} error: {e}")
        return None
    if not isinstance(data, dict) or not data.get("ok"):
        print(f"Telegram {method} rejected: {data}")
        return None
    return data


def send_msg(
    chat_id: Union[str, int],
    msg: str,
    reply_markup: Optional[Dict[str, Any]] = None,
    parse_mode: Optional[str] = "Markdown",
) -> Optional[int]:
    payload: Dict[str, Any] = {"chat_id": chat_id, "text": msg}
    if parse_mode:
        payload["parse_mode"] = parse_mode
    if reply_markup is not None:
        payload["reply_markup"] = reply_markup

    data = _post("sendMessage", payload)
    if data and isinstance(data.get("result"), dict):
        message_id = data["result"].get("message_id")
        if isinstance(message_id, int):
            return message_id
    return None


def send_photo(chat_id: Union[str, int], photo_url: str, caption: str = "") -> Optional[int]:
    payload = {"chat_id": chat_id, "photo": photo_url, "caption": caption}
    data = _post("sendPhoto", payload)
    if data and isinstance(data.get("result"), dict):
        message_id = data["result"].get("message_id")
        if isinstance(message_id, int):
            return message_id
    return None


def answer_callback_query(callback_query_id: str) -> None:
    _post("answerCallbackQuery", {"callback_query_id": callback_query_id})


def get_webhook_info(token: str) -> Dict[str, Union[str, dict]]:
    request_url = TELEGRAM_API_URL.format(token=token, method="getWebhookInfo")
    try:
        telegram_response = requests.get(request_url, timeout=TELEGRAM_TIMEOUT)
        telegram_response.raise_for_status()
    except RequestException as request_error:
        return {"error": str(request_error)}
    return telegram_response.json()["result"]


def set_webhook(token: str, webhook_url: str, allowed_updates: List[str] = ALLOWED_UPDATES) -> bool:
    parameters = {
        "url": webhook_url,
        "allowed_updates": json.dumps(allowed_updates),
        "max_connections": 8,
    }
    request_url = TELEGRAM_API_URL.format(token=token, method="setWebhook")
    try:
        telegram_response = requests.get(
            request_url, params=parameters, timeout=TELEGRAM_TIMEOUT
        )
        telegram_response.raise_for_status()
    except RequestException:
        return False
    return bool(telegram_response.json().get("ok"))


def verify_webhook(token: str, webhook_url: str) -> bool:
    webhook_info = get_webhook_info(token)
    if "error" in webhook_info:
        return False
    return webhook_info.get("url") == webhook_url


__all__ = [
    "ALLOWED_UPDATES",
    "CATEGORIES",
    "answer_callback_query",
    "category_keyboard",
    "get_webhook_info",
    "location_keyboard",
    "send_msg",
    "send_photo",
    "set_webhook",
    "verify_webhook",
]
