"""Webhook update handling: onboarding, profile enrichment and reply routing."""

from __future__ import annotations

import random
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from api.services import telegram
from api.services.completion import KeyRotation, build_openai_client, get_completion
from api.services.cooldown import CooldownGate
from api.services.currency import (
    DEFAULT_CURRENCY,
    currency_from_location,
    currency_from_timezone,
)
from api.services.mood import detect_mood, fetch_quote_or_image, send_dynamic_content
from api.services.search import search_products, search_text
from api.services.user_store import UserStore
from api.utils.expiring import ExpiringFileRegistry
from api.utils.formatting import format_product_list


GROUP_REPLY_PROBABILITY = 0.2
DEFAULT_NICKNAME = "Friend"
PRODUCT_QUERY_PATTERN = re.compile(r"buy|price|inr|usd", re.IGNORECASE)

LOCATION_PROMPT = "Hi! To show prices in your currency, please share your location 📍"
NICKNAME_PROMPT = "Hey! How should I call you? 🤗"
CATEGORY_PROMPT = "Which category interests you the most?"
NO_PRODUCTS_MESSAGE = "No products found 😕 Try another keyword."
CONVERSATION_PROMPT = 'You are VIRTUAL_BUNNY, chatting with {nickname}. Reply naturally: "{text}"'


class BotContext:
    """Process-wide state and collaborators for one bot instance.

    Built on first use by ``api.index`` and swapped wholesale in
    tests, so the key cursor and cooldown map can be inspected or reset.
    """

    def __init__(
        self,
        store: UserStore,
        rotation: KeyRotation,
        cooldown: CooldownGate,
        config: Mapping[str, Any],
        *,
        random_fn: Callable[[], float] = random.random,
        send_msg: Callable[..., Any] = telegram.send_msg,
        send_photo: Callable[..., Any] = telegram.send_photo,
        answer_callback: Callable[[str], Any] = telegram.answer_callback_query,
        search_text: Callable[[str], str] = search_text,
        search_products: Callable[..., List[Dict[str, Any]]] = search_products,
        currency_from_location: Callable[[Any], str] = currency_from_location,
        fetch_content: Callable[[str], Dict[str, str]] = fetch_quote_or_image,
        client_factory: Callable[..., Any] = build_openai_client,
        temp_files: Optional[ExpiringFileRegistry] = None,
    ) -> None:
        self.store = store
        self.rotation = rotation
        self.cooldown = cooldown
        self.config = config
        self.random_fn = random_fn
        self.send_msg = send_msg
        self.send_photo = send_photo
        self.answer_callback = answer_callback
        self.search_text = search_text
        self.search_products = search_products
        self.currency_from_location = currency_from_location
        self.fetch_content = fetch_content
        self.client_factory = client_factory
        self.temp_files = temp_files if temp_files is not None else ExpiringFileRegistry()

    def complete(self, prompt: str) -> str:
        return get_completion(
            prompt,
            self.rotation,
            system_prompt=self.config["system_prompt"],
            model=self.config["completion_model"],
            base_url=self.config.get("completion_base_url"),
            search_fallback=self.search_text,
            client_factory=self.client_factory,
        )


def parse_update(update: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Reduce a Telegram update to the fields the bot acts on.

    Returns ``None`` when the update carries neither a message nor a
    callback query.
    """

    if not isinstance(update, Mapping):
        return None
    message = update.get("message")
    callback_query = update.get("callback_query")
    if not message and not callback_query:
        return None

    if message:
        chat = message.get("chat") or {}
        return {
            "chat_id": chat["id"],
            "chat_type": chat.get("type") or "private",
            "text": message.get("text") or "",
            "location": message.get("location"),
            "callback_id": None,
        }

    chat = (callback_query.get("message") or {}).get("chat") or {}
    return {
        "chat_id": chat["id"],
        "chat_type": "private",
        "text": callback_query.get("data") or "",
        "location": None,
        "callback_id": callback_query.get("id"),
    }


def send_onboarding_prompts(ctx: BotContext, chat_id: Any) -> None:
    ctx.send_msg(chat_id, LOCATION_PROMPT, telegram.location_keyboard())
    ctx.send_msg(chat_id, NICKNAME_PROMPT)
    ctx.send_msg(chat_id, CATEGORY_PROMPT, telegram.category_keyboard())


def enrich_profile(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> None:
    """Store location/currency, nickname and category derived from this update."""

    chat_id = incoming["chat_id"]
    text = incoming["text"]
    location = incoming["location"]

    if location:
        currency = ctx.currency_from_location(location)
        ctx.store.update(chat_id, {"location": location, "currency": currency})
    elif not profile.get("currency"):
        ctx.store.update(
            chat_id, {"currency": currency_from_timezone(ctx.config.get("default_timezone"))}
        )

    if text and not profile.get("nickname"):
        ctx.store.update(chat_id, {"nickname": text})

    if text in telegram.CATEGORIES and not profile.get("category"):
        ctx.store.update(chat_id, {"category": text})


def _is_group_cooldown(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> bool:
    if incoming["chat_type"] != "group":
        return False
    return ctx.random_fn() < GROUP_REPLY_PROBABILITY and ctx.cooldown.allow(incoming["chat_id"])


def _reply_group_mood(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> str:
    mood = detect_mood(incoming["text"], ctx.complete)
    send_dynamic_content(
        incoming["chat_id"],
        mood,
        send_text=ctx.send_msg,
        send_image=ctx.send_photo,
        fetch=ctx.fetch_content,
    )
    return "Group dynamic reply sent"


def _is_category(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> bool:
    return incoming["text"] in telegram.CATEGORIES


def _reply_category(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> str:
    text = incoming["text"]
    products = ctx.search_products(text, profile.get("currency") or DEFAULT_CURRENCY)
    ctx.send_msg(incoming["chat_id"], format_product_list(f"🛒 Top products in *{text}*:", products))
    return "Category products sent"


def _is_product_query(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> bool:
    return bool(PRODUCT_QUERY_PATTERN.search(incoming["text"]))


def _reply_product_query(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> str:
    text = incoming["text"]
    products = ctx.search_products(text, profile.get("currency") or DEFAULT_CURRENCY)
    if not products:
        ctx.send_msg(incoming["chat_id"], NO_PRODUCTS_MESSAGE)
    else:
        ctx.send_msg(
            incoming["chat_id"],
            format_product_list(f'🛒 Best matches for "{text}":', products),
        )
    return "Product results sent"


def _always(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> bool:
    return True


def _reply_conversation(ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]) -> str:
    prompt = CONVERSATION_PROMPT.format(
        nickname=profile.get("nickname") or DEFAULT_NICKNAME, text=incoming["text"]
    )
    reply = ctx.complete(prompt)
    ctx.send_msg(incoming["chat_id"], reply, telegram.category_keyboard())
    return "Message processed"


Guard = Callable[[BotContext, Mapping[str, Any], Mapping[str, Any]], bool]
Action = Callable[[BotContext, Mapping[str, Any], Mapping[str, Any]], str]

# evaluated in order, first matching guard wins
BRANCHES: List[Tuple[str, Guard, Action]] = [
    ("group_cooldown", _is_group_cooldown, _reply_group_mood),
    ("category", _is_category, _reply_category),
    ("product_query", _is_product_query, _reply_product_query),
    ("conversation", _always, _reply_conversation),
]


def select_branch(
    ctx: BotContext, incoming: Mapping[str, Any], profile: Mapping[str, Any]
) -> Tuple[str, Action]:
    for name, guard, action in BRANCHES:
        if guard(ctx, incoming, profile):
            return name, action
    raise LookupError("no reply branch matched")


def handle_update(update: Optional[Mapping[str, Any]], ctx: BotContext) -> Tuple[str, int]:
    ctx.temp_files.sweep()
    incoming = parse_update(update)
    if incoming is None:
        return "No message", 200

    chat_id = incoming["chat_id"]
    if incoming["callback_id"]:
        ctx.answer_callback(incoming["callback_id"])

    profile = ctx.store.get(chat_id)

    if not profile.get("initialized"):
        send_onboarding_prompts(ctx, chat_id)
        ctx.store.update(chat_id, {"initialized": True})
        return "Prompts sent", 200

    enrich_profile(ctx, incoming, profile)

    name, action = select_branch(ctx, incoming, profile)
    print(f"handle_update: chat {chat_id} -> {name}")
    return action(ctx, incoming, profile), 200


__all__ = [
    "BRANCHES",
    "BotContext",
    "enrich_profile",
    "handle_update",
    "parse_update",
    "select_branch",
    "send_onboarding_prompts",
]
