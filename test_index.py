from unittest.mock import patch, MagicMock
import json
import os
import pytest

from api.handler import (
    BRANCHES,
    CATEGORY_PROMPT,
    LOCATION_PROMPT,
    NICKNAME_PROMPT,
    NO_PRODUCTS_MESSAGE,
    BotContext,
    handle_update,
    parse_update,
    select_branch,
)
from api.index import (
    admin_report,
    app,
    get_bot_context,
    set_bot_context,
)
from api.services.completion import KeyRotation
from api.services.cooldown import CooldownGate
from api.services.telegram import category_keyboard, location_keyboard
from api.services.user_store import JsonFileUserStore
from api.utils.expiring import ExpiringFileRegistry


CONFIG = {
    "telegram_token": "test_token",
    "api_keys": ["k1", "k2"],
    "system_prompt": "You are VIRTUAL_BUNNY, a cheerful, friendly, witty assistant.",
    "completion_model": "gpt-3.5-turbo",
    "completion_base_url": None,
    "user_store_path": "unused",
    "user_store_backend": "file",
    "default_timezone": "Asia/Kolkata",
}

PRODUCTS = [
    {
        "title": "Wireless earbuds",
        "link": "https://duckduckgo.com/Earbuds",
        "description": "Wireless earbuds",
        "price": 42.5,
        "currency": "USD",
    },
    {
        "title": "Smart watch",
        "link": "https://duckduckgo.com/Watch",
        "description": "Smart watch",
        "price": 100,
        "currency": "USD",
    },
]


def _completion_client(content="Hey there! 🐰"):
    client = MagicMock()
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    client.chat.completions.create.return_value = response
    return client


def _message(text=None, chat_id=1, chat_type="private", location=None):
    message = {"message_id": 10, "chat": {"id": chat_id, "type": chat_type}}
    if text is not None:
        message["text"] = text
    if location is not None:
        message["location"] = location
    return {"update_id": 100, "message": message}


def _callback(data, chat_id=1):
    return {
        "update_id": 101,
        "callback_query": {
            "id": "cbq-1",
            "data": data,
            "message": {"message_id": 11, "chat": {"id": chat_id, "type": "private"}},
        },
    }


@pytest.fixture
def clock():
    return [1000.0]


@pytest.fixture
def bot(tmp_path, clock):
    ctx = BotContext(
        store=JsonFileUserStore(str(tmp_path / "users.json")),
        rotation=KeyRotation(CONFIG["api_keys"]),
        cooldown=CooldownGate(clock=lambda: clock[0]),
        config=CONFIG,
        random_fn=MagicMock(return_value=0.5),
        send_msg=MagicMock(return_value=1),
        send_photo=MagicMock(return_value=2),
        answer_callback=MagicMock(),
        search_text=MagicMock(return_value="search says hi"),
        search_products=MagicMock(return_value=PRODUCTS),
        currency_from_location=MagicMock(return_value="USD"),
        fetch_content=MagicMock(return_value={"type": "text", "text": "Smile!"}),
        client_factory=MagicMock(return_value=_completion_client()),
        temp_files=ExpiringFileRegistry(str(tmp_path)),
    )
    set_bot_context(ctx)
    yield ctx
    set_bot_context(None)


@pytest.fixture
def client(bot):
    return app.test_client()


def _post(client, update):
    response = client.post("/", json=update)
    return response.get_data(as_text=True), response.status_code


def _onboard(bot, chat_id=1, **profile):
    bot.store.update(chat_id, {"initialized": True, **profile})


# Responder


def test_responder_rejects_non_post(client):
    response = client.get("/")
    assert response.status_code == 405
    assert response.get_data(as_text=True) == "Method not allowed"


def test_responder_no_message(client, bot):
    assert _post(client, {"update_id": 1, "edited_message": {}}) == ("No message", 200)
    bot.send_msg.assert_not_called()


def test_responder_invalid_json_counts_as_no_message(client, bot):
    response = client.post("/", data="not json", content_type="text/plain")
    assert (response.get_data(as_text=True), response.status_code) == ("No message", 200)


def test_responder_internal_error_returns_500(client, bot):
    bot.store = MagicMock()
    bot.store.get.side_effect = RuntimeError("disk on fire")
    with patch("api.index.admin_report") as mock_admin:
        assert _post(client, _message("hi")) == ("Error processing request", 500)
    mock_admin.assert_called_once()
    assert "disk on fire" in mock_admin.call_args[0][0]


def test_responder_webhook_check_requires_key(client):
    with patch.dict(
        os.environ,
        {"WEBHOOK_AUTH_KEY": "secret", "TELEGRAM_TOKEN": "tok", "FUNCTION_URL": "https://fn"},
    ), patch("api.index.admin_report") as mock_admin:
        response = client.get("/?check_webhook=true&key=wrong")
        assert (response.get_data(as_text=True), response.status_code) == ("Wrong key", 400)
        mock_admin.assert_called_once_with("Wrong key attempt")


def test_responder_webhook_check_and_update(client):
    env = {"WEBHOOK_AUTH_KEY": "secret", "TELEGRAM_TOKEN": "tok", "FUNCTION_URL": "https://fn"}
    with patch.dict(os.environ, env), patch(
        "api.services.telegram.verify_webhook", return_value=True
    ) as mock_verify, patch(
        "api.services.telegram.set_webhook", return_value=False
    ) as mock_set:
        response = client.get("/?check_webhook=true&key=secret")
        assert (response.get_data(as_text=True), response.status_code) == (
            "Webhook checked",
            200,
        )
        mock_verify.assert_called_once_with("tok", "https://fn")

        response = client.get("/?update_webhook=true&key=secret")
        assert (response.get_data(as_text=True), response.status_code) == (
            "Webhook update error",
            400,
        )
        mock_set.assert_called_once_with("tok", "https://fn")


def test_get_bot_context_builds_from_config(tmp_path):
    set_bot_context(None)
    config = dict(CONFIG, user_store_path=str(tmp_path / "users.json"))
    with patch("api.index.load_bot_config", return_value=config):
        ctx = get_bot_context()
        assert get_bot_context() is ctx
    assert isinstance(ctx.store, JsonFileUserStore)
    assert ctx.rotation.keys == ["k1", "k2"]
    set_bot_context(None)


def test_admin_report_basic():
    with patch("api.index.telegram.send_msg") as mock_send_msg, patch.dict(
        os.environ, {"ADMIN_CHAT_ID": "12345", "FRIENDLY_INSTANCE_NAME": "test_instance"}
    ):
        admin_report("test message", extra_context={"chat_id": 1})
        mock_send_msg.assert_called_once_with(
            "12345",
            "Admin report from test_instance: test message\n\nAdditional Context:\nchat_id: 1",
            parse_mode=None,
        )


def test_admin_report_without_instance_name():
    with patch("api.index.telegram.send_msg") as mock_send_msg, patch.dict(
        os.environ, {"ADMIN_CHAT_ID": "12345"}
    ):
        os.environ.pop("FRIENDLY_INSTANCE_NAME", None)
        admin_report("test message")
        mock_send_msg.assert_called_once_with(
            "12345", "Admin report from unknown: test message", parse_mode=None
        )


# Update parsing and branch table


def test_parse_update_shapes():
    assert parse_update({}) is None
    assert parse_update(None) is None
    assert parse_update(_message("hi", chat_id=5, chat_type="group")) == {
        "chat_id": 5,
        "chat_type": "group",
        "text": "hi",
        "location": None,
        "callback_id": None,
    }
    assert parse_update(_callback("Books", chat_id=6)) == {
        "chat_id": 6,
        "chat_type": "private",
        "text": "Books",
        "location": None,
        "callback_id": "cbq-1",
    }
    location = {"latitude": 1.0, "longitude": 2.0}
    assert parse_update(_message(location=location))["text"] == ""


def test_branch_order():
    assert [name for name, _, _ in BRANCHES] == [
        "group_cooldown",
        "category",
        "product_query",
        "conversation",
    ]


@pytest.mark.parametrize(
    "text,chat_type,expected",
    [
        ("Books", "private", "category"),
        ("Books", "group", "group_cooldown"),
        ("what's the PRICE", "private", "product_query"),
        ("I want to buy shoes", "group", "group_cooldown"),
        ("how much in usd", "private", "product_query"),
        ("hello there", "private", "conversation"),
        ("books", "private", "conversation"),
        ("", "private", "conversation"),
    ],
)
def test_select_branch_priority(bot, text, chat_type, expected):
    bot.random_fn.return_value = 0.0
    incoming = {
        "chat_id": 1,
        "chat_type": chat_type,
        "text": text,
        "location": None,
        "callback_id": None,
    }
    name, _ = select_branch(bot, incoming, {})
    assert name == expected


# Webhook flows


def test_first_contact_sends_three_prompts(client, bot):
    assert _post(client, _message("Hello")) == ("Prompts sent", 200)

    assert bot.send_msg.call_count == 3
    calls = bot.send_msg.call_args_list
    assert calls[0][0] == (1, LOCATION_PROMPT, location_keyboard())
    assert calls[1][0] == (1, NICKNAME_PROMPT)
    assert calls[2][0] == (1, CATEGORY_PROMPT, category_keyboard())
    assert bot.store.get(1) == {"initialized": True}


def test_first_contact_from_callback(client, bot):
    assert _post(client, _callback("Books", chat_id=9)) == ("Prompts sent", 200)
    bot.answer_callback.assert_called_once_with("cbq-1")
    assert bot.send_msg.call_count == 3
    assert bot.store.get(9) == {"initialized": True}


def test_nickname_then_conversation(client, bot):
    _post(client, _message("Hello"))
    bot.send_msg.reset_mock()

    assert _post(client, _message("Alex")) == ("Message processed", 200)

    profile = bot.store.get(1)
    assert profile["nickname"] == "Alex"
    assert profile["currency"] == "INR"
    assert "category" not in profile

    create = bot.client_factory.return_value.chat.completions.create
    messages = create.call_args[1]["messages"]
    assert messages[0] == {"role": "system", "content": CONFIG["system_prompt"]}
    assert messages[1]["content"] == (
        'You are VIRTUAL_BUNNY, chatting with Friend. Reply naturally: "Alex"'
    )
    bot.send_msg.assert_called_once_with(1, "Hey there! 🐰", category_keyboard())


def test_conversation_uses_stored_nickname(client, bot):
    _onboard(bot, nickname="Alex", currency="INR")

    _post(client, _message("tell me a joke"))

    create = bot.client_factory.return_value.chat.completions.create
    assert "chatting with Alex." in create.call_args[1]["messages"][1]["content"]


def test_nickname_is_never_overwritten(client, bot):
    _onboard(bot, nickname="Alex", currency="INR")

    for text in ("Sam", "Electronics", "buy a phone", "Jordan"):
        _post(client, _message(text))
        assert bot.store.get(1)["nickname"] == "Alex"


def test_button_press_can_become_nickname(client, bot):
    _onboard(bot)
    _post(client, _callback("Toys"))
    profile = bot.store.get(1)
    assert profile["nickname"] == "Toys"
    assert profile["category"] == "Toys"


def test_category_is_set_once(client, bot):
    _onboard(bot, nickname="Alex", currency="INR")

    _post(client, _callback("Books"))
    assert bot.store.get(1)["category"] == "Books"

    _post(client, _callback("Fashion"))
    assert bot.store.get(1)["category"] == "Books"


def test_category_lists_products_in_user_currency(client, bot):
    _onboard(bot, nickname="Alex", currency="USD")

    assert _post(client, _message("Electronics")) == ("Category products sent", 200)

    bot.search_products.assert_called_once_with("Electronics", "USD")
    reply = bot.send_msg.call_args[0][1]
    assert reply.startswith("🛒 Top products in *Electronics*:\n\n")
    assert "1. [Wireless earbuds](https://duckduckgo.com/Earbuds)\nPrice: 42.50 USD" in reply
    assert "2. [Smart watch](https://duckduckgo.com/Watch)\nPrice: 100 USD" in reply


def test_product_query_results(client, bot):
    _onboard(bot, nickname="Alex", currency="INR")

    assert _post(client, _message("Where to BUY headphones")) == (
        "Product results sent",
        200,
    )
    bot.search_products.assert_called_once_with("Where to BUY headphones", "INR")
    assert bot.send_msg.call_args[0][1].startswith(
        '🛒 Best matches for "Where to BUY headphones":'
    )


def test_product_query_without_results(client, bot):
    _onboard(bot, nickname="Alex", currency="INR")
    bot.search_products.return_value = []

    assert _post(client, _message("price of unobtainium")) == ("Product results sent", 200)
    bot.send_msg.assert_called_once_with(1, NO_PRODUCTS_MESSAGE)


def test_location_sets_and_overwrites_currency(client, bot):
    _onboard(bot, nickname="Alex", currency="INR")
    london = {"latitude": 51.5, "longitude": -0.12}

    _post(client, _message(location=london))
    profile = bot.store.get(1)
    assert profile["location"] == london
    assert profile["currency"] == "USD"
    bot.currency_from_location.assert_called_once_with(london)

    bot.currency_from_location.return_value = "JPY"
    tokyo = {"latitude": 35.6, "longitude": 139.7}
    _post(client, _message(location=tokyo))
    profile = bot.store.get(1)
    assert profile["location"] == tokyo
    assert profile["currency"] == "JPY"


def test_existing_currency_is_kept_without_location(client, bot):
    _onboard(bot, nickname="Alex", currency="GBP")
    _post(client, _message("hello"))
    assert bot.store.get(1)["currency"] == "GBP"
    bot.currency_from_location.assert_not_called()


def test_group_cooldown_allows_one_dynamic_reply(client, bot, clock):
    _onboard(bot, chat_id=-100, nickname="Crew", currency="INR")
    bot.random_fn.return_value = 0.1
    mood_client = _completion_client("Happy")
    bot.client_factory.return_value = mood_client

    first = _post(client, _message("we won!!", chat_id=-100, chat_type="group"))
    clock[0] += 90
    second = _post(client, _message("so good", chat_id=-100, chat_type="group"))

    statuses = [first[0], second[0]]
    assert statuses.count("Group dynamic reply sent") == 1
    assert statuses == ["Group dynamic reply sent", "Message processed"]
    bot.fetch_content.assert_called_once_with("happy")
    bot.send_msg.assert_any_call(-100, "Smile!")

    clock[0] += 31
    third = _post(client, _message("again", chat_id=-100, chat_type="group"))
    assert third[0] == "Group dynamic reply sent"


def test_group_dynamic_reply_sends_photo(client, bot):
    _onboard(bot, chat_id=-5, nickname="Crew", currency="INR")
    bot.random_fn.return_value = 0.0
    bot.client_factory.return_value = _completion_client(" SAD ")
    bot.fetch_content.return_value = {"type": "image", "url": "https://img.example/sad"}

    assert _post(client, _message("rainy day", chat_id=-5, chat_type="group")) == (
        "Group dynamic reply sent",
        200,
    )
    bot.send_photo.assert_called_once_with(-5, "https://img.example/sad", "Mood: sad")


def test_group_without_luck_falls_through(client, bot):
    _onboard(bot, chat_id=-5, nickname="Crew", currency="INR")
    bot.random_fn.return_value = 0.5

    assert _post(client, _message("Books", chat_id=-5, chat_type="group")) == (
        "Category products sent",
        200,
    )
    assert bot.cooldown.last_reply(-5) is None


def test_supergroup_is_not_cooldown_eligible(client, bot):
    _onboard(bot, chat_id=-7, nickname="Crew", currency="INR")
    bot.random_fn.return_value = 0.0
    assert _post(client, _message("hey", chat_id=-7, chat_type="supergroup")) == (
        "Message processed",
        200,
    )


def test_all_keys_failing_replies_with_search_fallback(client, bot):
    _onboard(bot, nickname="Alex", currency="INR")
    failing = MagicMock()
    failing.chat.completions.create.side_effect = Exception("quota exceeded")
    bot.client_factory.return_value = failing

    assert _post(client, _message("who are you")) == ("Message processed", 200)

    prompt = 'You are VIRTUAL_BUNNY, chatting with Alex. Reply naturally: "who are you"'
    bot.search_text.assert_called_once_with(prompt)
    bot.send_msg.assert_called_once_with(1, "search says hi", category_keyboard())
    assert failing.chat.completions.create.call_count == 2
    assert bot.rotation.index == 0


def test_key_rotation_state_persists_across_updates(client, bot):
    _onboard(bot, nickname="Alex", currency="INR")
    failing = MagicMock()
    failing.chat.completions.create.side_effect = Exception("401")
    working = _completion_client("from second key")
    bot.client_factory.side_effect = lambda key, base_url: {"k1": failing, "k2": working}[key]

    _post(client, _message("hi"))
    assert bot.rotation.current() == "k2"

    _post(client, _message("hi again"))
    assert failing.chat.completions.create.call_count == 1
    bot.send_msg.assert_called_with(1, "from second key", category_keyboard())


def test_handle_update_sweeps_expired_files(bot, clock, tmp_path):
    registry = MagicMock()
    bot.temp_files = registry
    assert handle_update({}, bot) == ("No message", 200)
    registry.sweep.assert_called_once()


def test_store_file_layout(client, bot, tmp_path):
    _post(client, _message("Hello", chat_id=77))
    _post(client, _message("Alex", chat_id=77))
    stored = json.loads((tmp_path / "users.json").read_text())
    assert stored == {"77": {"initialized": True, "currency": "INR", "nickname": "Alex"}}
