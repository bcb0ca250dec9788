from flask import Flask, Request, request
from os import environ
from typing import Any, Dict, Mapping, Optional, Tuple
import traceback

from api.config import (
    config_redis as _config_config_redis,
    configure as configure_app_config,
    load_bot_config as _config_load_bot_config,
)
from api.handler import BotContext, handle_update
from api.services import telegram
from api.services import user_store as user_store_service
from api.services.completion import KeyRotation
from api.services.cooldown import CooldownGate
from api.services.user_store import build_user_store
from api.utils.formatting import truncate_text


ADMIN_REPORT_MAX_CHARS = 4000

_bot_context: Optional[BotContext] = None


def config_redis(host=None, port=None, password=None):
    return _config_config_redis(host=host, port=port, password=password)


def load_bot_config() -> Dict[str, Any]:
    return _config_load_bot_config()


def get_instance_name() -> str:
    return environ.get("FRIENDLY_INSTANCE_NAME") or "unknown"


def admin_report(
    message: str,
    error: Optional[Exception] = None,
    extra_context: Optional[Dict] = None,
) -> None:
    """Enhanced admin reporting with optional error details and extra context"""
    admin_chat_id = environ.get("ADMIN_CHAT_ID")
    instance_name = get_instance_name()

    # Basic error message
    formatted_message = f"Admin report from {instance_name}: {message}"

    # Add extra context if provided
    if extra_context:
        context_details = "\n\nAdditional Context:"
        for key, value in extra_context.items():
            context_details += f"\n{key}: {value}"
        formatted_message += context_details

    # Add error details if provided
    if error:
        error_details = f"\n\nError Type: {type(error).__name__}"
        error_details += f"\nError Message: {str(error)}"

        error_details += f"\n\nTraceback:\n{traceback.format_exc()}"

        formatted_message += error_details

    if admin_chat_id:
        telegram.send_msg(
            admin_chat_id,
            truncate_text(formatted_message, ADMIN_REPORT_MAX_CHARS),
            parse_mode=None,
        )


configure_app_config(admin_reporter=admin_report)
user_store_service.configure(admin_reporter=admin_report)


def build_bot_context(config: Mapping[str, Any]) -> BotContext:
    return BotContext(
        store=build_user_store(config, redis_factory=config_redis),
        rotation=KeyRotation(config["api_keys"]),
        cooldown=CooldownGate(),
        config=config,
    )


def get_bot_context() -> BotContext:
    """Return the process-wide context, building it on first use."""

    global _bot_context
    if _bot_context is None:
        _bot_context = build_bot_context(load_bot_config())
    return _bot_context


def set_bot_context(context: Optional[BotContext]) -> None:
    """Override the process-wide context (test helper)."""

    global _bot_context
    _bot_context = context


def _arg_is_true(args: Mapping[str, Any], key: str) -> bool:
    value = args.get(key)
    if isinstance(value, str):
        return value.lower() == "true"
    return False


def _handle_webhook_actions(args: Mapping[str, Any]) -> Optional[Tuple[str, int]]:
    if not (_arg_is_true(args, "check_webhook") or _arg_is_true(args, "update_webhook")):
        return None

    webhook_key = environ.get("WEBHOOK_AUTH_KEY")
    if not webhook_key or args.get("key") != webhook_key:
        admin_report("Wrong key attempt")
        return "Wrong key", 400

    token = environ.get("TELEGRAM_TOKEN")
    function_url = environ.get("FUNCTION_URL")
    if not token or not function_url:
        return "Webhook not configured", 400

    if _arg_is_true(args, "check_webhook"):
        webhook_verified = telegram.verify_webhook(token, function_url)
        return ("Webhook checked", 200) if webhook_verified else ("Webhook check error", 400)

    updated = telegram.set_webhook(token, function_url)
    return ("Webhook updated", 200) if updated else ("Webhook update error", 400)


def process_request_parameters(request: Request) -> Tuple[str, int]:
    try:
        request_json = request.get_json(silent=True)
        return handle_update(request_json, get_bot_context())

    except Exception as e:
        error_context = {
            "request_method": request.method,
            "request_args": dict(request.args),
            "request_path": request.path,
        }

        error_msg = f"Request processing error: {str(e)}"
        print(error_msg)
        admin_report(error_msg, e, error_context)
        return "Error processing request", 500


app = Flask(__name__)


@app.route("/", methods=["GET", "POST"])
def responder() -> Tuple[str, int]:
    try:
        webhook_response = _handle_webhook_actions(request.args)
        if webhook_response:
            return webhook_response

        if request.method != "POST":
            return "Method not allowed", 405

        response_message, status_code = process_request_parameters(request)
        return response_message, status_code
    except Exception as e:
        error_context = {
            "request_method": request.method,
            "request_args": dict(request.args),
            "request_path": request.path,
        }

        error_msg = "Critical error in responder"
        print(error_msg)
        admin_report(error_msg, e, error_context)
        return "Critical error", 500
