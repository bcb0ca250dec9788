"""Mood detection and mood-matched quotes or images for group chats."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Union

from api.services.search import fetch_related_topics


MOOD_PROMPT = (
    "Analyze the following conversation and describe the overall mood as one word: "
    'happy, sad, angry, neutral. Conversation: "{text}"'
)

CompleteFn = Callable[[str], str]
FetchContentFn = Callable[[str], Dict[str, str]]
SendTextFn = Callable[[Union[str, int], str], Any]
SendImageFn = Callable[[Union[str, int], str, str], Any]


def detect_mood(text: Optional[str], complete: CompleteFn) -> str:
    """Ask the model for a one-word mood; the answer is lowercased but not validated."""

    return complete(MOOD_PROMPT.format(text=text or "")).lower().strip()


def _generic_content(mood: str) -> Dict[str, str]:
    return {"type": "text", "text": f"Here's something {mood} for you!"}


def fetch_quote_or_image(mood: str) -> Dict[str, str]:
    """Return ``{"type": "image", "url": ...}`` or ``{"type": "text", "text": ...}``."""

    try:
        topics = fetch_related_topics(f"{mood} quote")
    except Exception as e:
        print(f"Fetch quote/image error: {e}")
        return _generic_content(mood)

    first_result = topics[0] if topics else None
    if first_result and first_result.get("FirstURL"):
        return {"type": "image", "url": first_result["FirstURL"]}
    if first_result and first_result.get("Text"):
        return {"type": "text", "text": first_result["Text"]}
    return _generic_content(mood)


def send_dynamic_content(
    chat_id: Union[str, int],
    mood: str,
    *,
    send_text: SendTextFn,
    send_image: SendImageFn,
    fetch: FetchContentFn = fetch_quote_or_image,
) -> Dict[str, str]:
    content = fetch(mood)
    if content.get("type") == "image":
        send_image(chat_id, content["url"], f"Mood: {mood}")
    else:
        send_text(chat_id, content.get("text", ""))
    return content


__all__ = [
    "MOOD_PROMPT",
    "detect_mood",
    "fetch_quote_or_image",
    "send_dynamic_content",
]
