"""Chat completions over a rotating pool of API keys."""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, cast

from openai import OpenAI

from api.services.search import search_text


COMPLETION_TEMPERATURE = 0.7
COMPLETION_MAX_TOKENS = 200

SearchFallbackFn = Callable[[str], str]
ClientFactoryFn = Callable[[str, Optional[str]], Any]


class KeyRotation:
    """Shared cursor into the API key pool.

    The index survives across calls: a key that failed for one prompt is
    not retried first on the next.
    """

    def __init__(self, keys: Sequence[str]) -> None:
        if not keys:
            raise ValueError("at least one API key is required")
        self.keys: List[str] = list(keys)
        self.index = 0

    def __len__(self) -> int:
        return len(self.keys)

    def current(self) -> str:
        return self.keys[self.index]

    def advance(self) -> None:
        self.index = (self.index + 1) % len(self.keys)

    def reset(self) -> None:
        self.index = 0


def build_openai_client(api_key: str, base_url: Optional[str] = None) -> OpenAI:
    if base_url:
        return OpenAI(api_key=api_key, base_url=base_url, max_retries=0)
    return OpenAI(api_key=api_key, max_retries=0)


def request_completion(
    client: Any, model: str, system_prompt: str, prompt: str
) -> str:
    """Single chat completion call; raises when the response has no choices."""

    response = client.chat.completions.create(
        model=model,
        messages=cast(
            Any,
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
        ),
        temperature=COMPLETION_TEMPERATURE,
        max_tokens=COMPLETION_MAX_TOKENS,
    )
    if not response or not getattr(response, "choices", None):
        raise ValueError("API Error: empty choices")
    return response.choices[0].message.content or ""


def get_completion(
    prompt: str,
    rotation: KeyRotation,
    *,
    system_prompt: str,
    model: str,
    base_url: Optional[str] = None,
    search_fallback: SearchFallbackFn = search_text,
    client_factory: ClientFactoryFn = build_openai_client,
) -> str:
    """Ask the completion API, rotating keys on failure, then fall back to search."""

    for _ in range(len(rotation)):
        key_number = rotation.index + 1
        try:
            client = client_factory(rotation.current(), base_url)
            return request_completion(client, model, system_prompt, prompt)
        except Exception as e:
            print(f"API key {key_number} failed: {e}")
            rotation.advance()

    print("All completion API keys failed. Using DuckDuckGo fallback.")
    return search_fallback(prompt)


__all__ = [
    "COMPLETION_MAX_TOKENS",
    "COMPLETION_TEMPERATURE",
    "KeyRotation",
    "build_openai_client",
    "get_completion",
    "request_completion",
]
