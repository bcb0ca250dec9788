"""HTTP helper utilities for resilient JSON requests."""

from typing import Any, Optional
import warnings

import requests
from requests import Response
from requests.exceptions import SSLError
from urllib3.exceptions import InsecureRequestWarning

__all__ = ["DEFAULT_TIMEOUT", "USER_AGENT", "request_with_ssl_fallback", "get_json"]

DEFAULT_TIMEOUT = 10
# Nominatim rejects requests without an identifying agent
USER_AGENT = "virtual-bunny-bot/1.0 (+https://core.telegram.org/bots)"


def request_with_ssl_fallback(
    url: str,
    *,
    method: str = "get",
    session: Optional[requests.sessions.Session] = None,
    suppress_warning: bool = True,
    **kwargs: Any,
) -> Response:
    """Perform an HTTP request and retry without SSL verification on :class:`SSLError`."""

    kwargs.setdefault("timeout", DEFAULT_TIMEOUT)
    requester = getattr(session or requests, method.lower())
    try:
        return requester(url, **kwargs)
    except SSLError:
        fallback_kwargs = dict(kwargs)
        fallback_kwargs["verify"] = False
        if suppress_warning:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", category=InsecureRequestWarning)
                return requester(url, **fallback_kwargs)
        return requester(url, **fallback_kwargs)


def get_json(url: str, params: Optional[dict] = None, **kwargs: Any) -> Any:
    """GET ``url`` and decode the JSON body, raising on HTTP errors.

    Callers own the error policy: ``requests.RequestException`` and
    ``ValueError`` propagate so each client can map them to its own
    fallback value.
    """

    headers = {"User-Agent": USER_AGENT}
    headers.update(kwargs.pop("headers", None) or {})
    response = request_with_ssl_fallback(url, params=params, headers=headers, **kwargs)
    response.raise_for_status()
    return response.json()
