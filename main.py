from typing import Tuple

from flask import Request

import functions_framework

from api.index import app, responder as flask_responder


@functions_framework.http
def responder(request: Request) -> Tuple[str, int]:
    """Cloud Functions entry point; runs the Flask webhook handler for ``request``."""
    with app.test_request_context(
        path=request.path or "/",
        base_url=request.host_url,
        method=request.method,
        query_string=request.query_string.decode("latin-1"),
        headers=[
            (key, value)
            for key, value in request.headers.items()
            if key.lower() != "content-length"
        ],
        data=request.get_data(),
    ):
        return flask_responder()
