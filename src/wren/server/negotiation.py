"""Content negotiation: maps handler return values to Response objects.

Handlers normally return the response they were given, transformed.
For convenience they may also return plain values, which are applied
to the pipeline's current response. isinstance-based dispatch, no magic,
fully predictable.
"""

from dataclasses import replace
from typing import Any

from wren.errors import ConfigurationError
from wren.http.response import Response


def negotiate(value: Any, response: Response) -> Response:
    """Convert a handler's return value to a Response.

    Dispatch order:

    1. ``Response``            -> pass through
    2. ``None``                -> the current *response*, unchanged
    3. ``str``                 -> *response* with the string as body
    4. ``bytes``               -> *response* with the bytes as body
    5. ``dict`` / ``list``     -> *response* rendered as JSON
    6. ``(value, int)``        -> negotiate value, override status
    7. ``(value, int, dict)``  -> negotiate value, override status + headers
    """
    match value:
        case Response():
            return value
        case None:
            return response
        case str():
            return response.with_body_string(value)
        case bytes():
            return replace(response, body=value)
        case dict() | list():
            return response.with_json(value)
        case (body, int() as status):
            return negotiate(body, response).with_status(status)
        case (body, int() as status, dict() as headers):
            return negotiate(body, response).with_status(status).with_headers(headers)

    msg = (
        f"Handler returned {type(value).__name__!r}, which cannot be turned into "
        "a response. Return a Response, str, bytes, dict, list, or (value, status)."
    )
    raise ConfigurationError(msg)
