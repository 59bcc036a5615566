"""Application configuration.

AppConfig is a frozen dataclass: immutable after creation and IDE-autocompletable, with
no string-key dict lookups.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from wren.http.response import Response


def default_pattern_validator(pattern: str) -> bool:
    """Accept patterns that end with a slash or name a file, never both.

    ``/users/`` and ``/feed.xml`` pass; ``/users`` and ``/feed.xml/`` do not.
    """
    return pattern.endswith("/") != ("." in pattern)


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, port=3000)

    ``display_error_details`` follows ``debug`` unless set explicitly.
    Set ``pattern_validator`` to ``None`` to accept any route pattern.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    workers: int = 1

    # Errors
    display_error_details: bool | None = None

    # Routing
    pattern_validator: Callable[[str], bool] | None = default_pattern_validator
    default_url_segments: Mapping[str, Any] = field(default_factory=dict)

    # Responses
    response_class: type[Response] = Response

    # Logging
    log_level: str = "info"

    @property
    def show_error_details(self) -> bool:
        """Whether error responses may include exception details."""
        if self.display_error_details is None:
            return self.debug
        return self.display_error_details
