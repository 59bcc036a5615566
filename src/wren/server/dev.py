"""Serve a wren app with pounce.

Pounce's ``run()`` takes an import string (e.g., ``"myapp:app"``), but
``App.run()`` has a live ``App`` object, so ``pounce.Server`` is used
directly with the ASGI callable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wren.app import App


def run_server(
    app: App,
    host: str,
    port: int,
    *,
    workers: int = 1,
    reload: bool = False,
    log_level: str = "info",
) -> None:
    """Start a pounce server for *app*.

    Requires the ``server`` extra (``pip install wren[server]``).

    Args:
        app: The wren App.
        host: Bind host address.
        port: Bind port number.
        workers: Worker count. Forced to 1 when *reload* is on.
        reload: Enable auto-reload on file changes.
        log_level: Server log level.
    """
    try:
        from pounce.config import ServerConfig
        from pounce.server import Server
    except ImportError as exc:
        msg = "App.run() needs the pounce server: pip install 'wren[server]'"
        raise RuntimeError(msg) from exc

    config = ServerConfig(
        host=host,
        port=port,
        workers=1 if reload else workers,
        reload=reload,
        log_level=log_level,
    )
    Server(config, app).run()
