"""Self-contained debug error page renderer.

Rendered for unhandled exceptions when the app runs in debug mode. Plain
f-strings only, so nothing the application configures can break error
reporting.

The page renders:
- Exception type, message, and cause
- Traceback with source context, app frames highlighted
- An "Application" table: wren version, method, path, query,
  request attributes, and the matched route
- Request headers, with credentials masked
"""

import html
import linecache
import os
import sys
import types
from typing import Any

from wren.http.request import Request

_SENSITIVE_HEADERS = frozenset({
    "authorization",
    "cookie",
    "proxy-authorization",
    "x-api-key",
    "x-auth-token",
})

_CONTEXT_LINES = 5

_CSS = """\
* { margin: 0; padding: 0; box-sizing: border-box; }
body {
    font-family: ui-monospace, Menlo, Consolas, 'DejaVu Sans Mono', monospace;
    background: #1a1b26; color: #a9b1d6; line-height: 1.6;
    padding: 2rem; font-size: 14px;
}
.error-page { max-width: 960px; margin: 0 auto; }
h1 { color: #f7768e; font-size: 1.4rem; margin-bottom: 0.5rem; }
h2 { color: #7aa2f7; font-size: 1.1rem; margin: 1.5rem 0 0.5rem; border-bottom: 1px solid #2f3549; }
.exc-message { color: #e0af68; margin-bottom: 1rem; white-space: pre-wrap; word-break: break-word; }
.exc-chain { color: #565f89; font-size: 0.85rem; font-style: italic; }
.frame { margin: 0.5rem 0; border: 1px solid #2f3549; border-radius: 6px; overflow: hidden; }
.frame.app-frame { border-color: #7aa2f7; }
.frame-header { padding: 0.4rem 0.8rem; background: #24283b; font-size: 0.85rem; }
.frame-header .func { color: #bb9af7; margin-left: 0.5rem; }
.source-line { display: flex; padding: 0 0.8rem; font-size: 0.82rem; }
.source-line .lineno { color: #565f89; min-width: 3.5rem; text-align: right; padding-right: 1rem; }
.source-line .code { white-space: pre; }
.source-line.error-line { background: rgba(247, 118, 142, 0.15); }
table.data { width: 100%; border-collapse: collapse; background: #24283b; border-radius: 6px; }
table.data th { color: #7aa2f7; text-align: left; width: 160px; padding: 0.2rem 0.8rem; vertical-align: top; }
table.data td { padding: 0.2rem 0.8rem; word-break: break-all; white-space: pre-wrap; }
"""


def _esc(text: object) -> str:
    return html.escape(str(text), quote=True)


def _is_app_frame(filename: str) -> bool:
    """True if the frame is from the application (not stdlib/site-packages)."""
    if "site-packages" in filename or filename.startswith("<"):
        return False
    return not filename.startswith(os.path.dirname(os.__file__))


def _extract_frames(tb: types.TracebackType | None) -> list[dict[str, Any]]:
    """Walk a traceback and collect each frame with its source context."""
    frames: list[dict[str, Any]] = []
    while tb is not None:
        code = tb.tb_frame.f_code
        lineno = tb.tb_lineno
        source = [
            (i, line.rstrip())
            for i in range(max(1, lineno - _CONTEXT_LINES), lineno + _CONTEXT_LINES + 1)
            if (line := linecache.getline(code.co_filename, i, tb.tb_frame.f_globals))
        ]
        frames.append({
            "filename": code.co_filename,
            "lineno": lineno,
            "func_name": code.co_name,
            "source": source,
            "is_app": _is_app_frame(code.co_filename),
        })
        tb = tb.tb_next
    return frames


def application_data(request: Request) -> dict[str, str]:
    """The rows of the "Application" table for *request*."""
    from wren import __version__

    route = request.get_attribute("route")
    rows = {
        "Wren": __version__,
        "Method": request.method,
        "Path": request.path,
    }
    if request.query:
        rows["Query"] = "&".join(f"{k}={v}" for k, v in request.query.items())
    if request.attributes:
        rows["Attributes"] = ", ".join(
            f"{name}={value!r}" for name, value in request.attributes.items() if name != "route"
        )
    if route is not None:
        rows["Route"] = route.pattern if route.name is None else f"{route.name} ({route.pattern})"
    if request.client is not None:
        rows["Client"] = f"{request.client[0]}:{request.client[1]}"
    rows["Python"] = sys.version
    return rows


def _render_table(rows: dict[str, str] | list[tuple[str, str]]) -> str:
    items = rows.items() if isinstance(rows, dict) else rows
    body = "".join(f"<tr><th>{_esc(k)}</th><td>{_esc(v)}</td></tr>" for k, v in items)
    return f'<table class="data">{body}</table>'


def _render_frame(frame: dict[str, Any]) -> str:
    lineno = frame["lineno"]
    lines = "".join(
        f'<div class="source-line{" error-line" if i == lineno else ""}">'
        f'<span class="lineno">{i}</span><span class="code">{_esc(code)}</span></div>'
        for i, code in frame["source"]
    )
    css = "frame app-frame" if frame["is_app"] else "frame"
    return (
        f'<div class="{css}"><div class="frame-header">'
        f'{_esc(frame["filename"])}:{lineno}<span class="func">{_esc(frame["func_name"])}</span>'
        f"</div><div>{lines}</div></div>"
    )


def _masked_headers(request: Request) -> list[tuple[str, str]]:
    return [
        (name, "••••••••" if name.lower() in _SENSITIVE_HEADERS else value)
        for name, value in request.headers.items()
    ]


def render_debug_page(exc: BaseException, request: Request) -> str:
    """Render a full HTML debug page for *exc* raised while serving *request*."""
    exc_type = type(exc)
    module = exc_type.__module__
    qualified = exc_type.__qualname__ if module == "builtins" else f"{module}.{exc_type.__qualname__}"
    message = str(exc)

    sections = [
        f"<h1>{_esc(qualified)}</h1>",
        f'<div class="exc-message">{_esc(message)}</div>',
    ]
    if exc.__cause__ is not None:
        sections.append(
            f'<div class="exc-chain">Caused by {_esc(type(exc.__cause__).__name__)}: '
            f"{_esc(exc.__cause__)}</div>"
        )

    frames = _extract_frames(exc.__traceback__)
    if frames:
        sections.append("<h2>Traceback</h2>")
        sections.extend(_render_frame(f) for f in frames)

    sections.append("<h2>Application</h2>")
    sections.append(_render_table(application_data(request)))

    headers = _masked_headers(request)
    if headers:
        sections.append("<h2>Headers</h2>")
        sections.append(_render_table(headers))

    body = "\n".join(sections)
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="utf-8">'
        f"<title>{_esc(qualified)}: {_esc(message[:80])}</title>"
        f"<style>{_CSS}</style>"
        f'</head><body><div class="error-page">{body}</div></body></html>'
    )
