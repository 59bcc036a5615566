"""Path pattern compilation and matching.

A path spec is either a plain literal (``/admin``) or a template with
placeholders (``/users/{id}``, ``/users/{id:\\d+}``). Literals compare
as strings; templates compile to a start-anchored regex.

Matching is boolean only: no captures are kept. Two modes exist:

- **prefix**: the path only has to *start* with the pattern. Used for
  middleware scopes ("everything under ``/api``").
- **exact**: the whole path must match. Used for scope exclusions and
  route segments.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass

from wren.errors import ConfigurationError

# Named placeholder types usable in route paths as ``{name:type}``. Scope
# patterns never look these up: their expressions are always raw regex.
PLACEHOLDER_TYPES: dict[str, str] = {
    "str": r"[^/]+",
    "int": r"\d+",
    "float": r"\d+(?:\.\d+)?",
    "slug": r"[A-Za-z0-9_-]+",
    "path": r".+",
}

DEFAULT_PLACEHOLDER = PLACEHOLDER_TYPES["str"]


@dataclass(frozen=True, slots=True)
class Placeholder:
    """A ``{name}`` or ``{name:expr}`` token inside a path spec."""

    name: str
    expr: str | None = None

    @property
    def regex(self) -> str:
        """The regex fragment this placeholder matches, *expr* taken verbatim."""
        if self.expr is None:
            return DEFAULT_PLACEHOLDER
        return self.expr

    @property
    def route_regex(self) -> str:
        """The fragment for a route path, where *expr* may name a type."""
        if self.expr is None:
            return DEFAULT_PLACEHOLDER
        return PLACEHOLDER_TYPES.get(self.expr, self.expr)

    @property
    def is_catch_all(self) -> bool:
        return self.expr == "path"


def tokenize(spec: str) -> Iterator[str | Placeholder]:
    """Split *spec* into literal strings and ``Placeholder`` tokens.

    Braces nest, so ``{code:[a-z]{2}}`` is a single placeholder.

    Raises ``ConfigurationError`` on unbalanced braces or empty names.
    """
    literal_start = 0
    i = 0
    while i < len(spec):
        char = spec[i]
        if char == "}":
            msg = f"Unbalanced '}}' in path pattern {spec!r}"
            raise ConfigurationError(msg)
        if char != "{":
            i += 1
            continue

        if i > literal_start:
            yield spec[literal_start:i]

        depth = 1
        j = i + 1
        while j < len(spec) and depth:
            if spec[j] == "{":
                depth += 1
            elif spec[j] == "}":
                depth -= 1
            j += 1
        if depth:
            msg = f"Unclosed '{{' in path pattern {spec!r}"
            raise ConfigurationError(msg)

        inner = spec[i + 1 : j - 1]
        name, sep, expr = inner.partition(":")
        name = name.strip()
        if not name:
            msg = f"Unsupported placeholder {{{inner}}} in path pattern {spec!r}: missing name"
            raise ConfigurationError(msg)
        if sep and not expr:
            msg = f"Unsupported placeholder {{{inner}}} in path pattern {spec!r}: empty expression"
            raise ConfigurationError(msg)
        yield Placeholder(name, expr if sep else None)

        i = j
        literal_start = j

    if literal_start < len(spec):
        yield spec[literal_start:]


def template_regex(spec: str, *, capture: bool = False, named_types: bool = False) -> str:
    """Build the (unanchored) regex body for a path template.

    Literal parts are escaped; placeholders contribute their fragment.
    With *capture*, each placeholder becomes a named group. With
    *named_types*, expressions such as ``int`` resolve through
    ``PLACEHOLDER_TYPES``.
    """
    parts: list[str] = []
    for token in tokenize(spec):
        if isinstance(token, Placeholder):
            fragment = token.route_regex if named_types else token.regex
            if capture:
                parts.append(f"(?P<{token.name}>{fragment})")
            else:
                parts.append(f"(?:{fragment})")
        else:
            parts.append(re.escape(token))
    return "".join(parts)


@dataclass(frozen=True, slots=True)
class LiteralPattern:
    """A path spec without placeholders, compared as a plain string."""

    text: str
    prefix: bool

    def matches(self, path: str) -> bool:
        if self.prefix:
            return path.startswith(self.text)
        return path == self.text


@dataclass(frozen=True, slots=True)
class TemplatePattern:
    """A path spec with placeholders, compiled to an anchored regex."""

    source: str
    regex: re.Pattern[str]
    prefix: bool

    def matches(self, path: str) -> bool:
        return self.regex.match(path) is not None


type PathPattern = LiteralPattern | TemplatePattern


def compile_pattern(spec: str, prefix: bool = False) -> PathPattern:
    """Compile *spec* into a matcher.

    Specs without ``{`` become ``LiteralPattern``. Otherwise the spec is
    compiled to a regex anchored at the start, and at the end unless
    *prefix* is set.
    """
    if "{" not in spec:
        if "}" in spec:
            msg = f"Unbalanced '}}' in path pattern {spec!r}"
            raise ConfigurationError(msg)
        return LiteralPattern(spec, prefix)

    body = template_regex(spec)
    anchor_end = "" if prefix else r"\Z"
    try:
        regex = re.compile(f"^{body}{anchor_end}")
    except re.error as exc:
        msg = f"Invalid placeholder expression in path pattern {spec!r}: {exc}"
        raise ConfigurationError(msg) from exc
    return TemplatePattern(spec, regex, prefix)


def matches(pattern: PathPattern, path: str) -> bool:
    """Return True if *path* matches *pattern* under its own mode."""
    return pattern.matches(path)
