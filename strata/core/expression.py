"""Placeholder substitution for configuration values.

Values may contain placeholders of the form ``${expression}`` or
``${prefix:expression}``. A backslash escapes a dollar sign (``\\${x}`` stays
the literal text ``${x}``). Placeholders may be nested, inner ones are
resolved first::

    ${env:${conf:app.home.variable}}/logs

Resolution runs in passes: the output of one pass is scanned again since
resolved values can contain further placeholders. Evaluation stops when a
pass finds no placeholder and fails after ``max_passes`` passes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Protocol, Tuple, Union, runtime_checkable

from loguru import logger

from .errors import (
    ConfigError,
    ExpressionDepthError,
    ExpressionSyntaxError,
    UnresolvedExpressionError,
)

DEFAULT_MAX_PASSES = 10

_ESCAPED_DOLLAR = "\\$"


@runtime_checkable
class ExpressionResolver(Protocol):
    """Resolves the expression part of ``${prefix:expression}``.

    Attributes:
        prefix: Prefix including the trailing colon, e.g. ``"env:"``.
        priority: Resolvers with a higher priority are asked first for
            placeholders without a prefix.
    """

    prefix: str
    priority: int

    def resolve(self, expression: str) -> Optional[str]:
        ...


class ConfigResolver:
    """Looks up another configuration key: ``${conf:db.host}`` or ``${db.host}``."""

    prefix = "conf:"
    priority = 300

    def __init__(self, lookup: Callable[[str], Optional[str]]):
        self.lookup = lookup

    def resolve(self, expression: str) -> Optional[str]:
        return self.lookup(expression.strip())


class EnvironmentResolver:
    """Reads an environment variable: ``${env:HOME}``."""

    prefix = "env:"
    priority = 200

    def resolve(self, expression: str) -> Optional[str]:
        return os.environ.get(expression.strip())


class FileResolver:
    """Inlines the content of a UTF-8 text file: ``${file:/etc/app/token}``."""

    prefix = "file:"
    priority = 100

    def resolve(self, expression: str) -> Optional[str]:
        path = Path(expression.strip())
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.debug(f"Could not read file for expression '{expression}': {e}")
            return None


class ResolverRegistry:
    """Resolvers ordered by descending priority, ties by prefix."""

    def __init__(self, resolvers: Iterable[ExpressionResolver] = ()):
        self._resolvers: Tuple[ExpressionResolver, ...] = ()
        for resolver in resolvers:
            self.add(resolver)

    def add(self, resolver: ExpressionResolver) -> None:
        others = [r for r in self._resolvers if r.prefix != resolver.prefix]
        others.append(resolver)
        others.sort(key=lambda r: (-r.priority, r.prefix))
        self._resolvers = tuple(others)

    @property
    def resolvers(self) -> Tuple[ExpressionResolver, ...]:
        return self._resolvers

    def for_prefix(self, prefix: str) -> Optional[ExpressionResolver]:
        for resolver in self._resolvers:
            if resolver.prefix == prefix:
                return resolver
        return None

    def require(self, prefix: str) -> ExpressionResolver:
        resolver = self.for_prefix(prefix)
        if resolver is None:
            raise ConfigError(
                f"Required expression resolver '{prefix}' is not registered",
                {"prefix": prefix, "registered": [r.prefix for r in self._resolvers]},
            )
        return resolver

    def __len__(self) -> int:
        return len(self._resolvers)


@dataclass(frozen=True)
class _Literal:
    text: str


@dataclass(frozen=True)
class _EscapedDollar:
    pass


@dataclass(frozen=True)
class _Placeholder:
    body: Tuple["_Node", ...]
    raw: str


_Node = Union[_Literal, _EscapedDollar, _Placeholder]


def parse(text: str) -> Tuple[_Node, ...]:
    """Split ``text`` into literal runs, escapes and placeholders.

    Raises:
        ExpressionSyntaxError: If a ``${`` is never closed.
    """
    nodes, _ = _parse(text, 0, nested=False)
    return nodes


def _parse(text: str, pos: int, nested: bool) -> Tuple[Tuple[_Node, ...], int]:
    nodes: List[_Node] = []
    buf: List[str] = []

    def flush() -> None:
        if buf:
            nodes.append(_Literal("".join(buf)))
            buf.clear()

    i = pos
    while i < len(text):
        c = text[i]
        nxt = text[i + 1] if i + 1 < len(text) else ""
        if c == "\\" and nxt == "$":
            flush()
            nodes.append(_EscapedDollar())
            i += 2
        elif c == "\\" and nested and nxt == "}":
            buf.append("}")
            i += 2
        elif c == "$" and nxt == "{":
            flush()
            body, end = _parse(text, i + 2, nested=True)
            nodes.append(_Placeholder(body, text[i:end]))
            i = end
        elif c == "}" and nested:
            flush()
            return tuple(nodes), i + 1
        else:
            buf.append(c)
            i += 1

    if nested:
        raise ExpressionSyntaxError(
            f"Unterminated expression in: {text}", text[pos - 2 :]
        )
    flush()
    return tuple(nodes), i


def _has_placeholder(nodes: Iterable[_Node]) -> bool:
    return any(isinstance(n, _Placeholder) for n in nodes)


def _plain(nodes: Iterable[_Node]) -> str:
    """Render nodes without placeholders as final text."""
    out: List[str] = []
    for node in nodes:
        if isinstance(node, _Literal):
            out.append(node.text)
        elif isinstance(node, _EscapedDollar):
            out.append("$")
        else:
            out.append(node.raw)
    return "".join(out)


class ExpressionEvaluator:
    """Evaluates placeholders using a set of resolvers.

    Args:
        resolvers: Registry of resolvers to consult.
        mask_unresolved: Keep unresolved placeholders visible as ``[${expr}]``
            instead of replacing them with an empty string.
        strict: Raise ``UnresolvedExpressionError`` on unresolved placeholders.
        max_passes: Upper bound on evaluation passes.
    """

    def __init__(
        self,
        resolvers: Optional[ResolverRegistry] = None,
        mask_unresolved: bool = True,
        strict: bool = False,
        max_passes: int = DEFAULT_MAX_PASSES,
    ):
        if max_passes < 1:
            raise ConfigError("max_passes must be at least 1", {"max_passes": max_passes})
        self.resolvers = resolvers if resolvers is not None else ResolverRegistry()
        self.mask_unresolved = mask_unresolved
        self.strict = strict
        self.max_passes = max_passes

    def with_resolvers(self, resolvers: ResolverRegistry) -> "ExpressionEvaluator":
        """A copy of this evaluator with the same options and other resolvers."""
        return ExpressionEvaluator(
            resolvers,
            mask_unresolved=self.mask_unresolved,
            strict=self.strict,
            max_passes=self.max_passes,
        )

    @staticmethod
    def contains_expression(value: Optional[str]) -> bool:
        return value is not None and "${" in value

    def evaluate(self, value: Optional[str], key: Optional[str] = None) -> Optional[str]:
        """Resolve all placeholders in ``value``.

        Args:
            value: Text to evaluate; None is returned unchanged.
            key: Key the value belongs to, used in log messages only.

        Returns:
            The resolved text.

        Raises:
            ExpressionSyntaxError: On an unterminated placeholder.
            ExpressionDepthError: If placeholders keep appearing after
                ``max_passes`` passes.
            UnresolvedExpressionError: In strict mode only.
        """
        if value is None or "$" not in value:
            return value

        current = value
        for _ in range(self.max_passes):
            nodes = parse(current)
            if not _has_placeholder(nodes):
                return _plain(nodes)
            current = self._render(nodes, key)

        nodes = parse(current)
        if _has_placeholder(nodes):
            raise ExpressionDepthError(value, self.max_passes)
        return _plain(nodes)

    def _render(self, nodes: Iterable[_Node], key: Optional[str]) -> str:
        """One pass: resolve placeholders, keep escapes for the next pass."""
        out: List[str] = []
        for node in nodes:
            if isinstance(node, _Literal):
                out.append(node.text)
            elif isinstance(node, _EscapedDollar):
                out.append(_ESCAPED_DOLLAR)
            else:
                out.append(self._evaluate_placeholder(node, key))
        return "".join(out)

    def _evaluate_placeholder(self, node: _Placeholder, key: Optional[str]) -> str:
        expression = _plain(self._resolve_nested(node.body, key))
        resolved = self.resolve_expression(expression)
        if resolved is not None:
            return resolved
        if self.strict:
            raise UnresolvedExpressionError(expression)
        logger.warning(f"Unresolvable expression '${{{expression}}}' in value of '{key}'")
        if self.mask_unresolved:
            return "[" + _ESCAPED_DOLLAR + "{" + expression.replace("$", _ESCAPED_DOLLAR) + "}]"
        return ""

    def _resolve_nested(self, body: Tuple[_Node, ...], key: Optional[str]) -> Tuple[_Node, ...]:
        if not _has_placeholder(body):
            return body
        rendered: List[_Node] = []
        for node in body:
            if isinstance(node, _Placeholder):
                rendered.append(_Literal(self._evaluate_placeholder(node, key).replace(_ESCAPED_DOLLAR, "$")))
            else:
                rendered.append(node)
        return tuple(rendered)

    def resolve_expression(self, expression: str) -> Optional[str]:
        """Ask the matching resolver, or all resolvers by priority."""
        head, sep, rest = expression.partition(":")
        if sep:
            explicit = self.resolvers.for_prefix(head + sep)
            if explicit is not None:
                return self._call(explicit, rest)
        for resolver in self.resolvers.resolvers:
            result = self._call(resolver, expression)
            if result is not None:
                return result
        return None

    @staticmethod
    def _call(resolver: ExpressionResolver, expression: str) -> Optional[str]:
        try:
            return resolver.resolve(expression)
        except Exception as e:
            logger.debug(f"Resolver {resolver.prefix} failed on '{expression}': {e}")
            return None
