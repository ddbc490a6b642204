"""Diff suppression for policy XML containing .NET policy expressions.

The service stores policies with expressions such as ``@(context.Request.Url)``
or ``@{ return "x"; }`` re-encoded (quotes become ``&quot;``, whitespace is
reflowed), so a byte comparison against the configured document reports
spurious changes. Both sides are normalized before comparing.
"""

from __future__ import annotations

import html
import re
from typing import Any
from xml.etree.ElementTree import Element

from defusedxml.ElementTree import ParseError
from defusedxml.ElementTree import fromstring as safe_fromstring

_PLACEHOLDER = "__apim_expr_{}__"
_WHITESPACE = re.compile(r"\s+")
_ENTITY_QUOTES = {"&quot;": '"', "&apos;": "'"}


class _UnbalancedExpression(ValueError):
    pass


def _quote_at(text: str, i: int) -> tuple[str | None, int]:
    """Return (quote char, width) for a literal or entity-encoded quote at text[i]."""
    if text[i] in ('"', "'"):
        return text[i], 1
    for entity, ch in _ENTITY_QUOTES.items():
        if text.startswith(entity, i):
            return ch, len(entity)
    return None, 1


def _expression_end(text: str, start: int) -> int:
    """Return the index just past the expression opened at text[start] ('(' or '{')."""
    opening = text[start]
    closing = ")" if opening == "(" else "}"
    depth = 0
    quote: str | None = None
    i = start
    while i < len(text):
        ch = text[i]
        found, width = _quote_at(text, i)
        if quote:
            if ch == "\\":
                i += 2
                continue
            if found == quote:
                quote = None
        elif found:
            quote = found
        elif ch == opening:
            depth += 1
        elif ch == closing:
            depth -= 1
            if depth == 0:
                return i + 1
        i += width
    raise _UnbalancedExpression(f"unterminated policy expression at offset {start}")


def _collapse_whitespace(body: str) -> str:
    """Collapse whitespace runs to one space, leaving string literals intact."""
    out: list[str] = []
    quote: str | None = None
    i = 0
    while i < len(body):
        ch = body[i]
        if quote:
            if ch == "\\":
                out.append(body[i : i + 2])
                i += 2
                continue
            if ch == quote:
                quote = None
            out.append(ch)
        elif ch in ('"', "'"):
            quote = ch
            out.append(ch)
        elif ch.isspace():
            match = _WHITESPACE.match(body, i)
            out.append(" ")
            i = match.end()
            continue
        else:
            out.append(ch)
        i += 1
    return "".join(out).strip()


def extract_expressions(xml: str) -> tuple[str, list[str]]:
    """Replace each policy expression with a placeholder.

    Returns the rewritten document and the normalized expression bodies in
    document order.
    """
    out: list[str] = []
    expressions: list[str] = []
    i = 0
    while i < len(xml):
        if xml.startswith("@(", i) or xml.startswith("@{", i):
            end = _expression_end(xml, i + 1)
            body = html.unescape(xml[i + 2 : end - 1])
            expressions.append(_collapse_whitespace(body))
            out.append(_PLACEHOLDER.format(len(expressions) - 1))
            i = end
            continue
        out.append(xml[i])
        i += 1
    return "".join(out), expressions


def _canonical(element: Element) -> Any:
    text = (element.text or "").strip()
    children = [_canonical(child) for child in element]
    tails = [(child.tail or "").strip() for child in element]
    return (element.tag, sorted(element.attrib.items()), text, children, tails)


def normalize_xml_with_dotnet_interpolations(xml: str) -> Any:
    """Normalize a policy document for comparison.

    Raises:
        ValueError: when the document cannot be parsed.
    """
    rewritten, expressions = extract_expressions(xml)
    try:
        root = safe_fromstring(rewritten)
    except ParseError as e:
        raise ValueError(f"parsing policy XML: {e}") from e
    return _canonical(root), expressions


def xml_with_dotnet_interpolations_diff_suppress(
    key: str, old: str, new: str, d: Any = None
) -> bool:
    """Suppress a diff between two policy documents that only differ in formatting."""
    if old == new:
        return True
    try:
        old_normalized = normalize_xml_with_dotnet_interpolations(old)
        new_normalized = normalize_xml_with_dotnet_interpolations(new)
    except ValueError:
        return False
    return old_normalized == new_normalized
