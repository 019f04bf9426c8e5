import json
import re
from typing import Any
from urllib.parse import urlparse

# Matches, in order: string literals (kept), // line comments, /* */ block comments.
_COMMENT_RE = re.compile(
    r'("(?:\\.|[^"\\])*")|(//[^\n]*)|(/\*.*?\*/)',
    re.DOTALL,
)
# A comma followed only by whitespace before a closing bracket.
_TRAILING_COMMA_RE = re.compile(r'("(?:\\.|[^"\\])*")|,(\s*[}\]])')
_NOT_IN_NAME_RE = re.compile(r'[\s?#]')


def strip_nulls(value: Any) -> Any:
    """
    Recursively remove keys with value None from dictionaries.

    Lists are preserved, but their elements are also cleaned.
    """
    if isinstance(value, dict):
        return {k: strip_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [strip_nulls(v) for v in value]
    return value


def strip_json_comments(text: str) -> str:
    """
    Remove ``//`` and ``/* */`` comments and trailing commas so hand-edited
    documents can be parsed by :func:`json.loads`.

    String literals are left untouched, so URLs such as ``https://...`` survive.
    """
    text = _COMMENT_RE.sub(lambda m: m.group(1) or "", text)
    return _TRAILING_COMMA_RE.sub(lambda m: m.group(1) or m.group(2), text)


def loads(data: bytes | str) -> Any:
    """
    Decode a JSON document, tolerating comments, trailing commas and a UTF-8 BOM.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8-sig")
    return json.loads(strip_json_comments(data))


def dumps(value: Any) -> bytes:
    """
    Encode a JSON document with null fields omitted and two-space indentation.
    """
    text = json.dumps(strip_nulls(value), indent=2, ensure_ascii=False)
    return (text + "\n").encode("utf-8")


def is_absolute_url(value: str) -> bool:
    parsed = urlparse(value or "")
    return bool(parsed.scheme) and bool(parsed.netloc)


def is_bare_name(value: str) -> bool:
    """
    A bare package name is non-empty and is neither a URL nor a path,
    e.g. ``react`` or ``@scope/pkg`` but not ``./x`` or ``https://...``.
    Query strings, fragments and whitespace would change the requested
    resource, so ``?``, ``#`` and spaces are rejected too.
    """
    if not value or _NOT_IN_NAME_RE.search(value):
        return False
    if "://" in value or value.startswith(("/", "./", "../")):
        return False
    return True
