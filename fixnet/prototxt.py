"""Reading and writing the protocol buffer text format.

Messages are plain dictionaries. Text carries no schema, so every field maps
to a list of its values in the order they appeared: scalars become ``str``,
``int``, ``float`` or ``bool``, and nested messages become dictionaries.
Enum values such as ``MAX`` are read as strings. When written back, strings
that look like enum values (upper-case identifiers) are left unquoted.
"""

from __future__ import annotations

import math
import numbers
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

__all__ = ["ProtoTextError", "parse", "dumps", "read_text_file"]


class ProtoTextError(ValueError):
    """Raised when text is not valid protocol buffer text format."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        self.line = line
        self.column = column
        if line is not None:
            message = f"line {line}, column {column}: {message}"
        super().__init__(message)


_TOKEN_RE = re.compile(
    r"""
      (?P<space>\s+|\#[^\n]*)
    | (?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
    | (?P<number>[-+]?(?:0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?[fF]?)(?![\w.]))
    | (?P<ident>-?[A-Za-z_][A-Za-z0-9_]*)
    | (?P<punct>[{}<>:;,\[\]])
    """,
    re.VERBOSE,
)

_ESCAPE_RE = re.compile(r"\\(?:([0-7]{1,3})|x([0-9a-fA-F]{1,2})|(.))", re.DOTALL)

_SIMPLE_ESCAPES = {
    "n": b"\n",
    "t": b"\t",
    "r": b"\r",
    "a": b"\a",
    "b": b"\b",
    "f": b"\f",
    "v": b"\v",
    "\\": b"\\",
    "'": b"'",
    '"': b'"',
    "?": b"?",
}

_IDENT_VALUES: dict[str, Any] = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "inf": math.inf,
    "infinity": math.inf,
    "-inf": -math.inf,
    "-infinity": -math.inf,
    "nan": math.nan,
}

_FIELD_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")
_ENUM_RE = re.compile(r"[A-Z][A-Z0-9_]*\Z")

_QUOTE_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    line: int
    column: int


def _tokenize(text: str) -> tuple[list[_Token], tuple[int, int]]:
    tokens: list[_Token] = []
    pos = 0
    line = 1
    line_start = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ProtoTextError(f"unexpected character {text[pos]!r}", line, pos - line_start + 1)
        kind = match.lastgroup
        chunk = match.group()
        if kind != "space":
            tokens.append(_Token(kind, chunk, line, pos - line_start + 1))
        newlines = chunk.count("\n")
        if newlines:
            line += newlines
            line_start = match.start() + chunk.rfind("\n") + 1
        pos = match.end()
    return tokens, (line, pos - line_start + 1)


def _unescape(body: str, token: _Token) -> str:
    out = bytearray()
    pos = 0
    for match in _ESCAPE_RE.finditer(body):
        out += body[pos : match.start()].encode("utf-8", "surrogateescape")
        octal, hexa, char = match.groups()
        if octal:
            code = int(octal, 8)
            if code > 0xFF:
                raise ProtoTextError(f"octal escape out of range: \\{octal}", token.line, token.column)
            out.append(code)
        elif hexa:
            out.append(int(hexa, 16))
        elif char in _SIMPLE_ESCAPES:
            out += _SIMPLE_ESCAPES[char]
        else:
            raise ProtoTextError(f"invalid escape sequence \\{char}", token.line, token.column)
        pos = match.end()
    out += body[pos:].encode("utf-8", "surrogateescape")
    return out.decode("utf-8", "surrogateescape")


def _to_number(text: str) -> int | float:
    negative = text.startswith("-")
    body = text.lstrip("+-")
    value: int | float
    if body[:2].lower() == "0x":
        value = int(body, 16)
    elif body[-1] in "fF" or any(c in body for c in ".eE"):
        value = float(body.rstrip("fF"))
    else:
        value = int(body, 10)
    return -value if negative else value


class _Parser:
    def __init__(self, tokens: list[_Token], end: tuple[int, int]):
        self._tokens = tokens
        self._end = end
        self._index = 0

    def _peek(self) -> _Token | None:
        return self._tokens[self._index] if self._index < len(self._tokens) else None

    def _next(self) -> _Token:
        token = self._peek()
        if token is None:
            raise ProtoTextError("unexpected end of input", *self._end)
        self._index += 1
        return token

    def _at(self, text: str) -> bool:
        token = self._peek()
        return token is not None and token.kind == "punct" and token.text == text

    def _expect(self, text: str) -> None:
        token = self._next()
        if token.kind != "punct" or token.text != text:
            raise ProtoTextError(f"expected {text!r}, found {token.text!r}", token.line, token.column)

    def parse_message(self, closer: str | None) -> dict[str, list[Any]]:
        fields: dict[str, list[Any]] = {}
        while True:
            token = self._peek()
            if token is None:
                if closer is None:
                    return fields
                raise ProtoTextError(f"expected {closer!r} before end of input", *self._end)
            if token.kind == "punct" and token.text == closer:
                self._index += 1
                return fields
            name = self._next()
            if name.kind != "ident" or name.text.startswith("-"):
                raise ProtoTextError(f"expected a field name, found {name.text!r}", name.line, name.column)
            if self._at(":"):
                self._index += 1
                values = self._parse_value()
            elif self._at("{") or self._at("<"):
                values = [self._parse_block()]
            else:
                raise ProtoTextError(
                    f"expected ':' or '{{' after field {name.text!r}", name.line, name.column
                )
            fields.setdefault(name.text, []).extend(values)
            if self._at(";") or self._at(","):
                self._index += 1

    def _parse_block(self) -> dict[str, list[Any]]:
        opener = self._next()
        return self.parse_message("}" if opener.text == "{" else ">")

    def _parse_element(self) -> Any:
        if self._at("{") or self._at("<"):
            return self._parse_block()
        return self._parse_scalar()

    def _parse_value(self) -> list[Any]:
        if self._at("["):
            self._index += 1
            items: list[Any] = []
            if self._at("]"):
                self._index += 1
                return items
            while True:
                items.append(self._parse_element())
                if self._at(","):
                    self._index += 1
                    continue
                self._expect("]")
                return items
        return [self._parse_element()]

    def _parse_scalar(self) -> Any:
        token = self._next()
        if token.kind == "string":
            value = _unescape(token.text[1:-1], token)
            while (follow := self._peek()) is not None and follow.kind == "string":
                self._index += 1
                value += _unescape(follow.text[1:-1], follow)
            return value
        if token.kind == "number":
            return _to_number(token.text)
        if token.kind == "ident":
            if token.text in _IDENT_VALUES:
                return _IDENT_VALUES[token.text]
            if token.text.startswith("-"):
                raise ProtoTextError(f"invalid value {token.text!r}", token.line, token.column)
            return token.text
        raise ProtoTextError(f"expected a value, found {token.text!r}", token.line, token.column)


def parse(text: str | bytes) -> dict[str, list[Any]]:
    """Parse text-format content into a dictionary of field lists."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", "surrogateescape")
    tokens, end = _tokenize(text)
    return _Parser(tokens, end).parse_message(None)


def read_text_file(path: str | os.PathLike[str]) -> dict[str, list[Any]]:
    """Read and parse a text-format file; a missing file raises FileNotFoundError."""
    with open(path, encoding="utf-8", errors="surrogateescape") as handle:
        return parse(handle.read())


def _quote(value: str) -> str:
    parts = []
    for ch in value:
        code = ord(ch)
        if ch in _QUOTE_ESCAPES:
            parts.append(_QUOTE_ESCAPES[ch])
        elif 0xDC80 <= code <= 0xDCFF:
            parts.append(f"\\{code - 0xDC00:03o}")
        elif code < 0x20 or code == 0x7F:
            parts.append(f"\\{code:03o}")
        else:
            parts.append(ch)
    return '"' + "".join(parts) + '"'


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, numbers.Real):
        number = float(value)
        if math.isnan(number):
            return "nan"
        if math.isinf(number):
            return "inf" if number > 0 else "-inf"
        return repr(number)
    if isinstance(value, str):
        return value if _ENUM_RE.match(value) else _quote(value)
    raise TypeError(f"cannot write a value of type {type(value).__name__}")


def _emit(message: Mapping[str, Any], depth: int, lines: list[str]) -> None:
    pad = "  " * depth
    for name, value in message.items():
        if not isinstance(name, str) or not _FIELD_NAME_RE.match(name):
            raise ValueError(f"invalid field name {name!r}")
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if isinstance(item, Mapping):
                lines.append(f"{pad}{name} {{")
                _emit(item, depth + 1, lines)
                lines.append(f"{pad}}}")
            elif isinstance(item, (list, tuple)):
                raise TypeError(f"field {name!r} holds a nested list")
            else:
                lines.append(f"{pad}{name}: {_format_scalar(item)}")


def dumps(message: Mapping[str, Any]) -> str:
    """Write a message dictionary as text format; values may be lists or single items."""
    lines: list[str] = []
    _emit(message, 0, lines)
    return "\n".join(lines) + "\n" if lines else ""