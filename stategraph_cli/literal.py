"""Static reading of object literals embedded in JavaScript source.

Nothing in this module executes its input.  Three pieces cooperate:

* :func:`scan_balanced` walks raw text character by character and returns
  the exact substring of one top-level ``{...}`` / ``[...]`` literal.
* :func:`strip_unsafe` replaces values that only make sense at runtime
  (functions, ``require(...)`` calls, interpolated templates, spreads)
  with ``null``.
* :func:`parse_literal` is a recursive-descent parser for JSON extended
  with the relaxations hand-written JS config objects use: unquoted keys,
  single/back-quoted strings, trailing commas, comments, ``undefined``,
  hex numbers and signed numbers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import LiteralSyntaxError

_OPENERS = {"{": "}", "[": "]", "(": ")"}
_CLOSERS = set(_OPENERS.values())
_QUOTES = "'\"`"

_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_WORD_RE = re.compile(r"[A-Za-z_$][\w$]*")

_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v",
    "0": "\0", "\n": "",
}

_KEYWORD_VALUES = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
    "NaN": float("nan"),
    "Infinity": float("inf"),
}

_UNSAFE_LEADERS = {"function", "async", "class", "new"}


# ===================================================================
# Character-level scanning
# ===================================================================

def skip_string(text: str, start: int) -> int:
    """Return the index just past the quoted span opening at *start*."""
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if quote == "`" and ch == "$" and i + 1 < n and text[i + 1] == "{":
            i = _skip_interpolation(text, i + 1)
            continue
        if ch == "\n" and quote != "`":
            break
        i += 1
    raise LiteralSyntaxError("unterminated string", start)


def _skip_interpolation(text: str, start: int) -> int:
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch in _QUOTES:
            i = skip_string(text, i)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    raise LiteralSyntaxError("unterminated template interpolation", start)


def skip_comment(text: str, start: int) -> Optional[int]:
    """Return the index past a comment at *start*, or None if there is none."""
    if text.startswith("//", start):
        end = text.find("\n", start)
        return len(text) if end == -1 else end
    if text.startswith("/*", start):
        end = text.find("*/", start + 2)
        if end == -1:
            raise LiteralSyntaxError("unterminated comment", start)
        return end + 2
    return None


def scan_balanced(text: str, start: int) -> Optional[str]:
    """Return the literal opening at ``text[start]`` through its matching close.

    Strings and comments are opaque.  Returns None when the input ends (or a
    mismatched closer appears) before the nesting depth returns to zero.
    """
    if start >= len(text) or text[start] not in _OPENERS:
        return None
    expected: List[str] = []
    i = start
    n = len(text)
    try:
        while i < n:
            ch = text[i]
            if ch in _QUOTES:
                i = skip_string(text, i)
                continue
            if ch == "/":
                end = skip_comment(text, i)
                if end is not None:
                    i = end
                    continue
            if ch in _OPENERS:
                expected.append(_OPENERS[ch])
            elif ch in _CLOSERS:
                if not expected or expected.pop() != ch:
                    return None
                if not expected:
                    return text[start:i + 1]
            i += 1
    except LiteralSyntaxError:
        return None
    return None


def split_top_level(body: str) -> List[str]:
    """Split the inside of a literal on commas at nesting depth zero."""
    pieces: List[str] = []
    depth = 0
    last = 0
    i = 0
    n = len(body)
    while i < n:
        ch = body[i]
        if ch in _QUOTES:
            i = skip_string(body, i)
            continue
        if ch == "/":
            end = skip_comment(body, i)
            if end is not None:
                i = end
                continue
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        elif ch == "," and depth == 0:
            pieces.append(body[last:i])
            last = i + 1
        i += 1
    pieces.append(body[last:])
    return [piece.strip() for piece in pieces if piece.strip()]


def decode_string(body: str) -> str:
    """Resolve JS escape sequences in the body of a quoted string."""
    if "\\" not in body:
        return body
    out: List[str] = []
    i = 0
    n = len(body)
    while i < n:
        ch = body[i]
        if ch != "\\" or i + 1 >= n:
            out.append(ch)
            i += 1
            continue
        nxt = body[i + 1]
        if nxt == "u":
            if body.startswith("{", i + 2):
                end = body.find("}", i + 3)
                if end != -1:
                    out.append(_code_point(body[i + 3:end], "\\u"))
                    i = end + 1
                    continue
            out.append(_code_point(body[i + 2:i + 6], "\\u"))
            i += 6
            continue
        if nxt == "x":
            out.append(_code_point(body[i + 2:i + 4], "\\x"))
            i += 4
            continue
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _code_point(digits: str, prefix: str) -> str:
    try:
        return chr(int(digits, 16))
    except (ValueError, OverflowError):
        return prefix + digits


# ===================================================================
# Tokenizer
# ===================================================================

@dataclass(frozen=True)
class Token:
    kind: str  # punct | string | template | number | word | op
    value: Any
    raw: str
    pos: int = -1

    def is_punct(self, value: str) -> bool:
        return self.kind == "punct" and self.value == value


_NULL = Token("word", "null", "null")
_COMMA = Token("punct", ",", ",")


def _has_interpolation(raw: str) -> bool:
    i = 1
    while i < len(raw) - 1:
        if raw[i] == "\\":
            i += 2
            continue
        if raw[i] == "$" and raw[i + 1] == "{":
            return True
        i += 1
    return False


def _number_value(raw: str) -> Any:
    if raw[:2] in ("0x", "0X"):
        return int(raw, 16)
    if any(c in raw for c in ".eE"):
        return float(raw)
    return int(raw)


def tokenize(text: str) -> List[Token]:
    """Split literal text into tokens, dropping whitespace and comments."""
    tokens: List[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch == "/":
            end = skip_comment(text, i)
            if end is not None:
                i = end
                continue
        if ch in "'\"":
            end = skip_string(text, i)
            raw = text[i:end]
            tokens.append(Token("string", decode_string(raw[1:-1]), raw, i))
            i = end
            continue
        if ch == "`":
            end = skip_string(text, i)
            raw = text[i:end]
            value = None if _has_interpolation(raw) else decode_string(raw[1:-1])
            tokens.append(Token("template", value, raw, i))
            i = end
            continue
        if ch.isdigit() or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            match = _NUMBER_RE.match(text, i)
            if match:
                raw = match.group(0)
                tokens.append(Token("number", _number_value(raw), raw, i))
                i = match.end()
                continue
        if text.startswith("...", i):
            tokens.append(Token("punct", "...", "...", i))
            i += 3
            continue
        if text.startswith("=>", i):
            tokens.append(Token("punct", "=>", "=>", i))
            i += 2
            continue
        match = _WORD_RE.match(text, i)
        if match:
            tokens.append(Token("word", match.group(0), match.group(0), i))
            i = match.end()
            continue
        kind = "punct" if ch in "{}[]():,;." else "op"
        tokens.append(Token(kind, ch, ch, i))
        i += 1
    return tokens


# ===================================================================
# Stripping pass
# ===================================================================

def _matching_close(tokens: List[Token], start: int) -> int:
    depth = 0
    for index in range(start, len(tokens)):
        tok = tokens[index]
        if tok.kind != "punct":
            continue
        if tok.value in _OPENERS:
            depth += 1
        elif tok.value in _CLOSERS:
            depth -= 1
            if depth == 0:
                return index
    return -1


def _split_entries(tokens: List[Token]) -> List[List[Token]]:
    entries: List[List[Token]] = [[]]
    depth = 0
    for tok in tokens:
        if tok.kind == "punct":
            if tok.value in _OPENERS:
                depth += 1
            elif tok.value in _CLOSERS:
                depth -= 1
            elif tok.value == "," and depth == 0:
                entries.append([])
                continue
        entries[-1].append(tok)
    return entries


def _is_unsafe(tokens: List[Token]) -> bool:
    first = tokens[0]
    if first.kind == "word" and first.value in _UNSAFE_LEADERS:
        return True
    if first.kind == "word" and first.value == "require" and len(tokens) > 1 and tokens[1].is_punct("("):
        return True
    depth = 0
    for tok in tokens:
        if tok.kind == "punct" and tok.value in _OPENERS:
            depth += 1
        elif tok.kind == "punct" and tok.value in _CLOSERS:
            depth -= 1
        elif depth == 0 and tok.is_punct("=>"):
            return True
        elif depth == 0 and tok.kind == "template" and tok.value is None:
            return True
    return False


def _rewrite_value(tokens: List[Token]) -> List[Token]:
    if not tokens:
        return [_NULL]
    if _is_unsafe(tokens):
        return [_NULL]
    first = tokens[0]
    if first.kind == "punct" and first.value in "{[" and _matching_close(tokens, 0) == len(tokens) - 1:
        return _rewrite_container(tokens)
    return tokens


def _rewrite_container(tokens: List[Token]) -> List[Token]:
    is_object = tokens[0].value == "{"
    out = [tokens[0]]
    for entry in _split_entries(tokens[1:-1]):
        if not entry or entry[0].is_punct("..."):
            continue
        if is_object:
            has_key = (
                len(entry) >= 2
                and entry[0].kind in ("word", "string", "number")
                and entry[1].is_punct(":")
            )
            # shorthand properties, methods and computed keys have no static value
            if not has_key:
                continue
            out.extend(entry[:2])
            out.extend(_rewrite_value(entry[2:]))
        else:
            out.extend(_rewrite_value(entry))
        out.append(_COMMA)
    out.append(tokens[-1])
    return out


def strip_unsafe(text: str) -> str:
    """Return *text* with runtime-only values replaced by ``null``."""
    tokens = tokenize(text)
    if not tokens:
        return text
    return " ".join(tok.raw for tok in _rewrite_value(tokens))


# ===================================================================
# Recursive-descent parser
# ===================================================================

class _Parser:
    def __init__(self, tokens: List[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    def parse(self) -> Any:
        value = self._value()
        while self._peek() is not None and self._peek().is_punct(";"):
            self.pos += 1
        tok = self._peek()
        if tok is not None:
            raise LiteralSyntaxError(f"unexpected trailing token {tok.raw!r}", tok.pos)
        return value

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Token:
        tok = self._peek()
        if tok is None:
            raise LiteralSyntaxError("unexpected end of input")
        self.pos += 1
        return tok

    def _value(self) -> Any:
        tok = self._next()
        if tok.is_punct("{"):
            return self._object()
        if tok.is_punct("["):
            return self._array()
        if tok.kind == "string":
            return tok.value
        if tok.kind == "template":
            if tok.value is None:
                raise LiteralSyntaxError("interpolated template", tok.pos)
            return tok.value
        if tok.kind == "number":
            return tok.value
        if tok.kind == "op" and tok.value in "+-":
            operand = self._next()
            if operand.kind == "number" or (operand.kind == "word" and operand.value == "Infinity"):
                number = _KEYWORD_VALUES.get(operand.value, operand.value)
                return -number if tok.value == "-" else number
            raise LiteralSyntaxError(f"unexpected token {operand.raw!r} after sign", operand.pos)
        if tok.kind == "word" and tok.value in _KEYWORD_VALUES:
            return _KEYWORD_VALUES[tok.value]
        raise LiteralSyntaxError(f"unexpected token {tok.raw!r}", tok.pos)

    def _object(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        while True:
            tok = self._next()
            if tok.is_punct("}"):
                return result
            if tok.kind in ("word", "string"):
                key = str(tok.value)
            elif tok.kind == "number":
                key = tok.raw
            else:
                raise LiteralSyntaxError(f"invalid object key {tok.raw!r}", tok.pos)
            colon = self._next()
            if not colon.is_punct(":"):
                raise LiteralSyntaxError(f"expected ':' after key {key!r}", colon.pos)
            result[key] = self._value()
            sep = self._next()
            if sep.is_punct("}"):
                return result
            if not sep.is_punct(","):
                raise LiteralSyntaxError(f"expected ',' or '}}', got {sep.raw!r}", sep.pos)

    def _array(self) -> List[Any]:
        items: List[Any] = []
        while True:
            tok = self._peek()
            if tok is None:
                raise LiteralSyntaxError("unterminated array")
            if tok.is_punct("]"):
                self.pos += 1
                return items
            if tok.is_punct(","):
                self.pos += 1
                items.append(None)
                continue
            items.append(self._value())
            sep = self._next()
            if sep.is_punct("]"):
                return items
            if not sep.is_punct(","):
                raise LiteralSyntaxError(f"expected ',' or ']', got {sep.raw!r}", sep.pos)


def parse_literal(text: str) -> Any:
    """Parse a static data literal; raises LiteralSyntaxError otherwise."""
    return _Parser(tokenize(text)).parse()


def evaluate_literal(text: str) -> Any:
    """Strip runtime-only values from *text*, then parse what remains."""
    return parse_literal(strip_unsafe(text))
