import math
import re
from typing import Any, Optional

from ansible_erlang_rpc.errors import TermSyntaxError

# =========================
# Erlang literal terms
# =========================
#
# Python mapping of the literals accepted in ``args=``:
#   atom    -> Atom          string  -> str
#   integer -> int           float   -> float
#   list    -> list          tuple   -> tuple
#   map     -> dict          binary  -> bytes


class Atom(str):
    """An Erlang atom. A plain ``str`` is an Erlang string (a charlist)."""

    __slots__ = ()

    def __eq__(self, other):
        return isinstance(other, Atom) and str.__eq__(self, other)

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = str.__hash__

    def __repr__(self) -> str:
        return f"Atom({str.__repr__(self)})"


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+|%[^\n]*)
  | (?P<char>\$(?:\\(?:x\{[0-9A-Fa-f]+\}|x[0-9A-Fa-f]{2}|[0-7]{1,3}|\^.|.)|.))
  | (?P<float>\d[\d_]*\.\d[\d_]*(?:[eE][+-]?\d+)?)
  | (?P<based>\d+\#[0-9A-Za-z_]+)
  | (?P<int>\d[\d_]*)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<qatom>'(?:[^'\\]|\\.)*')
  | (?P<atom>[a-z][A-Za-z0-9_@]*)
  | (?P<var>[A-Z_][A-Za-z0-9_@]*)
  | (?P<punct><<|>>|=>|\#\{|[\[\]{},/-])
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPE_RE = re.compile(
    r"\\(x\{[0-9A-Fa-f]+\}|x[0-9A-Fa-f]{2}|[0-7]{1,3}|\^.|.)", re.DOTALL
)

_ESCAPES = {
    "b": "\b",
    "d": "\x7f",
    "e": "\x1b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "s": " ",
    "t": "\t",
    "v": "\v",
}

_BINARY_ENCODINGS = ("utf8", "latin1")


def _unescape(body: str) -> str:
    """Decode Erlang backslash escapes; an unknown escape yields the character itself."""

    def replace(m: re.Match) -> str:
        seq = m.group(1)
        if seq.startswith("x{"):
            return chr(int(seq[2:-1], 16))
        if seq[0] == "x" and len(seq) == 3:
            return chr(int(seq[1:], 16))
        if seq[0] in "01234567":
            return chr(int(seq, 8))
        if seq[0] == "^" and len(seq) == 2:
            return chr(ord(seq[1]) % 32)
        return _ESCAPES.get(seq, seq)

    return _ESCAPE_RE.sub(replace, body)


def _tokenize(text: str) -> list[tuple[str, str, int]]:
    tokens = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            raise TermSyntaxError(f"unexpected character {text[pos]!r}", text, pos)
        kind = m.lastgroup
        if kind == "var":
            raise TermSyntaxError(
                f"variables are not allowed ({m.group()!r})", text, pos
            )
        if kind != "ws":
            tokens.append((kind, m.group(), pos))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.index = 0

    def error(self, message: str, pos: Optional[int] = None) -> TermSyntaxError:
        if pos is None:
            pos = self.tokens[self.index][2] if not self.at_end() else len(self.text)
        return TermSyntaxError(message, self.text, pos)

    def at_end(self) -> bool:
        return self.index >= len(self.tokens)

    def peek(self) -> tuple[str, str, int]:
        if self.at_end():
            return ("eof", "", len(self.text))
        return self.tokens[self.index]

    def next(self) -> tuple[str, str, int]:
        token = self.peek()
        if token[0] == "eof":
            raise self.error("unexpected end of input")
        self.index += 1
        return token

    def accept(self, punct: str) -> bool:
        kind, text, _ = self.peek()
        if kind == "punct" and text == punct:
            self.index += 1
            return True
        return False

    def expect(self, punct: str) -> None:
        if not self.accept(punct):
            kind, text, pos = self.peek()
            found = "end of input" if kind == "eof" else repr(text)
            raise self.error(f"expected {punct!r}, found {found}", pos)

    def sequence(self, closer: Optional[str] = None) -> list:
        """Comma-separated terms up to ``closer`` (or the end of input)."""
        items = []
        if closer is None and self.at_end():
            return items
        if closer is not None and self.accept(closer):
            return items
        while True:
            items.append(self.term())
            if self.accept(","):
                continue
            if closer is None:
                if not self.at_end():
                    raise self.error(f"unexpected {self.peek()[1]!r}")
            else:
                self.expect(closer)
            return items

    def term(self) -> Any:
        kind, text, pos = self.next()
        if kind == "punct":
            if text == "[":
                return self.sequence("]")
            if text == "{":
                return tuple(self.sequence("}"))
            if text == "#{":
                return self.map()
            if text == "<<":
                return self.binary()
            if text == "-":
                return -self.number()
            raise self.error(f"unexpected {text!r}", pos)
        if kind == "atom":
            return Atom(text)
        if kind == "qatom":
            return Atom(_unescape(text[1:-1]))
        if kind == "string":
            return self.string(text)
        self.index -= 1
        return self.number()

    def number(self):
        kind, text, pos = self.next()
        try:
            if kind == "int":
                return int(text)
            if kind == "float":
                return float(text)
            if kind == "based":
                base, digits = text.split("#", 1)
                if not 2 <= int(base) <= 36:
                    raise ValueError(f"base {base} out of range")
                return int(digits, int(base))
            if kind == "char":
                char = _unescape(text[1:])
                if len(char) == 1:
                    return ord(char)
        except ValueError:
            raise self.error(f"invalid number {text!r}", pos) from None
        raise self.error(f"expected a number, found {text!r}", pos)

    def string(self, first: str) -> str:
        parts = [_unescape(first[1:-1])]
        # "ab" "cd" is the single string "abcd"
        while self.peek()[0] == "string":
            parts.append(_unescape(self.next()[1][1:-1]))
        return "".join(parts)

    def map(self) -> dict:
        result = {}
        # Python key -> Erlang rendering; 1 and 1.0 are one dict key but two map keys
        seen = {}
        if self.accept("}"):
            return result
        while True:
            pos = self.peek()[2]
            key = self.term()
            self.expect("=>")
            value = self.term()
            rendered = to_erlang(key)
            try:
                previous = seen.get(key, rendered)
            except TypeError:
                raise self.error(f"unsupported map key {rendered}", pos) from None
            if previous != rendered:
                raise self.error(f"map keys {previous} and {rendered} collide", pos)
            seen[key] = rendered
            result[key] = value
            if self.accept(","):
                continue
            self.expect("}")
            return result

    def binary(self) -> bytes:
        data = bytearray()
        if self.accept(">>"):
            return bytes(data)
        while True:
            kind, text, pos = self.peek()
            if kind == "string":
                self.index += 1
                value = self.string(text)
                encoding = "latin1"
                if self.accept("/"):
                    kind, encoding, pos = self.next()
                    if encoding not in _BINARY_ENCODINGS:
                        raise self.error(f"unsupported binary type {encoding!r}", pos)
                if encoding == "utf8":
                    data.extend(value.encode("utf-8"))
                else:
                    data.extend(ord(c) & 0xFF for c in value)
            else:
                negative = self.accept("-")
                value = self.number()
                if not isinstance(value, int):
                    raise self.error("binary segments must be integers or strings", pos)
                data.append((-value if negative else value) & 0xFF)
            if self.accept(","):
                continue
            self.expect(">>")
            return bytes(data)


def parse_terms(text: str) -> list:
    """Parse a comma-separated sequence of Erlang literals, e.g. ``foo,"bar",[1,2]``."""
    return _Parser(text or "").sequence()


def parse_term(text: str) -> Any:
    parser = _Parser(text or "")
    if parser.at_end():
        raise parser.error("empty term")
    value = parser.term()
    if not parser.at_end():
        raise parser.error(f"unexpected {parser.peek()[1]!r}")
    return value


# =========================
# Rendering
# =========================


def _quote(value: str, quote: str) -> str:
    out = []
    for ch in value:
        if ch == quote or ch == "\\":
            out.append("\\" + ch)
        elif " " <= ch <= "~":
            out.append(ch)
        else:
            out.append("\\x{%X}" % ord(ch))
    return quote + "".join(out) + quote


def _format_float(value: float) -> str:
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"{value!r} has no Erlang representation")
    text = repr(value)
    if "e" in text:
        # Erlang needs a fraction before the exponent: 1.0e+20, not 1e+20
        mantissa, exponent = text.split("e")
        if "." not in mantissa:
            mantissa += ".0"
        text = f"{mantissa}e{exponent}"
    return text


def to_erlang(value: Any) -> str:
    """Render a Python value as Erlang source text."""
    if isinstance(value, Atom):
        return _quote(value, "'")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, str):
        return _quote(value, '"')
    if isinstance(value, (bytes, bytearray)):
        return "<<" + ",".join(str(b) for b in value) + ">>"
    if isinstance(value, list):
        return "[" + ",".join(to_erlang(v) for v in value) + "]"
    if isinstance(value, tuple):
        return "{" + ",".join(to_erlang(v) for v in value) + "}"
    if isinstance(value, dict):
        pairs = (f"{to_erlang(k)} => {to_erlang(v)}" for k, v in value.items())
        return "#{" + ",".join(pairs) + "}"
    raise TypeError(f"cannot render {type(value).__name__} as an Erlang term")
