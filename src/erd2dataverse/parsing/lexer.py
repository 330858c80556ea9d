"""Tokenizer for Mermaid ER diagram text."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List

from erd2dataverse.errors import ParseError


class TokenKind(str, Enum):
    IDENT = "IDENT"
    STRING = "STRING"
    CARDINALITY = "CARDINALITY"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    COLON = ":"
    COMMA = ","
    NEWLINE = "NEWLINE"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    line: int
    column: int


# Symbolic cardinality: left marker, line style, right marker
SYMBOL_CARDINALITY = re.compile(r"(\|o|\|\||\}o|\}\|)(--|\.\.)(o\||\|\||o\{|\|\{)")

# Word aliases, longest first so "one or more" wins over "1"
_WORD_SIDES = [
    "zero or one",
    "one or zero",
    "zero or more",
    "zero or many",
    "one or more",
    "one or many",
    "only one",
    r"many\(0\)",
    r"many\(1\)",
    r"0\+",
    r"1\+",
    "1",
]
_WORD_SIDE = "(?:" + "|".join(_WORD_SIDES) + ")"
WORD_CARDINALITY = re.compile(
    rf"({_WORD_SIDE})\s+(optionally\s+to|to)\s+({_WORD_SIDE})(?![\w(+])",
    re.IGNORECASE,
)

# Identifiers; types may carry parameters or an array suffix (varchar(255), string[])
IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*(?:\([^)\n]*\))?(?:\[\])?")
STRING = re.compile(r'"([^"\n]*)"')
WHITESPACE = re.compile(r"[ \t\r]+")

_PUNCT = {
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    ":": TokenKind.COLON,
    ",": TokenKind.COMMA,
}


def strip_front_matter(text: str) -> List[str]:
    """Split into lines, blanking a leading ``---`` YAML front-matter block."""
    lines = text.splitlines()
    first = next((i for i, line in enumerate(lines) if line.strip()), None)
    if first is None or lines[first].strip() != "---":
        return lines
    for end in range(first + 1, len(lines)):
        if lines[end].strip() == "---":
            return [""] * (end + 1) + lines[end + 1:]
    return lines


def tokenize(text: str) -> Iterator[Token]:
    """
    Yield tokens for diagram text.

    ``%%`` comments run to the end of the line. Line breaks are emitted as
    NEWLINE tokens so the parser can tell statements apart; the stream always
    ends with a single EOF token.

    Raises:
        ParseError: On an unterminated string or a character outside the grammar
    """
    lines = strip_front_matter(text)
    for line_no, line in enumerate(lines, start=1):
        pos = 0
        length = len(line)
        while pos < length:
            m = WHITESPACE.match(line, pos)
            if m:
                pos = m.end()
                continue
            if line.startswith("%%", pos):
                break
            column = pos + 1
            ch = line[pos]

            m = SYMBOL_CARDINALITY.match(line, pos)
            if m:
                yield Token(TokenKind.CARDINALITY, m.group(0), line_no, column)
                pos = m.end()
                continue

            m = WORD_CARDINALITY.match(line, pos)
            if m and (pos == 0 or not (line[pos - 1].isalnum() or line[pos - 1] == "_")):
                normalized = " ".join(m.group(0).lower().split())
                yield Token(TokenKind.CARDINALITY, normalized, line_no, column)
                pos = m.end()
                continue

            if ch == '"':
                m = STRING.match(line, pos)
                if not m:
                    raise ParseError("unterminated string", line_no, column, line[pos:pos + 12])
                yield Token(TokenKind.STRING, m.group(1), line_no, column)
                pos = m.end()
                continue

            if ch in _PUNCT:
                yield Token(_PUNCT[ch], ch, line_no, column)
                pos += 1
                continue

            m = IDENT.match(line, pos)
            if m:
                yield Token(TokenKind.IDENT, m.group(0), line_no, column)
                pos = m.end()
                continue

            raise ParseError("unexpected character", line_no, column, ch)
        yield Token(TokenKind.NEWLINE, "\n", line_no, len(line) + 1)
    yield Token(TokenKind.EOF, "", len(lines) + 1, 1)
