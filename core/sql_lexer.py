"""
core/sql_lexer.py
-----------------
Tokenizer and statement splitter for MySQL / PostgreSQL dump files.

Design Decisions:
    * A single verbose regex drives tokenization; full SQL grammar is out of
      scope, the DDL parser only needs words, quoted identifiers, literals
      and punctuation with their source offsets.
    * Offsets are kept on every token so callers can slice the original
      text (expression bodies are stored exactly as written).
    * Backslash escapes inside '...' literals are a MySQL-ism; PostgreSQL
      only honours them in E'...' literals.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator


class LexError(ValueError):
    """Raised on input the tokenizer cannot make sense of."""


class TokenKind(str, Enum):
    WORD = "word"
    IDENT = "ident"      # quoted identifier
    STRING = "string"
    NUMBER = "number"
    PUNCT = "punct"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    value: str
    start: int
    end: int

    def is_word(self, *words: str) -> bool:
        return self.kind is TokenKind.WORD and self.value.upper() in words

    def is_punct(self, *symbols: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.text in symbols

    @property
    def is_name(self) -> bool:
        return self.kind in (TokenKind.WORD, TokenKind.IDENT)


_COMMON = r"""
  (?P<ws>\s+)
| (?P<line_comment>(?:--|\#)[^\n]*)
| (?P<block_comment>/\*.*?\*/){dollar}
| (?P<string>{string})
| (?P<dq>"(?:[^"]|"")*")
| (?P<bq>`(?:[^`]|``)*`)
| (?P<number>\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)
| (?P<word>[A-Za-z_][A-Za-z0-9_$]*)
| (?P<punct>::|<=|>=|<>|!=|\|\||->>|->|[-+*/%=<>!~^&|(),;.\[\]:@?{{}}])
"""

_MYSQL_STRING = r"[NnBbXx]?'(?:[^'\\]|\\.|'')*'"
_PG_STRING = r"(?:[Ee]'(?:[^'\\]|\\.|'')*'|[NnBbXx]?'(?:[^']|'')*')"

_PG_DOLLAR = r"""
| (?P<dollar>\$(?P<tag>[A-Za-z_]*)\$.*?\$(?P=tag)\$)"""

_PATTERNS = {
    "mysql": re.compile(
        _COMMON.format(dollar="", string=_MYSQL_STRING), re.VERBOSE | re.DOTALL
    ),
    "postgresql": re.compile(
        _COMMON.format(dollar=_PG_DOLLAR, string=_PG_STRING), re.VERBOSE | re.DOTALL
    ),
}


def _unquote(text: str, quote: str) -> str:
    return text[1:-1].replace(quote * 2, quote)


def _string_value(text: str) -> str:
    body = text[text.index("'") + 1:-1]
    return body.replace("''", "'").replace("\\'", "'")


def tokenize(text: str, dialect: str = "mysql", pos: int = 0) -> Iterator[Token]:
    """
    Yield tokens of *text* starting at *pos*; whitespace and comments are skipped.

    Raises:
        LexError: On an unterminated string or quoted identifier.
    """
    pattern = _PATTERNS.get(dialect, _PATTERNS["mysql"])
    length = len(text)
    while pos < length:
        match = pattern.match(text, pos)
        if match is None:
            char = text[pos]
            if char in "'\"`":
                line = text.count("\n", 0, pos) + 1
                raise LexError(f"Unterminated quoted text starting at line {line}.")
            yield Token(TokenKind.PUNCT, char, char, pos, pos + 1)
            pos += 1
            continue
        kind = match.lastgroup
        raw = match.group(0)
        start, end = match.span()
        pos = end
        if kind in ("ws", "line_comment", "block_comment"):
            continue
        if kind in ("dollar", "tag"):
            quote_len = len(match.group("tag")) + 2
            yield Token(TokenKind.STRING, raw, raw[quote_len:-quote_len], start, end)
        elif kind == "string":
            yield Token(TokenKind.STRING, raw, _string_value(raw), start, end)
        elif kind == "dq":
            yield Token(TokenKind.IDENT, raw, _unquote(raw, '"'), start, end)
        elif kind == "bq":
            yield Token(TokenKind.IDENT, raw, _unquote(raw, "`"), start, end)
        elif kind == "number":
            yield Token(TokenKind.NUMBER, raw, raw, start, end)
        elif kind == "word":
            yield Token(TokenKind.WORD, raw, raw, start, end)
        else:
            yield Token(TokenKind.PUNCT, raw, raw, start, end)


_DELIMITER_RE = re.compile(r"\s*DELIMITER[ \t]+(\S+)[ \t]*(?:\n|$)", re.IGNORECASE)
_COPY_END_RE = re.compile(r"^\\\.[ \t]*$", re.MULTILINE)


@dataclass(frozen=True)
class Statement:
    text: str
    tokens: list[Token]
    line: int

    @property
    def head(self) -> str:
        """First words of the statement, upper-cased, for dispatch and logs."""
        words = [t.value.upper() for t in self.tokens[:4] if t.kind is TokenKind.WORD]
        return " ".join(words)


def split_statements(text: str, dialect: str = "mysql") -> Iterator[Statement]:
    """
    Split a dump into statements.

    Handles ``DELIMITER`` directives (mysqldump routines / triggers) and
    skips the inline data block that follows ``COPY ... FROM stdin;`` in
    pg_dump output.  Token offsets in each yielded statement are relative
    to the statement text.
    """
    pos = 0
    delimiter = ";"
    length = len(text)
    while pos < length:
        tokens: list[Token] = []
        end = length
        next_pos = length
        for tok in tokenize(text, dialect, pos):
            if not tokens and tok.is_word("DELIMITER"):
                directive = _DELIMITER_RE.match(text, tok.start)
                if directive:
                    delimiter = directive.group(1)
                    next_pos = directive.end()
                    break
            if tok.kind is TokenKind.PUNCT and text.startswith(delimiter, tok.start):
                end = tok.start
                next_pos = tok.start + len(delimiter)
                break
            tokens.append(tok)

        if tokens:
            base = tokens[0].start
            stmt_text = text[base:end].rstrip()
            rel = [Token(t.kind, t.text, t.value, t.start - base, t.end - base) for t in tokens]
            statement = Statement(stmt_text, rel, text.count("\n", 0, base) + 1)
            yield statement
            if (
                statement.tokens[0].is_word("COPY")
                and any(t.is_word("STDIN") for t in statement.tokens)
            ):
                data_end = _COPY_END_RE.search(text, next_pos)
                next_pos = data_end.end() if data_end else length
        if next_pos == pos:
            next_pos = pos + 1
        pos = next_pos


class TokenStream:
    """Cursor over a token list with the usual peek / accept / expect helpers."""

    def __init__(self, tokens: list[Token], source: str = "") -> None:
        self._tokens = tokens
        self._pos = 0
        self.source = source

    @property
    def pos(self) -> int:
        return self._pos

    def at_end(self) -> bool:
        return self._pos >= len(self._tokens)

    def peek(self, offset: int = 0) -> Token | None:
        """Token at *offset* from the cursor; ``peek(-1)`` is the one just consumed."""
        idx = self._pos + offset
        return self._tokens[idx] if 0 <= idx < len(self._tokens) else None

    def next(self) -> Token:
        if self.at_end():
            raise LexError("Unexpected end of statement.")
        tok = self._tokens[self._pos]
        self._pos += 1
        return tok

    def accept_word(self, *words: str) -> Token | None:
        tok = self.peek()
        if tok is not None and tok.is_word(*words):
            self._pos += 1
            return tok
        return None

    def accept_words(self, *sequence: str) -> bool:
        """Consume the whole word sequence, or nothing."""
        for offset, word in enumerate(sequence):
            tok = self.peek(offset)
            if tok is None or not tok.is_word(word):
                return False
        self._pos += len(sequence)
        return True

    def accept_punct(self, *symbols: str) -> Token | None:
        tok = self.peek()
        if tok is not None and tok.is_punct(*symbols):
            self._pos += 1
            return tok
        return None

    def expect_punct(self, symbol: str) -> Token:
        tok = self.accept_punct(symbol)
        if tok is None:
            found = self.peek()
            raise LexError(f"Expected '{symbol}', found '{found.text if found else 'end of statement'}'.")
        return tok

    def expect_name(self) -> str:
        tok = self.peek()
        if tok is None or not tok.is_name:
            raise LexError(f"Expected a name, found '{tok.text if tok else 'end of statement'}'.")
        self._pos += 1
        return tok.value

    def skip_parenthesized(self) -> tuple[int, int]:
        """
        Consume a balanced ``( ... )`` group.

        Returns:
            The (start, end) source offsets of the group's inner text.
        """
        open_tok = self.expect_punct("(")
        depth = 1
        while True:
            tok = self.next()
            if tok.is_punct("("):
                depth += 1
            elif tok.is_punct(")"):
                depth -= 1
                if depth == 0:
                    return open_tok.end, tok.start

    def skip_until(self, *symbols: str) -> None:
        """Advance to the next top-level token in *symbols* (not consumed)."""
        depth = 0
        while not self.at_end():
            tok = self.peek()
            if depth == 0 and tok.is_punct(*symbols):
                return
            if tok.is_punct("("):
                depth += 1
            elif tok.is_punct(")"):
                if depth == 0:
                    return
                depth -= 1
            self._pos += 1
