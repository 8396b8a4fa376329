"""
core/expression_translator.py
-----------------------------
Best-effort rewrite of source check / default / generated expressions into
GoogleSQL.

Rewrites performed:
    * column references → the column's target name,
    * string literals re-quoted in GoogleSQL style; MySQL ``"..."`` strings
      become ``'...'``,
    * ``expr::type`` casts → ``CAST(expr AS <target type>)``, dropped for
      string literals cast to a string type,
    * function renames (``NOW()`` → ``CURRENT_TIMESTAMP()``, ``UUID()`` →
      ``GENERATE_UUID()`` ...) and niladic ``CURRENT_TIMESTAMP`` →
      ``CURRENT_TIMESTAMP()``,
    * PostgreSQL ``x = ANY (ARRAY[...])`` → ``x IN UNNEST([...])``.

Design Decision:
    The translator works on the token stream, not on a full expression
    grammar.  Anything it cannot rewrite is passed through unchanged and
    left to the target to accept or reject; the verifier records the
    verdict either way.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Union

from core.ddl_parser import DdlParser
from core.dialects import SourceDialect
from core.errors import ConversionError
from core.sql_lexer import LexError, Token, TokenKind, tokenize
from models.schema import Table


class TranslationError(ConversionError):
    """Raised when an expression cannot be tokenized or is unbalanced."""


FUNCTION_RENAMES = {
    "NOW": "CURRENT_TIMESTAMP",
    "LOCALTIMESTAMP": "CURRENT_TIMESTAMP",
    "SYSDATE": "CURRENT_TIMESTAMP",
    "CURDATE": "CURRENT_DATE",
    "UUID": "GENERATE_UUID",
    "GEN_RANDOM_UUID": "GENERATE_UUID",
    "UUID_GENERATE_V4": "GENERATE_UUID",
    "LCASE": "LOWER",
    "UCASE": "UPPER",
    "SUBSTRING": "SUBSTR",
    "CHAR_LENGTH": "CHAR_LENGTH",
    "CHARACTER_LENGTH": "CHAR_LENGTH",
    "POWER": "POW",
    "RANDOM": "RAND",
}

NILADIC_FUNCTIONS = {
    "CURRENT_TIMESTAMP": "CURRENT_TIMESTAMP()",
    "LOCALTIMESTAMP": "CURRENT_TIMESTAMP()",
    "CURRENT_DATE": "CURRENT_DATE()",
}

_TYPE_CONTINUATIONS = frozenset({"VARYING", "PRECISION", "WITH", "WITHOUT", "TIME", "ZONE"})
_SPACED_KEYWORDS = frozenset({
    "AND", "OR", "NOT", "IN", "IS", "WHEN", "THEN", "ELSE", "CASE", "AS",
    "LIKE", "BETWEEN", "ANY", "ALL", "EXISTS",
})
_WORD = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class _Group:
    open: str
    items: list["_Node"] = field(default_factory=list)

    @property
    def close(self) -> str:
        return ")" if self.open == "(" else "]"


_Node = Union[Token, _Group]


def quote_string(value: str) -> str:
    """Render *value* as a GoogleSQL string literal."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _nest(tokens: list[Token]) -> list[_Node]:
    stack: list[list[_Node]] = [[]]
    opens: list[_Group] = []
    for tok in tokens:
        if tok.is_punct("(", "["):
            group = _Group(tok.text)
            opens.append(group)
            stack.append(group.items)
        elif tok.is_punct(")", "]"):
            if not opens or opens[-1].close != tok.text:
                raise TranslationError(f"Unbalanced '{tok.text}' in expression.")
            stack.pop()
            stack[-1].append(opens.pop())
        else:
            stack[-1].append(tok)
    if opens:
        raise TranslationError(f"Unclosed '{opens[-1].open}' in expression.")
    return stack[0]


class ExpressionTranslator:
    """
    Translates expressions of one source dialect.

    Args:
        dialect: Source dialect, used for lexing and for mapping cast types.
    """

    def __init__(self, dialect: SourceDialect) -> None:
        self.dialect = dialect
        self.lex_dialect = dialect.tag if dialect.tag in ("mysql", "postgresql") else "mysql"
        self._types = DdlParser(self.lex_dialect)

    def translate(self, text: str, table: Table) -> str:
        """
        Return the GoogleSQL form of *text* evaluated in the context of *table*.

        Raises:
            TranslationError: If *text* cannot be tokenized or is unbalanced.
        """
        try:
            tokens = list(tokenize(text, self.lex_dialect))
        except LexError as exc:
            raise TranslationError(str(exc)) from exc
        return _join(self._render(_nest(tokens), table))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self, nodes: list[_Node], table: Table) -> list[tuple[str, bool]]:
        """Render *nodes* to ``(piece, attach_to_previous)`` pairs."""
        out: list[tuple[str, bool]] = []
        i = 0
        while i < len(nodes):
            node = nodes[i]
            nxt = nodes[i + 1] if i + 1 < len(nodes) else None
            i += 1

            if isinstance(node, _Group):
                inner = _join(self._render(node.items, table))
                attach = bool(out) and _is_callable(out[-1][0])
                out.append((f"{node.open}{inner}{node.close}", attach))
                continue

            tok = node
            if tok.is_punct("::"):
                consumed, type_text = self._cast_type(nodes, i)
                i += consumed
                if not out:
                    raise TranslationError("Cast without an operand.")
                operand, attach = out.pop()
                target = self._target_type(type_text)
                if target.startswith("STRING") and operand.startswith("'"):
                    out.append((operand, attach))
                else:
                    out.append((f"CAST({operand} AS {target})", attach))
                continue

            calls = isinstance(nxt, _Group) and nxt.open == "("
            if tok.kind is TokenKind.WORD:
                upper = tok.value.upper()
                if upper == "ARRAY" and isinstance(nxt, _Group) and nxt.open == "[":
                    continue
                if upper == "ANY" and out and out[-1][0] == "=" and calls:
                    out[-1] = ("IN", False)
                    out.append(("UNNEST", False))
                    continue
                if calls and upper in FUNCTION_RENAMES:
                    out.append((FUNCTION_RENAMES[upper], False))
                    continue
                if not calls and upper in NILADIC_FUNCTIONS:
                    out.append((NILADIC_FUNCTIONS[upper], False))
                    continue
                out.append((self._column_or_word(tok, table, calls), False))
            elif tok.kind is TokenKind.IDENT:
                column = None if calls else table.column_by_name(tok.value)
                if column is not None:
                    out.append((column.target_name or column.name, False))
                elif tok.text.startswith('"') and self.lex_dialect == "mysql":
                    out.append((quote_string(tok.value), False))
                else:
                    out.append((f"`{tok.value}`", False))
            elif tok.kind is TokenKind.STRING:
                out.append((quote_string(tok.value), False))
            else:
                attach = tok.text in (",", ".") or (bool(out) and out[-1][0] == ".")
                out.append((tok.text, attach))
        return out

    def _column_or_word(self, tok: Token, table: Table, calls: bool) -> str:
        if not calls:
            column = table.column_by_name(tok.value)
            if column is not None:
                return column.target_name or column.name
        return tok.text

    def _cast_type(self, nodes: list[_Node], start: int) -> tuple[int, str]:
        """Collect the type after ``::``; returns (nodes consumed, type text)."""
        parts: list[str] = []
        j = start
        while j < len(nodes):
            node = nodes[j]
            if isinstance(node, Token) and node.is_name and (
                not parts or node.value.upper() in _TYPE_CONTINUATIONS
            ):
                parts.append(node.value)
            elif isinstance(node, _Group) and parts:
                inner = "".join(t.text for t in node.items if isinstance(t, Token))
                parts.append(f"{node.open}{inner}{node.close}")
            else:
                break
            j += 1
        if not parts:
            raise TranslationError("Missing type after '::'.")
        return j - start, " ".join(parts)

    def _target_type(self, type_text: str) -> str:
        return self.dialect.map_type(self._types.parse_type(type_text)).target.render()


def _is_callable(piece: str) -> bool:
    return bool(_WORD.match(piece)) and piece.upper() not in _SPACED_KEYWORDS


def _join(pieces: list[tuple[str, bool]]) -> str:
    text = ""
    for piece, attach in pieces:
        if text and not attach:
            text += " "
        text += piece
    return text
