"""Tokenizer and recursive-descent parser for the formula language.

Grammar, lowest precedence first::

    expression     := or_expr ( "?" expression ":" expression )?
    or_expr        := and_expr ( "||" and_expr )*
    and_expr       := equality ( "&&" equality )*
    equality       := relational ( ( "==" | "!=" | "=" ) relational )*
    relational     := additive ( ( "<" | "<=" | ">" | ">=" ) additive )*
    additive       := multiplicative ( ( "+" | "-" ) multiplicative )*
    multiplicative := unary ( ( "*" | "/" ) unary )*
    unary          := ( "!" | "-" | "+" ) unary | primary
    primary        := NUMBER | STRING | "true" | "false" | "null"
                    | NAME "(" arguments? ")" | NAME | "[" FIELD "]"
                    | "(" expression ")"

``=`` is accepted as an alias for ``==``.  Parsing is pure: the same
source always yields an equal tree, so trees are memoised.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Optional

from app.core.exceptions import FormulaSyntaxError
from app.formula.nodes import (
    BinaryOp,
    Conditional,
    FunctionCall,
    Identifier,
    Literal,
    Node,
    UnaryOp,
)

MAX_FORMULA_LENGTH = 10_000
MAX_NESTING_DEPTH = 64

_NUMBER_RE = re.compile(r"(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
# Identifier segments accept any Unicode letter (lead.prénom).
_NAME_RE = re.compile(r"[^\W\d]\w*(?:\.[^\W\d]\w*)*")
_DIGITS = frozenset("0123456789")

_TWO_CHAR_OPERATORS = {"==", "!=", "<=", ">=", "&&", "||"}
_ONE_CHAR_OPERATORS = set("+-*/<>!=?:,()")
_KEYWORDS = {"true": True, "false": False, "null": None}
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}


@dataclass(frozen=True)
class Token:
    kind: str  # NUMBER, STRING, NAME, FIELD, OP, EOF
    value: Any
    position: int


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    length = len(source)
    while pos < length:
        char = source[pos]
        if char.isspace():
            pos += 1
            continue

        if char in _DIGITS or (char == "." and source[pos + 1 : pos + 2] in _DIGITS):
            match = _NUMBER_RE.match(source, pos)
            text = match.group(0)
            is_float = any(c in text for c in ".eE")
            tokens.append(Token("NUMBER", float(text) if is_float else int(text), pos))
            pos = match.end()
            continue

        if char in ("'", '"'):
            value, end = _read_string(source, pos)
            tokens.append(Token("STRING", value, pos))
            pos = end
            continue

        if char == "[":
            end = source.find("]", pos + 1)
            if end == -1:
                raise FormulaSyntaxError(
                    f"Unterminated field reference at position {pos}", position=pos
                )
            name = source[pos + 1 : end].strip()
            if not name:
                raise FormulaSyntaxError(
                    f"Empty field reference at position {pos}", position=pos
                )
            tokens.append(Token("FIELD", name, pos))
            pos = end + 1
            continue

        if char.isalpha() or char == "_":
            match = _NAME_RE.match(source, pos)
            tokens.append(Token("NAME", match.group(0), pos))
            pos = match.end()
            continue

        pair = source[pos : pos + 2]
        if pair in _TWO_CHAR_OPERATORS:
            tokens.append(Token("OP", pair, pos))
            pos += 2
            continue
        if char in _ONE_CHAR_OPERATORS:
            tokens.append(Token("OP", char, pos))
            pos += 1
            continue

        hint = f" (did you mean '{char * 2}'?)" if char in "&|" else ""
        raise FormulaSyntaxError(
            f"Unexpected character '{char}' at position {pos}{hint}", position=pos
        )

    tokens.append(Token("EOF", None, length))
    return tokens


def _read_string(source: str, start: int):
    quote = source[start]
    pos = start + 1
    chars: List[str] = []
    while pos < len(source):
        char = source[pos]
        if char == "\\" and pos + 1 < len(source):
            nxt = source[pos + 1]
            chars.append(_ESCAPES.get(nxt, nxt))
            pos += 2
            continue
        if char == quote:
            return "".join(chars), pos + 1
        chars.append(char)
        pos += 1
    raise FormulaSyntaxError(
        f"Unterminated string literal starting at position {start}", position=start
    )


class _Parser:
    def __init__(self, tokens: List[Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    # -- token helpers -------------------------------------------------

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != "EOF":
            self._index += 1
        return token

    def _match(self, *operators: str) -> Optional[str]:
        token = self._current
        if token.kind == "OP" and token.value in operators:
            self._advance()
            return token.value
        return None

    def _expect(self, operator: str) -> Token:
        token = self._current
        if token.kind == "OP" and token.value == operator:
            return self._advance()
        raise FormulaSyntaxError(
            f"Expected '{operator}' but found {_describe(token)} at position {token.position}",
            position=token.position,
        )

    # -- grammar -------------------------------------------------------

    def parse(self) -> Node:
        node = self._expression()
        token = self._current
        if token.kind != "EOF":
            raise FormulaSyntaxError(
                f"Unexpected {_describe(token)} at position {token.position}",
                position=token.position,
            )
        return node

    def _expression(self) -> Node:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise FormulaSyntaxError(
                "Formula is nested too deeply", position=self._current.position
            )
        try:
            condition = self._or()
            if self._match("?"):
                then_branch = self._expression()
                self._expect(":")
                else_branch = self._expression()
                return Conditional(condition, then_branch, else_branch)
            return condition
        finally:
            self._depth -= 1

    def _or(self) -> Node:
        node = self._and()
        while self._match("||"):
            node = BinaryOp("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._equality()
        while self._match("&&"):
            node = BinaryOp("&&", node, self._equality())
        return node

    def _equality(self) -> Node:
        node = self._relational()
        while True:
            op = self._match("==", "!=", "=")
            if op is None:
                return node
            node = BinaryOp("==" if op == "=" else op, node, self._relational())

    def _relational(self) -> Node:
        node = self._additive()
        while True:
            op = self._match("<", "<=", ">", ">=")
            if op is None:
                return node
            node = BinaryOp(op, node, self._additive())

    def _additive(self) -> Node:
        node = self._multiplicative()
        while True:
            op = self._match("+", "-")
            if op is None:
                return node
            node = BinaryOp(op, node, self._multiplicative())

    def _multiplicative(self) -> Node:
        node = self._unary()
        while True:
            op = self._match("*", "/")
            if op is None:
                return node
            node = BinaryOp(op, node, self._unary())

    def _unary(self) -> Node:
        op = self._match("!", "-", "+")
        if op is None:
            return self._primary()
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise FormulaSyntaxError(
                "Formula is nested too deeply", position=self._current.position
            )
        try:
            return UnaryOp(op, self._unary())
        finally:
            self._depth -= 1

    def _primary(self) -> Node:
        token = self._current
        if token.kind in ("NUMBER", "STRING"):
            self._advance()
            return Literal(token.value)
        if token.kind == "FIELD":
            self._advance()
            return Identifier(token.value)
        if token.kind == "NAME":
            self._advance()
            if self._match("("):
                return self._call(token)
            keyword = token.value.lower()
            if keyword in _KEYWORDS:
                return Literal(_KEYWORDS[keyword])
            return Identifier(token.value)
        if self._match("("):
            node = self._expression()
            self._expect(")")
            return node
        if token.kind == "EOF":
            raise FormulaSyntaxError(
                "Unexpected end of formula", position=token.position
            )
        raise FormulaSyntaxError(
            f"Unexpected {_describe(token)} at position {token.position}",
            position=token.position,
        )

    def _call(self, name_token: Token) -> Node:
        name = name_token.value
        if "." in name:
            raise FormulaSyntaxError(
                f"Invalid function name '{name}' at position {name_token.position}",
                position=name_token.position,
            )
        args: List[Node] = []
        if not self._match(")"):
            while True:
                args.append(self._expression())
                if self._match(")"):
                    break
                self._expect(",")
        return FunctionCall(name, tuple(args))


def _describe(token: Token) -> str:
    if token.kind == "EOF":
        return "end of formula"
    if token.kind == "STRING":
        return f"string {token.value!r}"
    if token.kind == "FIELD":
        return f"field [{token.value}]"
    return f"'{token.value}'"


@lru_cache(maxsize=1024)
def parse(source: str) -> Node:
    """Parse *source* into a syntax tree.

    Raises :class:`FormulaSyntaxError` on lexical or grammatical errors.
    Function names are not checked here; see :mod:`app.formula.validator`.
    """
    if source is None or not source.strip():
        raise FormulaSyntaxError("Formula is empty", position=0)
    if len(source) > MAX_FORMULA_LENGTH:
        raise FormulaSyntaxError(
            f"Formula exceeds {MAX_FORMULA_LENGTH} characters", position=MAX_FORMULA_LENGTH
        )
    return _Parser(tokenize(source)).parse()
