"""AST and lark parser for residual formula expressions.

After field references and function calls have been substituted, what remains
of a formula is a small expression language (see ``grammar.lark``):

    expression  := or
    or          := and ( "||" and )*
    and         := equality ( "&&" equality )*
    equality    := relational ( ( "==" | "!=" ) relational )*
    relational  := additive ( ( "<" | ">" | "<=" | ">=" ) additive )*
    additive    := term ( ( "+" | "-" ) term )*
    term        := unary ( ( "*" | "/" | "%" ) unary )*
    unary       := ( "-" | "+" | "!" ) unary | primary
    primary     := NUMBER | STRING | "true" | "false" | "(" expression ")"

Parsing produces an AST that `catalog_builder.formulas.interpreter` walks.
Nothing here executes code.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedCharacters, UnexpectedInput, UnexpectedToken

STRING_LITERAL = re.compile(r"\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*'")

GRAMMAR_PATH = Path(__file__).parent / "grammar.lark"


class ExpressionSyntaxError(ValueError):
    """The residual expression is not well formed."""

    pass


# =============================================================================
# AST nodes
# =============================================================================


@dataclass(frozen=True)
class NumberLiteral:
    value: float


@dataclass(frozen=True)
class StringLiteral:
    value: str


@dataclass(frozen=True)
class BooleanLiteral:
    value: bool


@dataclass(frozen=True)
class UnaryOp:
    operator: str
    operand: Node


@dataclass(frozen=True)
class BinaryOp:
    operator: str
    left: Node
    right: Node


Node = NumberLiteral | StringLiteral | BooleanLiteral | UnaryOp | BinaryOp


# =============================================================================
# String literals
# =============================================================================


def unquote(literal: str) -> str:
    """Strip the quotes of a string literal and resolve backslash escapes."""
    return re.sub(r"\\(.)", r"\1", literal[1:-1])


def quote(text: str) -> str:
    """Render text as a double-quoted literal the parser reads back unchanged."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def is_string_literal(text: str) -> bool:
    """True when the whole text is exactly one quoted string literal."""
    return STRING_LITERAL.fullmatch(text.strip()) is not None


# =============================================================================
# Parser
# =============================================================================


def _binary(operator: str) -> Callable[[ExpressionBuilder, Node, Node], Node]:
    def build(self: ExpressionBuilder, left: Node, right: Node) -> Node:
        return BinaryOp(operator=operator, left=left, right=right)

    return build


def _unary(operator: str) -> Callable[[ExpressionBuilder, Node], Node]:
    def build(self: ExpressionBuilder, operand: Node) -> Node:
        return UnaryOp(operator=operator, operand=operand)

    return build


@v_args(inline=True)
class ExpressionBuilder(Transformer[Token, Node]):
    """Turns lark parse tree nodes into AST nodes."""

    or_ = _binary("||")
    and_ = _binary("&&")
    eq = _binary("==")
    ne = _binary("!=")
    lt = _binary("<")
    gt = _binary(">")
    le = _binary("<=")
    ge = _binary(">=")
    add = _binary("+")
    sub = _binary("-")
    mul = _binary("*")
    div = _binary("/")
    mod = _binary("%")

    neg = _unary("-")
    pos = _unary("+")
    not_ = _unary("!")

    def number(self, token: Token) -> Node:
        return NumberLiteral(float(token))

    def string(self, token: Token) -> Node:
        return StringLiteral(unquote(str(token)))

    def true(self, token: Token) -> Node:
        return BooleanLiteral(True)

    def false(self, token: Token) -> Node:
        return BooleanLiteral(False)


_parser = Lark(
    GRAMMAR_PATH.read_text(encoding="utf-8"),
    start="start",
    parser="lalr",
    transformer=ExpressionBuilder(),
)


def parse_expression(text: str) -> Node:
    """Parse a residual expression into an AST.

    Raises:
        ExpressionSyntaxError: naming the offending character or token
    """
    if not text or not text.strip():
        raise ExpressionSyntaxError("Empty expression")

    try:
        return _parser.parse(text)  # type: ignore[no-any-return]
    except UnexpectedCharacters as e:
        raise ExpressionSyntaxError(
            f"Unexpected character {e.char!r} at position {e.pos_in_stream}"
        ) from e
    except UnexpectedToken as e:
        if e.token.type == "$END":
            expected = ", ".join(sorted(e.expected))
            raise ExpressionSyntaxError(f"Expected one of {expected} before end of input") from e
        raise ExpressionSyntaxError(
            f"Unexpected {str(e.token)!r} at position {e.token.start_pos}"
        ) from e
    except UnexpectedInput as e:
        raise ExpressionSyntaxError(f"Invalid expression: {e}") from e
