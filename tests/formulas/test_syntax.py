"""Tests for the residual expression parser, interpreter and built-in functions."""

from __future__ import annotations

import pytest

from catalog_builder.formulas.engine import resolve_functions, split_arguments, substitute_fields
from catalog_builder.formulas.functions import BUILTIN_FUNCTIONS, round_half_away
from catalog_builder.formulas.interpreter import evaluate_node
from catalog_builder.formulas.syntax import (
    BinaryOp,
    BooleanLiteral,
    ExpressionSyntaxError,
    NumberLiteral,
    StringLiteral,
    UnaryOp,
    parse_expression,
    quote,
    unquote,
)


class TestParser:
    """Tests for parse_expression."""

    def test_literals(self) -> None:
        node = parse_expression('1.5e1 >= "a b" && TRUE')

        assert node == BinaryOp(
            operator="&&",
            left=BinaryOp(operator=">=", left=NumberLiteral(15.0), right=StringLiteral("a b")),
            right=BooleanLiteral(True),
        )

    def test_unary_binds_tighter_than_modulo(self) -> None:
        assert parse_expression("-7 % 3") == BinaryOp(
            operator="%",
            left=UnaryOp(operator="-", operand=NumberLiteral(7.0)),
            right=NumberLiteral(3.0),
        )

    def test_left_associative(self) -> None:
        assert parse_expression("8 - 2 - 1") == BinaryOp(
            operator="-",
            left=BinaryOp(operator="-", left=NumberLiteral(8.0), right=NumberLiteral(2.0)),
            right=NumberLiteral(1.0),
        )

    def test_unexpected_character(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Unexpected character '#'"):
            parse_expression("1 # 2")

    def test_multiplication_binds_tighter(self) -> None:
        node = parse_expression("1 + 2 * 3")

        assert node == BinaryOp(
            operator="+",
            left=NumberLiteral(1.0),
            right=BinaryOp(operator="*", left=NumberLiteral(2.0), right=NumberLiteral(3.0)),
        )

    def test_string_literal(self) -> None:
        assert parse_expression('"say \\"hi\\""') == StringLiteral('say "hi"')

    def test_trailing_tokens_rejected(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Unexpected"):
            parse_expression("1 2")

    def test_missing_closing_paren(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Expected"):
            parse_expression("(1 + 2")

    def test_empty(self) -> None:
        with pytest.raises(ExpressionSyntaxError, match="Empty"):
            parse_expression("")


class TestInterpreter:
    """Tests for evaluate_node."""

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("1 + 2 * 3", 7.0),
            ("8 / 2 / 2", 2.0),
            ("-7 % 3", -1.0),
            ("1 < 2 == true", True),
            ('"abc" == "abc"', True),
            ('"2" == 2', True),
            ('"b" > "a"', True),
            ("0 || 5 > 3", True),
            ("!0", True),
            ('"" && true', False),
        ],
    )
    def test_evaluates(self, expression: str, expected: object) -> None:
        assert evaluate_node(parse_expression(expression)) == expected

    def test_text_and_number_compare_false(self) -> None:
        assert evaluate_node(parse_expression('"abc" < 5')) is False

    def test_modulo_by_zero(self) -> None:
        with pytest.raises(ZeroDivisionError):
            evaluate_node(parse_expression("5 % 0"))

    def test_unary_minus_on_text(self) -> None:
        with pytest.raises(TypeError):
            evaluate_node(parse_expression('-"abc"'))


class TestQuoting:
    """Tests for quote/unquote."""

    def test_round_trip_with_quotes_and_backslashes(self) -> None:
        text = 'He said "5\\" wide"'
        assert unquote(quote(text)) == text


class TestPasses:
    """Tests for the substitution and function resolution passes."""

    def test_substitute_fields(self) -> None:
        warnings: list[str] = []
        text = substitute_fields("{a} + {b} + {c}", {"a": 2, "b": "x"}, warnings)

        assert text == '2 + "x" + 0'
        assert warnings == ["Field not found: c"]

    def test_split_arguments_respects_nesting_and_strings(self) -> None:
        assert split_arguments('MAX(1, 2), "a,b", 3') == ["MAX(1, 2)", '"a,b"', "3"]

    def test_resolve_leaves_strings_alone(self) -> None:
        assert resolve_functions('"ROUND(1)"') == '"ROUND(1)"'

    def test_resolve_whole_words_only(self) -> None:
        """FLOOR inside an identifier like MYFLOOR is not a call."""
        with pytest.raises(ExpressionSyntaxError):
            parse_expression(resolve_functions("MYFLOOR(1)"))


class TestFunctions:
    """Tests for the built-in functions."""

    def test_round_half_away_from_zero(self) -> None:
        assert round_half_away(2.5) == 3
        assert round_half_away(-2.5) == -3
        assert round_half_away(1.234, 2) == 1.23

    def test_numeric_functions(self) -> None:
        assert BUILTIN_FUNCTIONS["CEIL"](1.2) == 2
        assert BUILTIN_FUNCTIONS["FLOOR"](-1.2) == -2
        assert BUILTIN_FUNCTIONS["ABS"](-3.0) == 3
        assert BUILTIN_FUNCTIONS["MIN"](4.0, 2.0, 9.0) == 2
        assert BUILTIN_FUNCTIONS["MAX"](4.0, 2.0, 9.0) == 9

    def test_text_functions(self) -> None:
        assert BUILTIN_FUNCTIONS["CONCAT"]("a", 1.0, True) == "a1true"
        assert BUILTIN_FUNCTIONS["TRIM"]("  x ") == "x"
        assert BUILTIN_FUNCTIONS["LOWER"]("AbC") == "abc"
        assert BUILTIN_FUNCTIONS["LEN"]("abcd") == 4

    def test_if_default_false_value(self) -> None:
        assert BUILTIN_FUNCTIONS["IF"](False, "yes") == ""
