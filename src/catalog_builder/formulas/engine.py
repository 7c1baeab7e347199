"""Formula engine for calculated fields.

Evaluates a formula against one record in three passes over the text:

1. Field substitution: ``{field}`` becomes the record's value. Missing or
   null fields become ``0`` with a warning. Text that is not numeric becomes a
   quoted literal, numbers (and numeric text) stay unquoted.
2. Function resolution: ``ROUND(...)``, ``IF(...)`` and the other built-ins
   are located, their arguments split on top-level commas and evaluated
   recursively, and the call is replaced by its result.
3. Residual evaluation: what remains is parsed into an AST and interpreted.

Usage:
    engine = FormulaEngine()
    engine.add_formula("price_with_tax", "ROUND({price} * 1.2, 2)")
    enriched = engine.apply_formulas(records)
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from catalog_builder.core.coercion import format_number, is_numeric
from catalog_builder.core.config import Settings, get_settings
from catalog_builder.core.errors import EvaluationError, NotFoundError, ValidationError
from catalog_builder.core.logging import get_logger
from catalog_builder.core.models import Record, Result, Scalar, utc_now
from catalog_builder.formulas.functions import BUILTIN_FUNCTIONS
from catalog_builder.formulas.interpreter import evaluate_node, truthy
from catalog_builder.formulas.models import (
    Formula,
    FormulaBatchResult,
    FormulaExport,
    FormulaFailure,
)
from catalog_builder.formulas.syntax import (
    ExpressionSyntaxError,
    is_string_literal,
    parse_expression,
    quote,
    unquote,
)

logger = get_logger(__name__)

_FIELD_REFERENCE = re.compile(r"\{([^}]+)\}")
_ALLOWED_CHARACTER = re.compile(r"[\w\s+\-*/%(){}.,<>=!&|\"']")
_FUNCTION_CALL = re.compile(
    r"(?<![\w.])(" + "|".join(BUILTIN_FUNCTIONS) + r")\s*\(",
    re.IGNORECASE,
)


# =============================================================================
# Validation
# =============================================================================


def _check_balance(expression: str, opening: str, closing: str, label: str) -> None:
    depth = 0
    quote_char: str | None = None
    escaped = False
    for position, char in enumerate(expression):
        if quote_char:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote_char:
                quote_char = None
            continue
        if char in "\"'":
            quote_char = char
        elif char == opening:
            depth += 1
        elif char == closing:
            depth -= 1
            if depth < 0:
                raise ValidationError(
                    f"Unbalanced {label} in formula: unexpected '{closing}' at position {position}"
                )
    if quote_char:
        raise ValidationError(f"Unterminated string literal in formula: missing {quote_char}")
    if depth > 0:
        raise ValidationError(f"Unbalanced {label} in formula: {depth} unclosed '{opening}'")


def validate_formula(expression: str) -> bool:
    """Check braces, parentheses and the allowed character set.

    Raises:
        ValidationError: naming the imbalance or the illegal character
    """
    if not expression or not expression.strip():
        raise ValidationError("Formula expression is empty")

    _check_balance(expression, "{", "}", "braces")
    _check_balance(expression, "(", ")", "parentheses")

    for position, char in enumerate(expression):
        if not _ALLOWED_CHARACTER.fullmatch(char):
            raise ValidationError(
                f"Invalid character {char!r} at position {position} in formula"
            )

    logger.debug("formula_validated", expression=expression)
    return True


# =============================================================================
# Literal rendering
# =============================================================================


def _field_literal(field_name: str, value: Any, warnings: list[str]) -> str:
    if value is None:
        message = f"Field not found: {field_name}"
        warnings.append(message)
        logger.warning("formula_field_missing", field=field_name)
        return "0"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        if isinstance(value, float) and not math.isfinite(value):
            raise EvaluationError(f"Field {field_name} holds a non-finite number")
        return format_number(value) if isinstance(value, float) else str(value)
    text = str(value)
    if is_numeric(text):
        return text.strip()
    return quote(text)


def _result_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        number = float(value)
        if not math.isfinite(number):
            raise ArithmeticError(f"Function produced a non-finite number: {number}")
        return repr(number)
    return quote(str(value))


# =============================================================================
# Evaluation passes
# =============================================================================


def substitute_fields(expression: str, record: Record, warnings: list[str] | None = None) -> str:
    """Pass 1: replace every ``{field}`` with a literal for the record's value.

    Braces inside string literals are left as text.
    """
    collected = warnings if warnings is not None else []
    output: list[str] = []
    quote_char: str | None = None
    index = 0
    while index < len(expression):
        char = expression[index]
        if quote_char:
            output.append(char)
            if char == "\\" and index + 1 < len(expression):
                output.append(expression[index + 1])
                index += 2
                continue
            if char == quote_char:
                quote_char = None
            index += 1
            continue
        if char in "\"'":
            quote_char = char
            output.append(char)
            index += 1
            continue

        match = _FIELD_REFERENCE.match(expression, index)
        if match is None:
            output.append(char)
            index += 1
            continue

        field_name = match.group(1).strip()
        output.append(_field_literal(field_name, record.get(field_name), collected))
        index = match.end()

    return "".join(output)


def _find_closing_paren(text: str, open_index: int) -> int:
    depth = 0
    quote_char: str | None = None
    index = open_index
    while index < len(text):
        char = text[index]
        if quote_char:
            if char == "\\":
                index += 2
                continue
            if char == quote_char:
                quote_char = None
        elif char in "\"'":
            quote_char = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    raise ExpressionSyntaxError(f"Unclosed parenthesis at position {open_index}")


def split_arguments(args_text: str) -> list[str]:
    """Split an argument list on commas outside nested parentheses and strings."""
    args: list[str] = []
    current: list[str] = []
    depth = 0
    quote_char: str | None = None
    index = 0
    while index < len(args_text):
        char = args_text[index]
        if quote_char:
            current.append(char)
            if char == "\\" and index + 1 < len(args_text):
                current.append(args_text[index + 1])
                index += 2
                continue
            if char == quote_char:
                quote_char = None
        elif char in "\"'":
            quote_char = char
            current.append(char)
        elif char == "(":
            depth += 1
            current.append(char)
        elif char == ")":
            depth -= 1
            current.append(char)
        elif char == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        index += 1

    tail = "".join(current).strip()
    if tail:
        args.append(tail)
    return args


def resolve_functions(text: str) -> str:
    """Pass 2: replace each built-in function call with its evaluated result."""
    output: list[str] = []
    quote_char: str | None = None
    index = 0
    while index < len(text):
        char = text[index]
        if quote_char:
            output.append(char)
            if char == "\\" and index + 1 < len(text):
                output.append(text[index + 1])
                index += 2
                continue
            if char == quote_char:
                quote_char = None
            index += 1
            continue
        if char in "\"'":
            quote_char = char
            output.append(char)
            index += 1
            continue

        match = _FUNCTION_CALL.match(text, index)
        if match is None:
            output.append(char)
            index += 1
            continue

        name = match.group(1).upper()
        open_index = match.end() - 1
        close_index = _find_closing_paren(text, open_index)
        raw_arguments = split_arguments(text[open_index + 1 : close_index])
        if name == "IF":
            value = _evaluate_condition(raw_arguments)
        else:
            arguments = [_evaluate_argument(arg) for arg in raw_arguments]
            value = BUILTIN_FUNCTIONS[name](*arguments)
        output.append(_result_literal(value))
        index = close_index + 1

    return "".join(output)


def _evaluate_condition(raw_arguments: list[str]) -> Any:
    # Only the chosen branch is evaluated, so IF({b} > 0, {a} / {b}, 0) is safe
    if len(raw_arguments) not in (2, 3):
        raise TypeError(f"IF expects 2 or 3 arguments, got {len(raw_arguments)}")
    condition = _evaluate_argument(raw_arguments[0])
    if truthy(condition):
        return _evaluate_argument(raw_arguments[1])
    if len(raw_arguments) == 3:
        return _evaluate_argument(raw_arguments[2])
    return BUILTIN_FUNCTIONS["IF"](False, None)


def _evaluate_argument(argument: str) -> Any:
    if is_string_literal(argument):
        return unquote(argument.strip())
    if is_numeric(argument):
        return float(argument)
    return evaluate_residual(resolve_functions(argument))


def evaluate_residual(text: str) -> Any:
    """Pass 3: evaluate the remaining arithmetic/comparison/logical expression."""
    stripped = text.strip()
    if is_string_literal(stripped):
        return unquote(stripped)
    if is_numeric(stripped):
        return float(stripped)
    return evaluate_node(parse_expression(stripped))


# =============================================================================
# Engine
# =============================================================================


class FormulaEngine:
    """Registry and evaluator for calculated fields.

    Each instance holds its own formula list; there is no shared state between
    engines.
    """

    def __init__(
        self,
        formulas: Iterable[Formula] | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self._formulas: list[Formula] = list(formulas or [])

    @property
    def formulas(self) -> list[Formula]:
        """Registered formulas, in application order."""
        return list(self._formulas)

    def validate_formula(self, expression: str) -> bool:
        """Validate an expression; see `validate_formula`."""
        try:
            return validate_formula(expression)
        except ValidationError as e:
            logger.error("formula_validation_failed", expression=expression, error=str(e))
            raise

    def add_formula(self, name: str, expression: str) -> Formula:
        """Validate and register a formula.

        A formula with the same name is replaced in place.

        Raises:
            ValidationError: if the name is empty or the expression is invalid
        """
        if not name or not name.strip():
            raise ValidationError("Formula must have a name")
        self.validate_formula(expression)

        formula = Formula(name=name, expression=expression)
        for index, existing in enumerate(self._formulas):
            if existing.name == name:
                self._formulas[index] = formula
                break
        else:
            self._formulas.append(formula)

        logger.info("formula_added", name=name, expression=expression)
        return formula

    def remove_formula(self, name: str) -> bool:
        """Remove a formula by name; returns False when it was not registered."""
        for index, formula in enumerate(self._formulas):
            if formula.name == name:
                del self._formulas[index]
                logger.info("formula_removed", name=name)
                return True
        return False

    def get_formula(self, name: str) -> Formula:
        """Look up a registered formula.

        Raises:
            NotFoundError: if no formula has that name
        """
        for formula in self._formulas:
            if formula.name == name:
                return formula
        raise NotFoundError(f"Formula not found: {name}")

    def evaluate(self, expression: str, record: Record) -> Scalar:
        """Validate and evaluate an expression against one record.

        Raises:
            ValidationError: if the expression is malformed
            EvaluationError: if evaluation fails for this record
        """
        self.validate_formula(expression)
        return self._evaluate(expression, record, [])

    def _evaluate(self, expression: str, record: Record, warnings: list[str]) -> Scalar:
        try:
            substituted = substitute_fields(expression, record, warnings)
            resolved = resolve_functions(substituted)
            result = evaluate_residual(resolved)
        except EvaluationError:
            raise
        except (ExpressionSyntaxError, ArithmeticError, TypeError, ValueError) as e:
            logger.debug("formula_evaluation_failed", expression=expression, error=str(e))
            raise EvaluationError(str(e), expression=expression) from e

        logger.debug("formula_evaluated", expression=expression, result=result)
        return result

    def preview(self, expression: str, record: Record) -> Result[Scalar]:
        """Evaluate against a sample record without raising.

        Returns:
            Result with the value and any missing-field warnings, or the error
        """
        warnings: list[str] = []
        try:
            validate_formula(expression)
            value = self._evaluate(expression, record, warnings)
        except (ValidationError, EvaluationError) as e:
            return Result.fail(f"Preview failed: {e}", warnings=warnings)
        return Result.ok(value, warnings=warnings)

    def apply(
        self,
        records: Sequence[Record],
        formulas: Sequence[Formula] | None = None,
    ) -> FormulaBatchResult:
        """Apply formulas to a batch, reporting per-record failures.

        Every formula is validated once before any record is evaluated; a
        validation failure aborts the batch. A single record's evaluation
        failure sets that field to None and the batch continues.
        """
        to_apply = list(formulas) if formulas is not None else self._formulas
        for formula in to_apply:
            self.validate_formula(formula.expression)

        result = FormulaBatchResult()
        for index, record in enumerate(records):
            enriched = dict(record)
            for formula in to_apply:
                try:
                    enriched[formula.name] = self._evaluate(formula.expression, record, [])
                except EvaluationError as e:
                    logger.error(
                        "formula_apply_failed",
                        formula=formula.name,
                        record_index=index,
                        error=str(e),
                    )
                    enriched[formula.name] = None
                    result.failures.append(
                        FormulaFailure(record_index=index, formula_name=formula.name, error=str(e))
                    )
            result.records.append(enriched)

        logger.info(
            "formulas_applied",
            records=len(records),
            formulas=len(to_apply),
            failures=len(result.failures),
        )
        return result

    def apply_formulas(
        self,
        records: Sequence[Record],
        formulas: Sequence[Formula] | None = None,
    ) -> list[dict[str, Any]]:
        """Return shallow copies of the records with one new field per formula."""
        return self.apply(records, formulas).records

    def export_formulas(self) -> dict[str, Any]:
        """Export as ``{version, formulas: [{name, expression, createdAt}], exportedAt}``."""
        document = FormulaExport(
            version=self.settings.config_version,
            formulas=self._formulas,
            exported_at=utc_now(),
        )
        return document.to_json_dict()

    def import_formulas(self, data: Mapping[str, Any]) -> int:
        """Replace the registered formulas with an exported document's.

        Raises:
            ValidationError: if the document or any expression is invalid
        """
        try:
            document = FormulaExport.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid formula document: {e}") from e

        for formula in document.formulas:
            self.validate_formula(formula.expression)

        self._formulas = list(document.formulas)
        logger.info("formulas_imported", count=len(self._formulas))
        return len(self._formulas)


def evaluate(expression: str, record: Record) -> Scalar:
    """Evaluate an expression against one record with a fresh engine."""
    return FormulaEngine().evaluate(expression, record)


def apply_formulas(records: Sequence[Record], formulas: Sequence[Formula]) -> list[dict[str, Any]]:
    """Apply formulas to records with a fresh engine."""
    return FormulaEngine().apply_formulas(records, formulas)
