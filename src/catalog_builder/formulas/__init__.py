"""Expression evaluator for calculated fields.

This module provides:
- Formula models and the exported document shape
- A recursive-descent parser and AST interpreter for residual arithmetic
- Built-in functions (ROUND, IF, CONCAT, ...)
- FormulaEngine for validating, evaluating and applying formulas to records
"""

from catalog_builder.formulas.engine import (
    FormulaEngine,
    apply_formulas,
    evaluate,
    validate_formula,
)
from catalog_builder.formulas.functions import BUILTIN_FUNCTIONS
from catalog_builder.formulas.models import (
    FORMULA_TEMPLATES,
    Formula,
    FormulaBatchResult,
    FormulaExport,
    FormulaFailure,
)

__all__ = [
    # Models
    "Formula",
    "FormulaExport",
    "FormulaFailure",
    "FormulaBatchResult",
    "FORMULA_TEMPLATES",
    "BUILTIN_FUNCTIONS",
    # Engine
    "FormulaEngine",
    "apply_formulas",
    "evaluate",
    "validate_formula",
]
