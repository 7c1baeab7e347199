"""Exception taxonomy shared by all engines.

Configuration problems raise; data-quality problems (a single record's formula
failure, broken references) are reported as values by the engines.
"""

from __future__ import annotations


class CatalogBuilderError(Exception):
    """Base class for all catalog builder errors."""

    pass


class ValidationError(CatalogBuilderError):
    """A formula, filter, sort rule, group level or reference definition is malformed.

    Raised once at definition time and propagated to the caller.
    """

    pass


class EvaluationError(CatalogBuilderError):
    """A formula failed to evaluate for a specific record."""

    def __init__(self, message: str, expression: str | None = None):
        self.expression = expression
        self.message = message
        if expression is not None:
            super().__init__(f"Formula error in '{expression}': {message}")
        else:
            super().__init__(f"Formula error: {message}")


class NotFoundError(CatalogBuilderError, KeyError):
    """A named preset or formula does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class PipelineConfigError(CatalogBuilderError):
    """Error loading a pipeline definition."""

    pass
