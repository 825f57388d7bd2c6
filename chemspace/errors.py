"""Error kinds raised by the reduction, clustering and outlier stages.

Every error derives from :class:`ChemSpaceError` so callers can handle the
whole family at once, while the concrete subclasses keep the builtin base a
caller would naturally expect (``ValueError`` for bad inputs or parameters,
``ArithmeticError`` for numerical blow-ups).
"""

from __future__ import annotations

from typing import Any, Optional


class ChemSpaceError(Exception):
    """Base class for all pipeline errors."""


class InvalidInputError(ChemSpaceError, ValueError):
    """The feature matrix or point sequence is malformed."""


class ParameterOutOfRangeError(ChemSpaceError, ValueError):
    """A hyperparameter violates its documented bound.

    Attributes:
        parameter: Name of the offending parameter.
        value: The rejected value.
    """

    def __init__(self, parameter: str, value: Any, message: Optional[str] = None) -> None:
        self.parameter = parameter
        self.value = value
        super().__init__(message or f"Parameter '{parameter}' out of range: {value!r}")


class NumericInstabilityError(ChemSpaceError, ArithmeticError):
    """NaN or Inf appeared during iterative optimisation.

    Attributes:
        stage: Reducer stage name (``"tsne"`` or ``"umap"``).
        iteration: Iteration (t-SNE) or epoch (UMAP) at which it was detected.
    """

    def __init__(self, stage: str, iteration: int, detail: str = "") -> None:
        self.stage = stage
        self.iteration = iteration
        message = f"Non-finite values in {stage} optimisation at iteration {iteration}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ReductionCancelledError(ChemSpaceError):
    """Cooperative cancellation was observed at a step boundary.

    Carries no partial embedding.

    Attributes:
        stage: Reducer stage that was running.
        step: Number of steps completed before the cancellation was observed.
    """

    def __init__(self, stage: str, step: int) -> None:
        self.stage = stage
        self.step = step
        super().__init__(f"{stage} run cancelled after {step} step(s)")


__all__ = [
    "ChemSpaceError",
    "InvalidInputError",
    "NumericInstabilityError",
    "ParameterOutOfRangeError",
    "ReductionCancelledError",
]
