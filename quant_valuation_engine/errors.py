from __future__ import annotations


class QuantEngineError(ValueError):
    """Base class for every error raised by the engine."""


class InvalidDomainInput(QuantEngineError):
    """Input outside the domain of the calculation (sign, length, range, enum)."""


class MathematicallyUndefined(QuantEngineError):
    """Inputs are valid individually but the quantity has no finite value."""


class NonConvergence(QuantEngineError):
    """An iterative solver stopped before reaching its tolerance."""
