"""
Exception types raised by the Eisodos package.

Structural problems with a model (unknown input variables, undetermined
unknowns, malformed equations) are reported with the builtin ``ValueError``
and ``TypeError``. The classes below cover failures that callers may want to
catch specifically.
"""

__all__ = [
    "EisodosError",
    "UnregisteredInputError",
    "IntegrationError",
]


class EisodosError(Exception):
    """Base error for the eisodos package."""


class UnregisteredInputError(EisodosError, KeyError):
    """Raised when a value is injected into a variable that was never declared as an input."""
    def __init__(self, var, registered=()):
        self.var = var
        self.registered = tuple(registered)
        msg = f"Variable {var} is not a registered input."
        if self.registered:
            msg += f" Registered inputs: {[str(v) for v in self.registered]}"
        else:
            msg += " The system was compiled without inputs."
        super().__init__(msg)

    def __str__(self):
        # KeyError quotes its argument; keep the message readable
        return self.args[0]


class IntegrationError(EisodosError, RuntimeError):
    """Raised when the Taylor integrator reports a failed step."""
    def __init__(self, message: str, time: float = float("nan"), state=None):
        self.time = time
        self.state = state
        super().__init__(message)
