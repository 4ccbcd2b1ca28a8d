"""
Utility functions and classes for the Eisodos package.
"""

from time import perf_counter
import warnings
from typing import Type
import heyoka as hy
from .config import config

class Timer:
    """
    Context manager for timing code execution.
    
    Examples
    --------
    >>> from eisodos.utils import Timer
    >>> with Timer("Batch solve"):
    ...     sol = eisodos.solve(prob, [Input(u, data, times)])
    Batch solve: 0.012345 s
    
    >>> with Timer(verbose=False) as t:
    ...     # ... code ...
    >>> print(f"Took {t.elapsed:.6f} seconds")
    """
    def __init__(self, name="Operation", verbose=True):
        """
        Parameters
        ----------
        name : str, optional
            Name to display when timing completes (default: "Operation")
        verbose : bool, optional
            Whether to print timing automatically (default: True)
        """
        self.name = name
        self.verbose = verbose
        self.elapsed = None
    
    def __enter__(self):
        self.start = perf_counter()
        return self
    
    def __exit__(self, *args):
        self.end = perf_counter()
        self.elapsed = self.end - self.start
        if self.verbose:
            print(f"{self.name}: {self.elapsed:.6f} s")
    
def validation_error(message: str, error_class: Type[Exception] = ValueError):
    """
    Raise error or warn based on config.STRICT_VALIDATION.
    
    This function provides consistent validation behavior across the package.
    When STRICT_VALIDATION is True (default), raises the specified exception.
    When False, issues a UserWarning instead.
    
    Parameters
    ----------
    message : str
        Validation error message
    error_class : Type[Exception], optional
        Exception class to raise if STRICT_VALIDATION is True.
        Default: ValueError
    
    Raises
    ------
    Exception (of type error_class)
        If config.STRICT_VALIDATION is True
    
    Warns
    -----
    UserWarning
        If config.STRICT_VALIDATION is False
    """
    if config.STRICT_VALIDATION:
        raise error_class(message)
    else:
        warnings.warn(message, UserWarning, stacklevel=2)

def var_name(var) -> str:
    """
    Name of a symbolic heyoka variable.

    Raises
    ------
    TypeError
        If var is not a heyoka expression
    ValueError
        If var is an expression but not a single variable
    """
    if not isinstance(var, hy.expression):
        raise TypeError(f"Expected a heyoka variable, got {type(var).__name__}")
    names = hy.get_variables(var)
    if len(names) != 1 or var != hy.make_vars(names[0]):
        raise ValueError(f"Expected a single variable, got expression {var}")
    return names[0]

def find_var(var, candidates) -> int | None:
    """Index of the first candidate symbolically equal to var, or None."""
    for i, candidate in enumerate(candidates):
        if candidate == var:
            return i
    return None
