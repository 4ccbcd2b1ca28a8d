"""
Global Configuration for Eisodos Package
========================================

This module provides package-wide configuration settings that users can modify
to control integration tolerance, validation behavior, and compilation output.

Examples
--------
View current configuration:

>>> import eisodos
>>> print(eisodos.config)

Modify settings:

>>> eisodos.config.INTEGRATION_TOL = 1e-12  # Looser Taylor tolerance
>>> eisodos.config.VERBOSE = False  # Silence compilation messages

Reset to defaults:

>>> eisodos.config.reset()

Temporarily modify settings:

>>> with eisodos.temp_config(STRICT_VALIDATION=False):
...     # Injection times outside the time span only warn in this block
...     sol = eisodos.solve(prob, [Input(x, [1.0, 2.0], [0.0, 99.0])])

Notes
-----
These settings affect package-wide behavior. Modifying them will impact
all subsequent operations until changed again or reset.
"""

from dataclasses import dataclass
from contextlib import contextmanager
from typing import Optional


@dataclass
class EisodosConfig:
    """
    Global configuration for Eisodos package.
    
    Attributes
    ----------
    INTEGRATION_TOL : float or None
        Tolerance passed to the Taylor integrator. None keeps heyoka's
        default (machine epsilon).
        Default: None
    DEFAULT_INPUT_VALUE : float
        Value assigned to input variables declared without a default.
        Default: 0.0
    STRICT_VALIDATION : bool
        If True, validation failures raise exceptions.
        If False, validation failures issue warnings.
        Default: True
    DEFAULT_COMPILE : bool
        If True, compiled systems JIT-compile their integrator immediately.
        If False, compilation is deferred until the first problem is built.
        Default: True
    VERBOSE : bool
        If True, print a message around integrator compilation.
        Default: True
    INSTANCE_WARNING_THRESHOLD : int
        Number of compiled integrators alive before a warning is issued
        Default: 10
    DEFAULT_SAMPLE_POINTS : int
        Default number of points for uniform solution sampling.
        Default: 1000
    """

    # Integration
    INTEGRATION_TOL: Optional[float] = None

    # Input handling
    DEFAULT_INPUT_VALUE: float = 0.0

    # Validation behavior
    STRICT_VALIDATION: bool = True

    # Compilation defaults
    DEFAULT_COMPILE: bool = True
    VERBOSE: bool = True
    INSTANCE_WARNING_THRESHOLD: int = 10

    # Sampling defaults
    DEFAULT_SAMPLE_POINTS: int = 1000

    def reset(self):
        """
        Reset all configuration values to package defaults.
        
        Examples
        --------
        >>> import eisodos
        >>> eisodos.config.VERBOSE = False  # Modify
        >>> eisodos.config.reset()  # Back to defaults
        >>> eisodos.config.VERBOSE
        True
        """
        defaults = EisodosConfig()
        for key in self.__dataclass_fields__:
            setattr(self, key, getattr(defaults, key))

    def __repr__(self):
        """Return formatted string showing all configuration values."""
        lines = ["EisodosConfig:"]
        lines.append("  Integration:")
        lines.append(f"    INTEGRATION_TOL = {self.INTEGRATION_TOL}")
        lines.append("  Inputs:")
        lines.append(f"    DEFAULT_INPUT_VALUE = {self.DEFAULT_INPUT_VALUE}")
        lines.append("  Behavior:")
        lines.append(f"    STRICT_VALIDATION = {self.STRICT_VALIDATION}")
        lines.append(f"    DEFAULT_COMPILE = {self.DEFAULT_COMPILE}")
        lines.append(f"    VERBOSE = {self.VERBOSE}")
        lines.append(f"    INSTANCE_WARNING_THRESHOLD = {self.INSTANCE_WARNING_THRESHOLD}")
        lines.append("  Sampling:")
        lines.append(f"    DEFAULT_SAMPLE_POINTS = {self.DEFAULT_SAMPLE_POINTS}")
        return "\n".join(lines)


# Global configuration instance
config = EisodosConfig()


@contextmanager
def temp_config(**kwargs):
    """
    Context manager for temporarily modifying configuration values.
    
    Configuration is automatically restored when the context exits,
    even if an exception occurs.
    
    Parameters
    ----------
    **kwargs
        Configuration attributes to temporarily modify.
    
    Examples
    --------
    >>> import eisodos
    >>> with eisodos.temp_config(VERBOSE=False, DEFAULT_INPUT_VALUE=1.0):
    ...     sys = eisodos.compile_system(model, inputs=[u])
    >>> # Original config restored here
    >>> eisodos.config.VERBOSE
    True
    
    Raises
    ------
    AttributeError
        If an invalid configuration attribute is specified.
    """
    old_values = {}
    for key, value in kwargs.items():
        if not hasattr(config, key):
            raise AttributeError(
                f"EisodosConfig has no attribute '{key}'. "
                f"Valid attributes: {list(config.__dataclass_fields__.keys())}"
            )
        old_values[key] = getattr(config, key)
        setattr(config, key, value)
    
    try:
        yield config
    finally:
        for key, value in old_values.items():
            setattr(config, key, value)
