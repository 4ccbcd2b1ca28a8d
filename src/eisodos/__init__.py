"""
Eisodos: Piecewise-Constant Inputs for Compiled ODE Systems

A Python package for injecting externally supplied input values into
heyoka Taylor integrations, either from precomputed time series or one
value at a time while the run is stepping, without recompiling the
system for each dataset.
"""

# Core classes
from .system import System, DiscreteEvent, ParameterLayout, ParameterSetter
from .problem import Problem
from .integrator import Integrator, DiscreteCallback
from .solution import Solution, DiscreteHistory
from .inputs import InputFunctions, Input, build_input_functions

# Input-aware stages
from .wrappers import (
    InputSystem,
    InputProblem,
    InputIntegrator,
    compile_system,
    ODEProblem,
    init,
    solve,
    step,
    set_input,
    finalize,
    get_input_functions,
)

# Configuration and errors
from .config import config, temp_config
from .errors import EisodosError, UnregisteredInputError, IntegrationError

# Package metadata
__version__ = "0.1.0"

# Define what gets imported with "from eisodos import *"
__all__ = [
    # Classes
    "System",
    "DiscreteEvent",
    "ParameterLayout",
    "ParameterSetter",
    "Problem",
    "Integrator",
    "DiscreteCallback",
    "Solution",
    "DiscreteHistory",
    "InputFunctions",
    "Input",
    "InputSystem",
    "InputProblem",
    "InputIntegrator",
    # Functions
    "build_input_functions",
    "compile_system",
    "ODEProblem",
    "init",
    "solve",
    "step",
    "set_input",
    "finalize",
    "get_input_functions",
    # Configuration
    "config",
    "temp_config",
    # Errors
    "EisodosError",
    "UnregisteredInputError",
    "IntegrationError",
]
