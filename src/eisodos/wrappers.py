'''Input-aware wrappers carrying the input bundle through each stage
InputSystem, InputProblem and InputIntegrator definitions'''

from typing import Optional, Sequence, Union
from . import inputs as _inputs
from .config import config
from .inputs import InputFunctions, Input, build_input_functions, solve_inputs
from .integrator import Integrator
from .problem import Problem
from .solution import Solution
from .system import System


class _Wrapper:
    """
    Facade forwarding attribute access to a wrapped object.

    Subclasses store the wrapped object in ``_target``. The input
    bundle is carried alongside and is not part of the forwarded surface.
    """
    _label = "Wrapper"

    def __getattr__(self, name):
        # Only called for attributes missing on the wrapper itself
        if name.startswith('__') or name in ('_target', '_input_functions'):
            raise AttributeError(name)
        return getattr(self._target, name)

    def __dir__(self):
        return sorted(set(super().__dir__()) | set(dir(self._target)))

    def __repr__(self):
        return f"{self._label}\n{self._target!r}"


class InputSystem(_Wrapper):
    """
    System paired with the input bundle built for it.

    Parameters
    ----------
    system : System or list of equations
        Wrapped system. Equations (with any further System arguments) build
        the System directly.
    input_functions : InputFunctions, optional
        Bundle from build_input_functions; None if no inputs were declared
    """
    _label = "InputSystem"

    def __init__(self, system, input_functions: Optional[InputFunctions] = None, **kwargs):
        if not isinstance(system, System):
            system = System(system, **kwargs)
        elif kwargs:
            raise TypeError("System arguments are only accepted with equations")
        self._target = system
        self._input_functions = input_functions

    @property
    def system(self) -> System:
        return self._target

    @property
    def input_functions(self) -> Optional[InputFunctions]:
        return self._input_functions


class InputProblem(_Wrapper):
    """Problem paired with the input bundle of its system."""
    _label = "InputProblem"

    def __init__(self, prob: Problem, input_functions: InputFunctions):
        self._target = prob
        self._input_functions = input_functions

    @property
    def prob(self) -> Problem:
        return self._target

    @property
    def input_functions(self) -> InputFunctions:
        return self._input_functions

    def remake(self, **kwargs) -> "InputProblem":
        """Independent copy of the problem, keeping the input bundle."""
        return InputProblem(self._target.remake(**kwargs), self._input_functions)


class InputIntegrator(_Wrapper):
    """Live Integrator paired with the input bundle of its problem."""
    _label = "InputIntegrator"

    def __init__(self, integrator: Integrator, input_functions: InputFunctions):
        self._target = integrator
        self._input_functions = input_functions

    @property
    def integrator(self) -> Integrator:
        return self._target

    @property
    def input_functions(self) -> InputFunctions:
        return self._input_functions

    def set_input(self, var, value):
        """Inject value into input var at the current time."""
        _inputs.set_input(self._input_functions, self._target, var, value)

    def finalize(self):
        """Record the current value of every input; call once at the end of a run."""
        _inputs.finalize(self._input_functions, self._target)


def get_input_functions(x) -> Optional[InputFunctions]:
    """Input bundle carried by a wrapper, or None for unwrapped objects."""
    if isinstance(x, _Wrapper):
        return x._input_functions
    return None


def _unwrap(x):
    return x._target if isinstance(x, _Wrapper) else x


# ========== STAGE FUNCTIONS ==========
def compile_system(sys, inputs: Sequence = (), **kwargs) -> InputSystem:
    """
    Compile a system, declaring the given variables as inputs.

    Parameters
    ----------
    sys : System, InputSystem or list of equations
        Model to compile
    inputs : sequence of heyoka variables
        Variables driven externally. Each must exist in the system.
    **kwargs
        System arguments when sys is a list of equations

    Returns
    -------
    InputSystem
        Compiled system and its input bundle (None if inputs is empty)
    """
    if isinstance(sys, InputSystem):
        sys = sys.system
    elif not isinstance(sys, System):
        sys = System(sys, **kwargs)
    inputs = list(inputs)
    sys = sys.structural_compile(inputs=inputs)
    input_functions = None
    if inputs:
        sys, input_functions = build_input_functions(sys, inputs)
    if config.DEFAULT_COMPILE:
        sys.compile()
    return InputSystem(sys, input_functions)


def ODEProblem(sys, u0, tspan, p=None) -> Union[InputProblem, Problem]:
    """
    Build a numeric problem.

    Returns an InputProblem if sys carries an input bundle, otherwise a
    plain Problem.
    """
    input_functions = get_input_functions(sys)
    prob = Problem(_unwrap(sys), u0, tspan, p)
    if input_functions is not None:
        return InputProblem(prob, input_functions)
    return prob


def init(prob, **kwargs) -> Union[InputIntegrator, Integrator]:
    """
    Start a live run.

    Returns an InputIntegrator for an InputProblem, otherwise a plain
    Integrator. Keyword arguments go to Integrator.
    """
    integrator = Integrator(_unwrap(prob), **kwargs)
    input_functions = get_input_functions(prob)
    if input_functions is not None:
        return InputIntegrator(integrator, input_functions)
    return integrator


def solve(obj, inputs: Optional[Sequence[Input]] = None, **kwargs) -> Solution:
    """
    Solve a problem or finish a live run.

    Parameters
    ----------
    obj : InputProblem, Problem, InputIntegrator or Integrator
        Problems are integrated from the start; integrators are advanced to
        the end of their time span
    inputs : sequence of Input, optional
        Records injected by the determinate batch driver. Requires an
        InputProblem.
    **kwargs
        Passed to Integrator

    Returns
    -------
    Solution
    """
    if isinstance(obj, (InputIntegrator, Integrator)):
        if inputs is not None or kwargs:
            raise TypeError("A live integrator is solved without further arguments")
        return _unwrap(obj).solve()

    if inputs is not None:
        input_functions = get_input_functions(obj)
        if input_functions is None:
            raise ValueError(
                "Problem has no inputs. Compile the system with "
                "compile_system(sys, inputs=[...]) to inject input data."
            )
        return solve_inputs(_unwrap(obj), input_functions, inputs, **kwargs)

    return Integrator(_unwrap(obj), **kwargs).solve()


def step(integrator, dt: Optional[float] = None, stop_at_tdt: bool = False):
    """Advance a live run; see Integrator.step."""
    _unwrap(integrator).step(dt, stop_at_tdt)


def set_input(target, *args):
    """
    Inject a value into a live run.

    Called as ``set_input(input_integrator, var, value)`` or
    ``set_input(input_functions, integrator, var, value)``.
    """
    if isinstance(target, InputFunctions):
        integrator, var, value = args
        return _inputs.set_input(target, _unwrap(integrator), var, value)
    input_functions = get_input_functions(target)
    if input_functions is None:
        raise TypeError(
            f"set_input needs an InputIntegrator or an InputFunctions bundle, "
            f"got {type(target).__name__}"
        )
    var, value = args
    return _inputs.set_input(input_functions, _unwrap(target), var, value)


def finalize(target, *args):
    """
    Flush every input history at the end of a live run.

    Called as ``finalize(input_integrator)`` or
    ``finalize(input_functions, integrator)``.
    """
    if isinstance(target, InputFunctions):
        integrator, = args
        return _inputs.finalize(target, _unwrap(integrator))
    input_functions = get_input_functions(target)
    if input_functions is None:
        raise TypeError(
            f"finalize needs an InputIntegrator or an InputFunctions bundle, "
            f"got {type(target).__name__}"
        )
    return _inputs.finalize(input_functions, _unwrap(target))
