'''Externally driven inputs for compiled systems
Input function bundle, input records and the determinate batch driver'''

import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple
from .config import config
from .errors import UnregisteredInputError
from .integrator import DiscreteCallback, Integrator
from .problem import Problem
from .solution import Solution
from .system import System, DiscreteEvent, ParameterSetter
from .utils import var_name, find_var, validation_error


@dataclass(frozen=True)
class InputFunctions:
    """
    Immutable bundle of update functions for the inputs of a System.

    Attributes
    ----------
    events : tuple of DiscreteEvent
        Placeholder events (scheduled at t = +inf), one per input
    vars : tuple of heyoka variables
        Input variables
    setters : tuple of ParameterSetter
        Setters bound to the parameter slot of each input

    Index ``i`` refers to the same input in all three tuples. The bundle
    holds no per-run state and can be shared by any number of runs.

    Calling the bundle is shorthand for the two primitives:
    ``funs(integrator, var, value)`` is ``set_input`` and
    ``funs(integrator)`` is ``finalize``.
    """
    events: Tuple[DiscreteEvent, ...]
    vars: Tuple
    setters: Tuple[ParameterSetter, ...]

    def __post_init__(self):
        object.__setattr__(self, 'events', tuple(self.events))
        object.__setattr__(self, 'vars', tuple(self.vars))
        object.__setattr__(self, 'setters', tuple(self.setters))
        if not (len(self.events) == len(self.vars) == len(self.setters)):
            raise ValueError(
                f"events, vars and setters must have equal lengths, got "
                f"{len(self.events)}, {len(self.vars)}, {len(self.setters)}"
            )

    def index(self, var) -> int:
        """Position of var among the inputs."""
        i = find_var(var, self.vars)
        if i is None:
            raise UnregisteredInputError(var, self.vars)
        return i

    def __contains__(self, var) -> bool:
        return find_var(var, self.vars) is not None

    def __len__(self) -> int:
        return len(self.vars)

    def __call__(self, integrator, *args):
        if not args:
            return finalize(self, integrator)
        var, value = args
        return set_input(self, integrator, var, value)

    def __repr__(self):
        return f"InputFunctions(vars={[str(v) for v in self.vars]})"


@dataclass(frozen=True, eq=False)
class Input:
    """
    Time series for one input variable, for determinate runs.

    Parameters
    ----------
    var : heyoka variable
        Input variable the values are injected into
    data : array_like
        Values, one per injection time
    time : array_like
        Injection times, non-decreasing, same length as data

    Both arrays are stored as read-only float arrays. At a repeated time
    the last value wins.
    """
    var: object
    data: np.ndarray
    time: np.ndarray

    def __post_init__(self):
        var_name(self.var)
        data = np.array(self.data, dtype=float).ravel()
        time = np.array(self.time, dtype=float).ravel()
        if len(data) != len(time):
            raise ValueError(
                f"data and time must have equal lengths, got {len(data)} and {len(time)}"
            )
        if len(data) == 0:
            raise ValueError(f"Input for {self.var} has no values")
        if not (np.all(np.isfinite(data)) and np.all(np.isfinite(time))):
            raise ValueError(f"Input for {self.var} contains NaN or Inf values")
        if np.any(np.diff(time) < 0):
            raise ValueError(f"Input times for {self.var} must be non-decreasing")
        data.flags.writeable = False
        time.flags.writeable = False
        object.__setattr__(self, 'data', data)
        object.__setattr__(self, 'time', time)

    def __len__(self):
        return len(self.data)

    def __repr__(self):
        return (f"Input(var={self.var}, n={len(self.data)}, "
                f"t=[{self.time[0]}, {self.time[-1]}])")


# ========== INPUT FUNCTION COMPILER ==========
def build_input_functions(sys: System, inputs) -> Tuple[System, Optional[InputFunctions]]:
    """
    Register inputs on a compiled system.

    For each input a placeholder event (scheduled at t = +inf) is appended
    to the system's events and a default of ``config.DEFAULT_INPUT_VALUE``
    is added if the input has none. The parameter layout is then rebuilt
    once and one setter is bound per input.

    Parameters
    ----------
    sys : System
        System to extend; it is not modified
    inputs : sequence of heyoka variables
        Input variables. Variables that are not parameters yet are
        reclassified.

    Returns
    -------
    (System, InputFunctions or None)
        The new system and the bundle, or ``(sys, None)`` if inputs is empty

    Raises
    ------
    ValueError
        If an input does not exist in the system
    """
    inputs = list(inputs)
    if not inputs:
        return sys, None

    # Inputs may arrive before being turned into parameters
    for x in inputs:
        if not sys.is_parameter(x):
            sys = sys.toparam(x)
    vars = []
    for x in inputs:
        if find_var(x, vars) is None:
            vars.append(x)

    events = list(sys.discrete_events)
    defaults = sys.defaults
    for x in vars:
        events.append(DiscreteEvent(float('inf'), (x,), name=f"input_{var_name(x)}"))
        # ensure that problem construction does not fail on a missing value
        defaults.setdefault(var_name(x), float(config.DEFAULT_INPUT_VALUE))

    sys = sys.replace(discrete_events=events, defaults=defaults).rebuild_layout()
    input_events = sys.discrete_events[len(events) - len(vars):]
    setters = [sys.setsym(x) for x in vars]

    return sys, InputFunctions(input_events, vars, setters)


# ========== LIVE PRIMITIVES ==========
def set_input(input_funs: InputFunctions, integrator, var, value):
    """
    Inject a new value for input var at the integrator's current time.

    Writes the value into the live parameter vector, records the input's
    event as fired now and marks the integrator as modified. Does not
    advance time.

    Raises
    ------
    UnregisteredInputError
        If var is not one of the bundle's inputs
    ValueError
        If value is not finite
    """
    i = input_funs.index(var)
    value = float(value)
    if not np.isfinite(value):
        raise ValueError(f"Input value for {var} must be finite, got {value}")

    input_funs.setters[i](integrator, value)
    integrator.save_discretes(input_funs.events[i])
    integrator.u_modified(True)


def finalize(input_funs: InputFunctions, integrator):
    """
    Record the current value of every input at the integrator's time.

    Must be called once after the last step of an indeterminate run, before
    the solution is queried for input values; otherwise the histories end
    at the last explicit injection. Repeated calls change nothing.
    """
    for event in input_funs.events:
        integrator.save_discretes(event)


# ========== DETERMINATE BATCH DRIVER ==========
class _Injection:
    """Callback injecting one input record's values at their exact times."""
    def __init__(self, input_funs: InputFunctions, var, schedule):
        self._input_funs = input_funs
        self._var = var
        self._schedule = schedule  # time -> value

    def condition(self, u, t, integrator) -> bool:
        return t in self._schedule

    def affect(self, integrator):
        set_input(self._input_funs, integrator, self._var, self._schedule[integrator.t])


class _Finalizer:
    """Callback flushing every input history at the end of the run."""
    def __init__(self, input_funs: InputFunctions, t_end: float):
        self._input_funs = input_funs
        self._t_end = t_end

    def condition(self, u, t, integrator) -> bool:
        return t == self._t_end

    def affect(self, integrator):
        finalize(self._input_funs, integrator)


def solve_inputs(
    problem: Problem,
    input_funs: InputFunctions,
    inputs: Sequence[Input],
    tstops: Sequence[float] = (),
    callbacks: Sequence[DiscreteCallback] = (),
    **kwargs
) -> Solution:
    """
    Integrate problem while injecting every value of every input record.

    Every injection time becomes a forced stop with a callback calling
    ``set_input``. Values at the start of the run are written into the
    initial parameters of a copy of problem instead, and a final callback
    calls ``finalize`` at the end time.

    Parameters
    ----------
    problem : Problem
        Problem to integrate; it is not modified
    input_funs : InputFunctions
        Bundle of the problem's system
    inputs : sequence of Input
        Records to inject, possibly several per variable
    tstops, callbacks : optional
        Extra stop times and callbacks, run before the injection callbacks
    **kwargs
        Passed to Integrator

    Returns
    -------
    Solution
    """
    if isinstance(inputs, Input):
        inputs = [inputs]
    t_start, t_end = problem.tspan

    stops = set()
    injections = []
    initial = {}
    for record in inputs:
        if not isinstance(record, Input):
            raise TypeError(f"Expected Input records, got {type(record).__name__}")
        i = input_funs.index(record.var)

        schedule = {}
        for t, value in zip(record.time.tolist(), record.data.tolist()):
            if t < t_start or t > t_end:
                validation_error(
                    f"Injection time {t} for {record.var} outside time span "
                    f"[{t_start}, {t_end}]"
                )
                continue
            # Callbacks cannot fire at the initial instant
            if t == t_start:
                initial[var_name(input_funs.vars[i])] = value
            else:
                schedule[t] = value
        if schedule:
            stops.update(schedule)
            injection = _Injection(input_funs, input_funs.vars[i], schedule)
            injections.append(DiscreteCallback(injection.condition, injection.affect))

    if initial:
        problem = problem.remake(p=initial)

    finalizer = _Finalizer(input_funs, t_end)
    all_callbacks = (tuple(callbacks) + tuple(injections)
                     + (DiscreteCallback(finalizer.condition, finalizer.affect),))
    all_stops = sorted(stops.union(float(t) for t in tstops))

    integrator = Integrator(problem, tstops=all_stops, callbacks=all_callbacks, **kwargs)
    return integrator.solve()
