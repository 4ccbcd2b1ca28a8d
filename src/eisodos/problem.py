'''Numeric ODE problems built from compiled systems
Problem class definition'''

import numpy as np
from typing import Optional, Dict, Tuple, Union
from .system import System
from .utils import var_name


def _key_name(key) -> str:
    return key if isinstance(key, str) else var_name(key)


def _iter_map(mapping):
    """Iterate (name, value) pairs of a dict or a sequence of pairs."""
    if mapping is None:
        return
    items = mapping.items() if hasattr(mapping, 'items') else mapping
    for key, value in items:
        yield _key_name(key), value


class _ParameterView:
    """
    Symbolic get/set access to a problem's parameter vector.

    ``prob.ps[k]`` reads the value of parameter ``k`` and ``prob.ps[k] = v``
    writes it, where ``k`` is a heyoka variable or its name.
    """
    def __init__(self, problem: "Problem"):
        self._problem = problem

    def __getitem__(self, key) -> float:
        slot = self._problem.system.parameter_index(key)
        return float(self._problem.p[slot])

    def __setitem__(self, key, value):
        slot = self._problem.system.parameter_index(key)
        value = float(value)
        if not np.isfinite(value):
            raise ValueError(f"Parameter value must be finite, got {value}")
        self._problem.p[slot] = value

    def __len__(self):
        return len(self._problem.p)

    def to_dict(self) -> Dict[str, float]:
        names = self._problem.system.parameter_layout.names
        return {name: float(v) for name, v in zip(names, self._problem.p)}

    def __repr__(self):
        return f"ParameterView({self.to_dict()})"


class Problem:
    """
    Numeric initial value problem for a compiled System.

    Parameters
    ----------
    system : System
        Structurally compiled system
    u0 : dict or sequence of pairs or array_like
        Initial state. Mappings are keyed by state variable (or name);
        states missing from the mapping use the system defaults. An array
        gives all states in system order.
    tspan : (float, float)
        Start and end time, t_start <= t_end
    p : dict or sequence of pairs or array_like, optional
        Parameter values overriding the system defaults

    Notes
    -----
    The problem owns its initial state and parameter vector. Concurrent runs
    must each use their own problem; ``remake()`` gives an independent copy
    without recompiling the system.
    """
    # ========== CONSTRUCTION ==========
    def __init__(self, system: System, u0, tspan, p=None):
        if not isinstance(system, System):
            raise TypeError(f"system must be a System, got {type(system).__name__}")
        if not system.is_structurally_compiled:
            raise ValueError(
                "System must be compiled before building a problem. "
                "Use eisodos.compile_system(sys, inputs=...)."
            )
        self._system = system
        self._tspan = self._parse_tspan(tspan)
        self._u0 = self._build_state(u0)
        self._p = self._build_params(p)

        # Ensure the integrator template exists before the first run
        system.compile()

    @staticmethod
    def _parse_tspan(tspan) -> Tuple[float, float]:
        try:
            t_start, t_end = tspan
        except (TypeError, ValueError):
            raise ValueError(f"tspan must be a (t_start, t_end) pair, got {tspan!r}") from None
        # cast explicitly to floats (required by heyoka)
        t_start, t_end = float(t_start), float(t_end)
        if not (np.isfinite(t_start) and np.isfinite(t_end)):
            raise ValueError(f"tspan must be finite, got {(t_start, t_end)}")
        if t_end < t_start:
            raise ValueError(f"t_end ({t_end}) must be >= t_start ({t_start})")
        return (t_start, t_end)

    def _build_state(self, u0) -> np.ndarray:
        names = self._system.state_names
        if u0 is not None and not hasattr(u0, 'items') and _is_numeric(u0):
            state = np.asarray(u0, dtype=float).ravel()
            if len(state) != len(names):
                raise ValueError(f"Expected {len(names)} initial states, got {len(state)}")
        else:
            values = {n: v for n, v in self._system.defaults.items() if n in names}
            for name, value in _iter_map(u0):
                if name not in names:
                    raise ValueError(f"'{name}' is not a state of this system")
                values[name] = float(value)
            missing = [n for n in names if n not in values]
            if missing:
                raise ValueError(f"Missing initial values for states: {missing}")
            state = np.array([values[n] for n in names], dtype=float)
        if not np.all(np.isfinite(state)):
            raise ValueError(f"Initial state contains NaN or Inf values: {state}")
        return state

    def _build_params(self, p) -> np.ndarray:
        names = self._system.parameter_layout.names
        if p is not None and not hasattr(p, 'items') and _is_numeric(p):
            params = np.asarray(p, dtype=float).ravel()
            if len(params) != len(names):
                raise ValueError(f"Expected {len(names)} parameters, got {len(params)}")
        else:
            values = {n: v for n, v in self._system.defaults.items() if n in names}
            for name, value in _iter_map(p):
                if name not in names:
                    raise ValueError(f"'{name}' is not a parameter of this system")
                values[name] = float(value)
            missing = [n for n in names if n not in values]
            if missing:
                raise ValueError(f"Missing values for parameters: {missing}")
            params = np.array([values[n] for n in names], dtype=float)
        if not np.all(np.isfinite(params)):
            raise ValueError(f"Parameters contain NaN or Inf values: {params}")
        return params

    # ========== REMAKE ==========
    def remake(self, u0=None, tspan=None, p=None) -> "Problem":
        """
        Create an independent problem sharing this problem's compiled system.

        Parameters
        ----------
        u0, p : dict, sequence of pairs or array_like, optional
            Values overriding the current ones. Mappings may be partial.
        tspan : (float, float), optional
            New time span

        Returns
        -------
        Problem
            New problem; no recompilation takes place
        """
        new = Problem.__new__(Problem)
        new._system = self._system
        new._tspan = self._tspan if tspan is None else self._parse_tspan(tspan)
        new._u0 = self._u0.copy()
        new._p = self._p.copy()
        if u0 is not None:
            new._u0 = new._merge(new._u0, u0, self._system.state_names, 'state')
        if p is not None:
            new._p = new._merge(new._p, p, self._system.parameter_layout.names, 'parameter')
        return new

    @staticmethod
    def _merge(current, values, names, kind):
        if not hasattr(values, 'items') and _is_numeric(values):
            merged = np.asarray(values, dtype=float).ravel().copy()
            if len(merged) != len(current):
                raise ValueError(f"Expected {len(current)} {kind} values, got {len(merged)}")
        else:
            merged = current.copy()
            for name, value in _iter_map(values):
                if name not in names:
                    raise ValueError(f"'{name}' is not a {kind} of this system")
                merged[list(names).index(name)] = float(value)
        if not np.all(np.isfinite(merged)):
            raise ValueError(f"{kind.capitalize()} values contain NaN or Inf: {merged}")
        return merged

    # ========== PROPERTY ACCESS ==========
    @property
    def system(self) -> System:
        return self._system

    @property
    def tspan(self) -> Tuple[float, float]:
        return self._tspan

    @property
    def u0(self) -> np.ndarray:
        return self._u0

    @property
    def p(self) -> np.ndarray:
        return self._p

    @property
    def ps(self) -> _ParameterView:
        """Symbolic access to parameter values."""
        return _ParameterView(self)

    # ========== SPECIAL METHODS ==========
    def __repr__(self):
        state = dict(zip(self._system.state_names, self._u0.tolist()))
        return (f"Problem(tspan={self._tspan}, u0={state}, "
                f"p={self.ps.to_dict()})")


def _is_numeric(values) -> bool:
    """True for numbers and arrays of numbers, False for sequences of pairs."""
    try:
        arr = np.asarray(values)
    except (TypeError, ValueError):
        return False
    return arr.dtype.kind in 'biuf'
