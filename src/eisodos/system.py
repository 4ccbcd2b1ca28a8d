'''Symbolic ODE systems with runtime parameters
System class definition'''

import copy
import math
import warnings
from dataclasses import dataclass
from typing import Optional, Dict, List, Tuple, Any, Union
import numpy as np
import heyoka as hy
from .config import config
from .utils import Timer, var_name, find_var

"""
Core dataclasses for System class components.
These are immutable records created while a System is compiled and
shared read-only by every problem and integrator derived from it.
"""
@dataclass(frozen=True)
class DiscreteEvent:
    """
    Discrete event registered against a System.

    Attributes
    ----------
    time : float
        Scheduled firing time. Integrators stop exactly at a finite time and
        record the modified parameters there. Input placeholders use +inf,
        so they never fire on their own and only serve as recording slots.
    modified : tuple
        Parameters whose values are recorded whenever the event fires
    name : str, optional
        Label used in reprs
    """
    time: float
    modified: tuple
    name: Optional[str] = None

    def __post_init__(self):
        if math.isnan(self.time):
            raise ValueError("Event time must not be NaN")
        if not self.modified:
            raise ValueError("Event must modify at least one parameter")
        # Normalise to a tuple of single variables
        object.__setattr__(self, 'modified', tuple(self.modified))
        for var in self.modified:
            var_name(var)

    @property
    def is_placeholder(self) -> bool:
        """True if the event never fires on its own schedule."""
        return math.isinf(self.time)

    @property
    def modified_names(self) -> Tuple[str, ...]:
        return tuple(var_name(v) for v in self.modified)


@dataclass(frozen=True)
class ParameterLayout:
    """
    Assignment of parameter names to slots of the heyoka ``pars`` array.

    Slots are assigned once, in declaration order, when the layout is built
    and are referenced by stable integer offsets afterwards.
    """
    names: Tuple[str, ...]

    def __post_init__(self):
        if len(set(self.names)) != len(self.names):
            raise ValueError(f"Duplicate parameters in layout: {self.names}")

    def index(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise KeyError(f"'{name}' is not a parameter of this layout") from None

    def __contains__(self, name) -> bool:
        return name in self.names

    def __len__(self) -> int:
        return len(self.names)


@dataclass(frozen=True)
class ParameterSetter:
    """
    Setter bound to one slot of the parameter vector.

    Calling ``setter(integrator, value)`` writes ``value`` into the live
    parameter vector of ``integrator`` (anything exposing a writable
    ``pars`` array).
    """
    name: str
    slot: int

    def __call__(self, integrator, value):
        integrator.pars[self.slot] = float(value)


class System:
    """
    Symbolic ODE system with runtime parameters.

    Equations are given in heyoka's format, a list of ``(var, rhs)`` pairs
    meaning ``d(var)/dt = rhs``. Every other variable in the right-hand
    sides is either a declared parameter or an unknown: a time-varying
    quantity without a defining equation, which must be declared as an
    input before the system can be compiled.

    Parameters
    ----------
    eqs : list of (var, rhs) tuples
        Differential equations. Numbers are accepted as right-hand sides.
    parameters : sequence of heyoka variables, optional
        Constant parameters, bound at runtime through ``hy.par[]``
    defaults : dict or sequence of pairs, optional
        Default values keyed by variable (or variable name)
    name : str, optional
        System label
    discrete_events : sequence of DiscreteEvent, optional
        Pre-existing discrete events

    Notes
    -----
    - System is immutable - structural operations return new instances
    - ``structural_compile()`` classifies variables and assigns parameter
      slots; ``compile()`` JIT-compiles the heyoka integrator template
    - Instance counting: Warning issued when more compiled integrator
      templates than ``config.INSTANCE_WARNING_THRESHOLD`` are alive
    """
    # ========== CLASS CONSTANTS ==========
    # Number of compiled heyoka templates alive
    _instance_count = 0

    # ========== CONSTRUCTION ==========
    def __init__(
        self,
        eqs,
        parameters=(),
        defaults=None,
        name: Optional[str] = None,
        discrete_events=()
    ):
        self._eqs = self._parse_eqs(eqs)
        self._states = tuple(lhs for lhs, _ in self._eqs)
        self._parameters = tuple(parameters)
        self._name = name
        self._discrete_events = tuple(discrete_events)

        self._validate_classification()
        self._unknowns = self._find_unknowns()
        self._defaults = self._parse_defaults(defaults)

        # Filled in by structural_compile() / compile()
        self._layout = None
        self._compiled_eqs = None
        self._template = None

    def _derive(self, **changes):
        """Shallow copy with some fields replaced and compiled caches cleared."""
        new = copy.copy(self)
        for key, value in changes.items():
            setattr(new, f"_{key}", value)
        new._validate_classification()
        new._unknowns = new._find_unknowns()
        new._layout = None
        new._compiled_eqs = None
        new._template = None
        return new

    # ========== VALIDATION ==========
    @staticmethod
    def _parse_eqs(eqs):
        """Convert equations to a tuple of (variable, expression) pairs."""
        if isinstance(eqs, tuple) and len(eqs) == 2 and isinstance(eqs[0], hy.expression):
            eqs = [eqs]  # single equation
        eqs = list(eqs)
        if not eqs:
            raise ValueError("System requires at least one equation")

        parsed = []
        for eq in eqs:
            try:
                lhs, rhs = eq
            except (TypeError, ValueError):
                raise TypeError(
                    f"Equations must be (var, rhs) pairs, got {eq!r}"
                ) from None
            var_name(lhs)
            if isinstance(rhs, (int, float, np.floating, np.integer)):
                rhs = hy.expression(float(rhs))
            if not isinstance(rhs, hy.expression):
                raise TypeError(
                    f"Right-hand side for {lhs} must be a heyoka expression "
                    f"or a number, got {type(rhs).__name__}"
                )
            parsed.append((lhs, rhs))
        return tuple(parsed)

    def _validate_classification(self):
        state_names = [var_name(v) for v in self._states]
        if len(state_names) != len(set(state_names)):
            raise ValueError(f"Duplicate state variables found: {state_names}")

        param_names = [var_name(p) for p in self._parameters]
        if len(param_names) != len(set(param_names)):
            raise ValueError(f"Duplicate parameters found: {param_names}")

        overlap = set(state_names) & set(param_names)
        if overlap:
            raise ValueError(
                f"Variables {sorted(overlap)} are declared both as states "
                f"and as parameters"
            )

        for event in self._discrete_events:
            if not isinstance(event, DiscreteEvent):
                raise TypeError(
                    f"discrete_events must contain DiscreteEvent, got "
                    f"{type(event).__name__}"
                )

    def _find_unknowns(self):
        """Variables appearing in right-hand sides with no equation or parameter."""
        known = set(self.state_names) | set(self.parameter_names)
        unknowns = []
        seen = set()
        for _, rhs in self._eqs:
            for name in hy.get_variables(rhs):
                if name not in known and name not in seen:
                    seen.add(name)
                    unknowns.append(hy.make_vars(name))
        return tuple(unknowns)

    def _parse_defaults(self, defaults):
        """Convert a defaults mapping to a dict keyed by variable name."""
        if defaults is None:
            return {}
        items = defaults.items() if hasattr(defaults, 'items') else defaults
        known = (set(self.state_names) | set(self.parameter_names)
                 | {var_name(u) for u in self._unknowns})
        parsed = {}
        for key, value in items:
            name = key if isinstance(key, str) else var_name(key)
            if name not in known:
                raise ValueError(f"Default given for unknown variable '{name}'")
            value = float(value)
            if not np.isfinite(value):
                raise ValueError(f"Default for '{name}' must be finite, got {value}")
            parsed[name] = value
        return parsed

    # ========== STRUCTURAL COMPILATION ==========
    def structural_compile(self, inputs=()) -> "System":
        """
        Classify variables and assign parameter slots.

        Each input is reclassified as a parameter if it is not one already.
        Inputs that are differential states lose their equation.

        Parameters
        ----------
        inputs : sequence of heyoka variables
            Variables whose values are supplied externally

        Returns
        -------
        System
            New compiled system with a parameter layout

        Raises
        ------
        ValueError
            If an input does not exist in the system, or unknowns remain
            that were not declared as inputs
        """
        sys = self
        for var in inputs:
            name = var_name(var)
            if name in sys.parameter_names:
                continue
            if name in sys.state_names or find_var(var, sys.unknowns) is not None:
                sys = sys.toparam(var)
            else:
                raise ValueError(
                    f"Input variable {var} does not exist in system "
                    f"{self._name or ''}".rstrip()
                )

        if sys.unknowns:
            raise ValueError(
                f"Variables {[str(u) for u in sys.unknowns]} have no equation "
                f"and are not parameters. Declare them as inputs."
            )
        return sys.rebuild_layout()

    def toparam(self, var) -> "System":
        """
        Return a new System in which var is a parameter.

        A differential state is reclassified by dropping its equation.
        """
        name = var_name(var)
        if name in self.parameter_names:
            return self
        eqs = self._eqs
        if name in self.state_names:
            warnings.warn(
                f"State {name} declared as input: its equation is removed "
                f"and it becomes a parameter",
                UserWarning,
                stacklevel=3
            )
            eqs = tuple(eq for eq in eqs if var_name(eq[0]) != name)
            if not eqs:
                raise ValueError(
                    f"Reclassifying {name} as a parameter leaves no equations"
                )
        elif find_var(var, self._unknowns) is None:
            raise ValueError(f"Variable {var} does not exist in system")
        return self._derive(
            eqs=eqs,
            states=tuple(lhs for lhs, _ in eqs),
            parameters=self._parameters + (var,),
        )

    def replace(self, discrete_events=None, defaults=None) -> "System":
        """
        Return a copy with new discrete events and/or defaults.

        The copy has no parameter layout; call ``rebuild_layout()`` on it.
        """
        changes = {}
        if discrete_events is not None:
            changes['discrete_events'] = tuple(discrete_events)
        new = self._derive(**changes)
        if defaults is not None:
            new._defaults = new._parse_defaults(defaults)
        return new

    def rebuild_layout(self) -> "System":
        """
        Return a copy with the parameter index layout recomputed.

        Parameters keep their declaration order. Right-hand sides are
        rewritten with ``hy.par[slot]`` in place of parameter variables.
        """
        if self._unknowns:
            raise ValueError(
                f"Cannot build a parameter layout with undetermined "
                f"variables {[str(u) for u in self._unknowns]}"
            )
        new = self._derive()
        layout = ParameterLayout(tuple(self.parameter_names))
        smap = {name: hy.par[i] for i, name in enumerate(layout.names)}
        if smap:
            compiled = tuple((lhs, hy.subs(rhs, smap)) for lhs, rhs in self._eqs)
        else:
            compiled = self._eqs
        new._layout = layout
        new._compiled_eqs = compiled
        return new

    def setsym(self, var) -> ParameterSetter:
        """Setter bound to the slot of parameter var in the current layout."""
        layout = self.parameter_layout
        name = var_name(var)
        try:
            slot = layout.index(name)
        except KeyError:
            raise ValueError(f"{var} is not a parameter of this system") from None
        return ParameterSetter(name, slot)

    # ========== INTEGRATOR COMPILATION ==========
    def _compile_integrator(self):
        """
        Compile the heyoka integrator template (expensive operation).

        This performs automatic differentiation and LLVM compilation.
        Problems and integrators copy the template, so this cost is paid
        once per compiled system rather than once per dataset.
        """
        if self._template is not None:
            return  # Already compiled
        if self._layout is None:
            raise ValueError(
                "System has no parameter layout. Call structural_compile() "
                "before compiling the integrator."
            )

        kwargs = {}
        if config.INTEGRATION_TOL is not None:
            kwargs['tol'] = config.INTEGRATION_TOL

        if config.VERBOSE:
            label = f" '{self._name}'" if self._name else ""
            print(f"Compiling integrator{label} with {len(self._states)} "
                  f"states and {len(self._layout)} parameters...")

        # EXPENSIVE: Compile integrator
        with Timer("Compilation complete", verbose=config.VERBOSE):
            self._template = hy.taylor_adaptive(
                sys=list(self._compiled_eqs),
                state=[0.0] * len(self._states),  # Dummy state
                pars=[0.0] * len(self._layout),   # Dummy parameters
                **kwargs
            )

        System._instance_count += 1
        if System._instance_count > config.INSTANCE_WARNING_THRESHOLD:
            warnings.warn(
                f"{System._instance_count} compiled integrators are alive. "
                f"Each one holds JIT-compiled code, which can consume "
                f"significant memory. Consider reusing compiled systems and "
                f"remaking problems instead.",
                ResourceWarning,
                stacklevel=3
            )

    def compile(self):
        """
        Explicitly compile the integrator template if not already compiled.

        Returns
        -------
        self
            Returns self for method chaining
        """
        self._compile_integrator()
        return self

    # ========== PROPERTY ACCESS ==========
    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def eqs(self) -> Tuple:
        """Equations as (var, rhs) pairs in terms of named variables."""
        return self._eqs

    @property
    def compiled_eqs(self) -> Optional[Tuple]:
        """Equations with parameters replaced by ``hy.par[]`` slots."""
        return self._compiled_eqs

    @property
    def states(self) -> Tuple:
        return self._states

    @property
    def state_names(self) -> List[str]:
        return [var_name(v) for v in self._states]

    @property
    def parameters(self) -> Tuple:
        return self._parameters

    @property
    def parameter_names(self) -> List[str]:
        return [var_name(p) for p in self._parameters]

    @property
    def unknowns(self) -> Tuple:
        """Time-varying variables without an equation."""
        return self._unknowns

    @property
    def defaults(self) -> Dict[str, float]:
        """Copy of the default values, keyed by variable name."""
        return dict(self._defaults)

    @property
    def discrete_events(self) -> Tuple[DiscreteEvent, ...]:
        return self._discrete_events

    @property
    def parameter_layout(self) -> ParameterLayout:
        if self._layout is None:
            raise ValueError(
                "System has no parameter layout. Call structural_compile() first."
            )
        return self._layout

    @property
    def is_structurally_compiled(self) -> bool:
        return self._layout is not None

    @property
    def is_compiled(self) -> bool:
        """Check if the integrator template has been compiled."""
        return self._template is not None

    @property
    def template(self):
        """Compiled heyoka integrator, compiled on first access."""
        self._compile_integrator()
        return self._template

    # ========== INDEX LOOKUP ==========
    def state_index(self, var) -> int:
        """Position of var in the state vector."""
        name = var if isinstance(var, str) else var_name(var)
        try:
            return self.state_names.index(name)
        except ValueError:
            raise ValueError(f"{name} is not a state of this system") from None

    def parameter_index(self, var) -> int:
        """Slot of var in the parameter vector."""
        name = var if isinstance(var, str) else var_name(var)
        try:
            return self.parameter_layout.index(name)
        except KeyError:
            raise ValueError(f"{name} is not a parameter of this system") from None

    def is_state(self, var) -> bool:
        name = var if isinstance(var, str) else var_name(var)
        return name in self.state_names

    def is_parameter(self, var) -> bool:
        name = var if isinstance(var, str) else var_name(var)
        return name in self.parameter_names

    # ========== UTILITY METHODS ==========
    def summary(self):
        """Print detailed summary of the system."""
        print(f"System: {self._name or '(unnamed)'}")
        print(f"States ({len(self._states)}):")
        for lhs, rhs in self._eqs:
            print(f"  d{lhs}/dt = {rhs}")
        if self._parameters:
            print(f"Parameters ({len(self._parameters)}):")
            for name in self.parameter_names:
                slot = (f"par[{self._layout.index(name)}]"
                        if self._layout is not None else "unassigned")
                default = self._defaults.get(name)
                print(f"  {name}: {slot}, default = {default}")
        else:
            print("Parameters: None")
        if self._unknowns:
            print(f"Undetermined: {', '.join(str(u) for u in self._unknowns)}")
        if self._discrete_events:
            print(f"Discrete events: {len(self._discrete_events)}")
        print(f"Compiled: {self.is_compiled}")

    @classmethod
    def get_instance_count(cls):
        """Get current number of compiled integrator templates."""
        return cls._instance_count

    @classmethod
    def reset_instance_count(cls):
        """Reset instance counter (useful for testing)."""
        cls._instance_count = 0

    # ========== SPECIAL METHODS ==========
    def __del__(self):
        """Decrement instance count when a compiled System is garbage collected."""
        if getattr(self, '_template', None) is not None:
            System._instance_count -= 1

    def __repr__(self):
        """Readable string representation."""
        parts = [f"System(name={self._name!r}"]
        parts.append(f"states={self.state_names}")
        if self._parameters:
            parts.append(f"parameters={self.parameter_names}")
        if self._unknowns:
            parts.append(f"unknowns={[str(u) for u in self._unknowns]}")
        if self._discrete_events:
            parts.append(f"events={len(self._discrete_events)}")
        return ", ".join(parts) + ")"
