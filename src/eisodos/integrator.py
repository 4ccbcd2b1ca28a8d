'''Stepping integrator over heyoka's adaptive Taylor method
Integrator class definition'''

import bisect
import copy
import numpy as np
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, List, Dict
import heyoka as hy
from .errors import IntegrationError
from .problem import Problem
from .solution import Solution, DiscreteHistory
from .system import DiscreteEvent


@dataclass(frozen=True)
class DiscreteCallback:
    """
    Callback checked after every accepted step.

    Attributes
    ----------
    condition : callable
        ``condition(u, t, integrator) -> bool``
    affect : callable
        ``affect(integrator)``, run when the condition holds. It may change
        parameters and must then call ``integrator.u_modified(True)``.
    """
    condition: Callable
    affect: Callable


class Integrator:
    """
    Live integration run for one Problem.

    The integrator copies the system's compiled heyoka template, so creating
    one never recompiles. It advances one adaptive step at a time and never
    steps across a forced stop time: when a stop is reached the clock is set
    to exactly that value, so callbacks can match injection times with
    plain equality.

    Parameters
    ----------
    problem : Problem
        Problem to integrate; its state and parameters are copied
    tstops : sequence of float, optional
        Forced stop times in addition to the end of the time span
    callbacks : sequence of DiscreteCallback, optional
        Checked in order after every step
    save_everystep : bool, optional
        Save the state after every step (default True). If False only the
        start, the end and callback instants are saved.

    Notes
    -----
    All mutable run state (parameter vector, discrete histories, stepping
    state) belongs to this instance and must not be shared between
    concurrent runs.
    """
    # ========== CONSTRUCTION ==========
    def __init__(
        self,
        problem: Problem,
        tstops: Sequence[float] = (),
        callbacks: Sequence[DiscreteCallback] = (),
        save_everystep: bool = True
    ):
        if not isinstance(problem, Problem):
            raise TypeError(f"Expected a Problem, got {type(problem).__name__}")
        self._problem = problem
        self._system = problem.system
        self._tspan = problem.tspan
        self._callbacks = tuple(callbacks)
        self._save_everystep = save_everystep

        # Copy of the compiled template, no JIT compilation here
        self._ta = copy.deepcopy(self._system.template)
        self._ta.time = self._tspan[0]
        self._ta.state[:] = problem.u0
        self._ta.pars[:] = problem.p

        self._tstops: List[float] = [self._tspan[1]]
        for t in tstops:
            self.add_tstop(t)
        # Events with a finite time record their parameters when reached
        self._timed_events = tuple(
            e for e in self._system.discrete_events if not e.is_placeholder
        )
        for event in self._timed_events:
            self.add_tstop(event.time)

        self._modified = False
        self._segments = []
        self._saved_t = []
        self._saved_u = []
        self._discretes: Dict[str, Tuple[List[float], List[float]]] = {}

        self._save()
        for event in self._system.discrete_events:
            self.save_discretes(event)

    # ========== STOP TIMES ==========
    def add_tstop(self, t: float):
        """
        Force the integrator to land exactly on time t.

        Stops at or before the current time, or after the end of the time
        span, are ignored.
        """
        t = float(t)
        if not np.isfinite(t):
            raise ValueError(f"Stop time must be finite, got {t}")
        if t <= self.t or t > self._tspan[1]:
            return
        i = bisect.bisect_left(self._tstops, t)
        if i < len(self._tstops) and self._tstops[i] == t:
            return
        self._tstops.insert(i, t)

    @property
    def tstops(self) -> Tuple[float, ...]:
        """Pending forced stop times."""
        return tuple(self._tstops)

    # ========== STEPPING ==========
    def _step_once(self):
        """Take one adaptive step, landing exactly on the next stop if reached."""
        stop = self._tstops[0]
        t_prev = self.t
        landed = False
        res = self._ta.propagate_until(stop, max_steps=1, c_output=True)
        outcome, c_out = res[0], res[4]

        if outcome == hy.taylor_outcome.err_nf_state or not np.all(np.isfinite(self._ta.state)):
            raise IntegrationError(
                f"Integration failed: state became invalid.\n"
                f"Time: {self._ta.time}\n"
                f"State: {self._ta.state}",
                time=self._ta.time,
                state=self._ta.state.copy()
            )

        if outcome == hy.taylor_outcome.time_limit or self._ta.time >= stop:
            self._ta.time = stop
            self._tstops.pop(0)
            landed = True
        if c_out is not None:
            self._segments.append((t_prev, self.t, c_out))

        if self._save_everystep or not self._tstops:
            self._save()
        if landed:
            for event in self._timed_events:
                if event.time == self.t:
                    self.save_discretes(event)
        self._apply_callbacks()

    def _apply_callbacks(self):
        """Run every callback whose condition holds at the current instant."""
        for cb in self._callbacks:
            if cb.condition(self.u, self.t, self):
                cb.affect(self)
        if self._modified:
            # Callbacks may have changed the state at this instant
            self._save()
            self._modified = False

    def step(self, dt: Optional[float] = None, stop_at_tdt: bool = False):
        """
        Advance the integration.

        Parameters
        ----------
        dt : float, optional
            If None, take a single adaptive step. Otherwise keep stepping
            until at least t + dt is reached.
        stop_at_tdt : bool, optional
            Force the last step to land exactly on t + dt
        """
        if self.done:
            return
        if dt is None:
            self._step_once()
            return
        target = self.t + float(dt)
        if stop_at_tdt:
            self.add_tstop(target)
        while not self.done and self.t < target:
            self._step_once()

    def propagate_until(self, t: float):
        """
        Integrate up to exactly time t (clamped to the end of the time span).

        Callbacks registered for t run before this returns.
        """
        t = min(float(t), self._tspan[1])
        if t < self.t:
            raise ValueError(f"Cannot propagate backwards from {self.t} to {t}")
        self.add_tstop(t)
        while not self.done and self.t < t:
            self._step_once()

    def solve(self) -> Solution:
        """Integrate to the end of the time span and return the solution."""
        while not self.done:
            self._step_once()
        return self.solution

    # ========== STATE MODIFICATION ==========
    def u_modified(self, flag: bool = True):
        """
        Signal that the state or parameters were changed outside a step.

        The current point is saved again after callbacks run, and the next
        step starts a new dense output segment from the new values.
        """
        self._modified = bool(flag)

    def save_discretes(self, event: DiscreteEvent):
        """
        Record that event fired at the current time.

        The current value of each parameter the event modifies is appended
        to that parameter's history. Recording the same (time, value) pair
        twice in a row is a no-op.
        """
        t = self.t
        for name in event.modified_names:
            value = float(self._ta.pars[self._system.parameter_index(name)])
            times, values = self._discretes.setdefault(name, ([], []))
            if times and times[-1] == t and values[-1] == value:
                continue
            times.append(t)
            values.append(value)

    def _save(self):
        t = self.t
        state = self._ta.state.copy()
        if self._saved_t and self._saved_t[-1] == t and np.array_equal(self._saved_u[-1], state):
            return
        self._saved_t.append(t)
        self._saved_u.append(state)

    # ========== PROPERTY ACCESS ==========
    @property
    def t(self) -> float:
        return float(self._ta.time)

    @property
    def u(self) -> np.ndarray:
        """Live state vector (writable view)."""
        return self._ta.state

    @property
    def pars(self) -> np.ndarray:
        """Live parameter vector (writable view)."""
        return self._ta.pars

    @property
    def ps(self):
        """Snapshot of the live parameters, keyed by name."""
        return {name: float(self._ta.pars[i])
                for i, name in enumerate(self._system.parameter_layout.names)}

    @property
    def problem(self) -> Problem:
        return self._problem

    @property
    def system(self):
        return self._system

    @property
    def tspan(self) -> Tuple[float, float]:
        return self._tspan

    @property
    def done(self) -> bool:
        """True once the end of the time span has been reached."""
        return not self._tstops

    @property
    def solution(self) -> Solution:
        """Solution trace recorded so far."""
        discretes = {
            name: DiscreteHistory(np.array(times), np.array(values))
            for name, (times, values) in self._discretes.items()
        }
        return Solution(
            self._system,
            self._saved_t,
            self._saved_u,
            self._segments,
            discretes,
            self._problem.p,
            self._tspan,
            retcode='Success' if self.done else 'Default'
        )

    sol = solution

    # ========== SPECIAL METHODS ==========
    def __repr__(self):
        return (f"Integrator(t={self.t}, tspan={self._tspan}, "
                f"u={self._ta.state.tolist()}, done={self.done})")
