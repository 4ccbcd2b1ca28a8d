'''Solution traces produced by integration runs
Solution class definition'''

import bisect
import numpy as np
import pandas as pd
from typing import Union, Optional, Dict, List, Tuple, NamedTuple, TYPE_CHECKING
from .config import config
from .utils import var_name
if TYPE_CHECKING:
    from .system import System


class DiscreteHistory(NamedTuple):
    """Recorded values of one parameter and the times they were recorded at."""
    times: np.ndarray
    values: np.ndarray

    def value_at(self, t):
        """
        Piecewise-constant value at time(s) t.

        At a recorded instant the latest value recorded there is returned,
        i.e. the value after the jump.
        """
        t_arr = np.asarray(t, dtype=float)
        idx = np.searchsorted(self.times, t_arr, side='right') - 1
        idx = np.clip(idx, 0, len(self.values) - 1)
        result = self.values[idx]
        return float(result) if t_arr.ndim == 0 else result


class Solution:
    """
    Trace of one integration run.

    Attributes:
        system: Compiled System the run was built from
        t: Saved time points
        u: Saved states, shape (len(t), n_states)
        tspan: (t_start, t_end) of the run
        retcode: 'Success' if the run reached t_end, 'Default' otherwise

    States are evaluated between saved points with heyoka's dense
    (Taylor) output, one segment per step. Parameters are piecewise
    constant and are evaluated from the discrete history recorded by the
    integrator; a parameter without history is constant over the run.
    At an instant where a callback changed the state or a parameter, both
    give the value after the change.
    """
    # ========== CONSTRUCTION ==========
    def __init__(self, system: "System", t, u, segments, discretes: Dict[str, DiscreteHistory],
                 p0, tspan: Tuple[float, float], retcode: str = 'Success'):
        self._system = system
        self._t = np.asarray(t, dtype=float)
        self._u = np.asarray(u, dtype=float).reshape(len(self._t), len(system.states))
        self._segments = list(segments)   # (t_start, t_end, continuous_output)
        self._segment_ends = [seg[1] for seg in self._segments]
        self._discretes = dict(discretes)
        self._p0 = np.asarray(p0, dtype=float)
        self._tspan = tspan
        self._retcode = retcode

    # ========== PROPERTY ACCESS ==========
    @property
    def system(self) -> "System":
        return self._system

    @property
    def t(self) -> np.ndarray:
        return self._t

    @property
    def u(self) -> np.ndarray:
        return self._u

    @property
    def tspan(self) -> Tuple[float, float]:
        return self._tspan

    @property
    def t0(self) -> float:
        return self._tspan[0]

    @property
    def tf(self) -> float:
        return float(self._t[-1])

    @property
    def retcode(self) -> str:
        return self._retcode

    @property
    def successful(self) -> bool:
        return self._retcode == 'Success'

    # ========== STATE EVALUATION ==========
    def state_at(self, t: float) -> np.ndarray:
        """Get raw state array at time t."""
        t = float(t)  # heyoka requires float input
        self._validate_time(t)
        if not self._segments:
            return self._u[0].copy()
        # First segment ending after t; at a jump instant this is the post-jump one
        i = bisect.bisect_right(self._segment_ends, t)
        i = min(i, len(self._segments) - 1)
        return np.array(self._segments[i][2](t), dtype=float)

    def evaluate(self, times: Union[float, np.ndarray, list]) -> np.ndarray:
        """
        Evaluate states at one or more times.

        Returns
        -------
        np.ndarray
            Shape (n_states,) if times is scalar, (n_times, n_states) otherwise
        """
        if np.ndim(times) == 0:
            return self.state_at(times)
        times = np.asarray(times, dtype=float)
        if len(times) == 0:
            return np.empty((0, len(self._system.states)))
        return np.vstack([self.state_at(t) for t in times])

    def sample(self, n_points: Optional[int] = None) -> np.ndarray:
        """
        Uniformly sample states in time.

        Parameters:
            n_points: Number of points to sample (default: config.DEFAULT_SAMPLE_POINTS)

        Returns:
            Array of shape (n_points, n_states)
        """
        if n_points is None:
            n_points = config.DEFAULT_SAMPLE_POINTS
        if n_points < 2:
            raise ValueError("n_points must be at least 2, use .state_at()")
        return self.evaluate(self.get_times(n_points))

    # ========== VARIABLE ACCESS ==========
    def discrete_history(self, var) -> DiscreteHistory:
        """
        Recorded history of a parameter driven by discrete events.

        Raises:
            KeyError: If no history was recorded for var
        """
        name = var if isinstance(var, str) else var_name(var)
        if name not in self._discretes:
            raise KeyError(f"No discrete history recorded for '{name}'")
        return self._discretes[name]

    def value(self, var, t):
        """
        Value of a state or parameter at time(s) t.

        Parameters with a discrete history follow the piecewise-constant
        law; at a jump instant the post-jump value is returned.
        """
        name = var if isinstance(var, str) else var_name(var)
        if self._system.is_state(name):
            idx = self._system.state_index(name)
            if np.ndim(t) == 0:
                return float(self.state_at(t)[idx])
            return self.evaluate(t)[:, idx]
        if self._system.is_parameter(name):
            if np.ndim(t) == 0:
                self._validate_time(float(t))
            else:
                for ti in np.asarray(t, dtype=float):
                    self._validate_time(ti)
            if name in self._discretes:
                return self._discretes[name].value_at(t)
            value = float(self._p0[self._system.parameter_index(name)])
            return value if np.ndim(t) == 0 else np.full(np.shape(t), value)
        raise KeyError(f"'{name}' is neither a state nor a parameter of the system")

    def __getitem__(self, var) -> np.ndarray:
        """
        Saved series of a variable.

        States give their values at ``sol.t``. Parameters with a discrete
        history give the recorded values (times in ``discrete_history``).
        """
        name = var if isinstance(var, str) else var_name(var)
        if self._system.is_state(name):
            return self._u[:, self._system.state_index(name)]
        if name in self._discretes:
            return self._discretes[name].values
        if self._system.is_parameter(name):
            value = self._p0[self._system.parameter_index(name)]
            return np.full(len(self._t), value)
        raise KeyError(f"'{name}' is neither a state nor a parameter of the system")

    # ========== UTILITY METHODS ==========
    def _validate_time(self, t: float):
        """Validate that time is within solution bounds."""
        if not (self.t0 <= t <= self.tf):
            raise ValueError(
                f"Time {t} outside solution bounds [{self.t0}, {self.tf}]"
            )

    def contains_time(self, t: float) -> bool:
        """Check if time is within solution bounds."""
        return self.t0 <= t <= self.tf

    def get_times(self, n_points: int = 100) -> np.ndarray:
        """Generate uniform time array spanning the solution."""
        return np.linspace(self.t0, self.tf, n_points)

    def to_dataframe(self,
                    times: Optional[np.ndarray] = None,
                    n_points: Optional[int] = None) -> pd.DataFrame:
        """
        Export solution to pandas DataFrame.

        Parameters:
            times: Specific times to evaluate. If None, uses the saved points,
                or uniform sampling when n_points is given.
            n_points: Number of uniform samples if times not provided

        Returns:
            DataFrame with a time column, one column per state and one per
            parameter with a discrete history
        """
        if times is None:
            times = self._t if n_points is None else self.get_times(n_points)
        times = np.asarray(times, dtype=float)

        data = {'time': times}
        if times is self._t:
            states = self._u
        else:
            states = self.evaluate(times).reshape(len(times), len(self._system.states))
        for i, name in enumerate(self._system.state_names):
            data[name] = states[:, i]
        for name, history in self._discretes.items():
            data[name] = np.asarray(history.value_at(times), dtype=float).reshape(len(times))

        return pd.DataFrame(data)

    # ========== SPECIAL METHODS ==========
    def __len__(self):
        return len(self._t)

    def __repr__(self):
        return (f"Solution(retcode={self._retcode!r}, t0={self.t0}, tf={self.tf}, "
                f"n_points={len(self._t)}, states={self._system.state_names})")

    def __call__(self, t, idxs=None):
        """
        Evaluate the solution at time t.
        Syntactic sugar for .evaluate(t), or .value(idxs, t) if idxs given.

        Parameters:
            t: Time or times to query
            idxs: Variable or list of variables to return

        Returns:
            State array, or the value(s) of the requested variable(s)
        """
        if idxs is None:
            return self.evaluate(t)
        if isinstance(idxs, (list, tuple)):
            columns = [self.value(var, t) for var in idxs]
            return np.array(columns) if np.ndim(t) == 0 else np.column_stack(columns)
        return self.value(idxs, t)
