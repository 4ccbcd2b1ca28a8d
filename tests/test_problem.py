"""
Test suite for Problem construction and remake.

Tests cover:
- Initial states and parameters from mappings, pairs and arrays
- Defaults and missing values
- remake() independence
- Symbolic parameter access
"""

import numpy as np
import pytest
import heyoka as hy
from eisodos import System, Problem, compile_system


def decay_system():
    y, k = hy.make_vars("y", "k")
    sys = System([(y, -k * y)], parameters=[k], defaults={"k": 0.5})
    return sys.structural_compile(), y, k


class TestConstruction:
    """Test building problems."""

    def test_mapping_by_name(self):
        """States and parameters can be keyed by name."""
        sys, y, k = decay_system()
        prob = Problem(sys, {"y": 2.0}, (0.0, 1.0), p={"k": 1.5})

        assert prob.u0.tolist() == [2.0]
        assert prob.p.tolist() == [1.5]

    def test_pairs_by_variable(self):
        """Sequences of (variable, value) pairs are accepted."""
        sys, y, k = decay_system()
        prob = Problem(sys, [(y, 2.0)], (0.0, 1.0), p=[(k, 1.5)])

        assert prob.u0.tolist() == [2.0]
        assert prob.ps[k] == 1.5

    def test_array_in_system_order(self):
        """Arrays give values in system order."""
        sys, y, k = decay_system()
        prob = Problem(sys, np.array([3.0]), (0.0, 1.0), p=[0.1])

        assert prob.u0.tolist() == [3.0]
        assert prob.p.tolist() == [0.1]

    def test_defaults_used(self):
        """Parameters fall back on system defaults."""
        sys, y, k = decay_system()
        prob = Problem(sys, {"y": 1.0}, (0.0, 1.0))

        assert prob.ps["k"] == 0.5

    def test_tspan_cast_to_float(self):
        """Integer time spans are converted to floats."""
        sys, y, k = decay_system()
        prob = Problem(sys, {"y": 1.0}, (0, 2))

        assert prob.tspan == (0.0, 2.0)
        assert isinstance(prob.tspan[0], float)

    def test_compiles_template(self):
        """Building a problem compiles the integrator if needed."""
        sys, y, k = decay_system()
        Problem(sys, {"y": 1.0}, (0.0, 1.0))

        assert sys.is_compiled


class TestConstructionErrors:
    """Test rejected problems."""

    def test_uncompiled_system(self):
        """The system must be structurally compiled."""
        y, k = hy.make_vars("y", "k")
        sys = System([(y, -k * y)], parameters=[k])
        with pytest.raises(ValueError, match="must be compiled"):
            Problem(sys, {"y": 1.0}, (0.0, 1.0))

    def test_missing_state(self):
        """Every state needs an initial value."""
        sys, y, k = decay_system()
        with pytest.raises(ValueError, match="Missing initial values"):
            Problem(sys, {}, (0.0, 1.0))

    def test_missing_parameter(self):
        """Parameters without default need a value."""
        y, k = hy.make_vars("y", "k")
        sys = System([(y, -k * y)], parameters=[k]).structural_compile()
        with pytest.raises(ValueError, match="Missing values for parameters"):
            Problem(sys, {"y": 1.0}, (0.0, 1.0))

    def test_unknown_state_name(self):
        """Unknown names are rejected."""
        sys, y, k = decay_system()
        with pytest.raises(ValueError, match="not a state"):
            Problem(sys, {"y": 1.0, "w": 2.0}, (0.0, 1.0))

    def test_nan_state(self):
        """Non-finite initial states are rejected."""
        sys, y, k = decay_system()
        with pytest.raises(ValueError, match="NaN or Inf"):
            Problem(sys, {"y": np.nan}, (0.0, 1.0))

    def test_reversed_tspan(self):
        """The end time cannot precede the start time."""
        sys, y, k = decay_system()
        with pytest.raises(ValueError, match="must be >="):
            Problem(sys, {"y": 1.0}, (1.0, 0.0))

    def test_wrong_array_length(self):
        """Arrays must cover every state."""
        sys, y, k = decay_system()
        with pytest.raises(ValueError, match="Expected 1 initial states"):
            Problem(sys, [1.0, 2.0], (0.0, 1.0))


class TestRemake:
    """Test independent copies of problems."""

    def test_remake_parameters(self):
        """remake() overrides the given parameters only."""
        sys, y, k = decay_system()
        prob = Problem(sys, {"y": 1.0}, (0.0, 1.0))
        new = prob.remake(p={"k": 2.0})

        assert new.ps["k"] == 2.0
        assert prob.ps["k"] == 0.5

    def test_remake_shares_system(self):
        """remake() reuses the compiled system."""
        sys, y, k = decay_system()
        prob = Problem(sys, {"y": 1.0}, (0.0, 1.0))
        new = prob.remake(u0={"y": 4.0}, tspan=(0.0, 5.0))

        assert new.system is prob.system
        assert new.u0.tolist() == [4.0]
        assert new.tspan == (0.0, 5.0)
        assert prob.u0.tolist() == [1.0]

    def test_ps_assignment_isolated(self):
        """Writing parameters of a remade problem leaves the original alone."""
        sys, y, k = decay_system()
        prob = Problem(sys, {"y": 1.0}, (0.0, 1.0))
        new = prob.remake()
        new.ps[k] = 9.0

        assert prob.ps[k] == 0.5

    def test_ps_to_dict(self):
        """The parameter view exports a name-keyed dict."""
        sys, y, k = decay_system()
        prob = Problem(sys, {"y": 1.0}, (0.0, 1.0))

        assert prob.ps.to_dict() == {"k": 0.5}

    def test_ps_unknown_key(self):
        """Unknown parameters cannot be read."""
        sys, y, k = decay_system()
        prob = Problem(sys, {"y": 1.0}, (0.0, 1.0))

        with pytest.raises(ValueError, match="not a parameter"):
            prob.ps["w"]
