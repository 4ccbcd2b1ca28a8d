"""
Test suite for the input-aware wrappers and stage functions.

Tests cover:
- Attribute delegation and display
- Propagation of the input bundle through the stages
- Plain objects for systems without inputs
"""

import pytest
import heyoka as hy
from eisodos import (
    System, Problem, Integrator, InputFunctions,
    InputSystem, InputProblem, InputIntegrator,
    compile_system, ODEProblem, init, solve, set_input, finalize,
    get_input_functions,
)


def forced_system():
    y, x = hy.make_vars("y", "x")
    return compile_system(System([(y, x)], name="forced"), inputs=[x]), y, x


class TestDelegation:
    """Test that wrappers behave like the wrapped object."""

    def test_system_attributes(self):
        """InputSystem forwards System attributes."""
        isys, y, x = forced_system()

        assert isys.state_names == ["y"]
        assert isys.name == "forced"
        assert isys.is_parameter(x)

    def test_problem_attributes(self):
        """InputProblem forwards Problem attributes."""
        isys, y, x = forced_system()
        prob = ODEProblem(isys, {"y": 1.0}, (0.0, 2.0))

        assert prob.tspan == (0.0, 2.0)
        assert prob.ps[x] == 0.0

    def test_integrator_attributes(self):
        """InputIntegrator forwards Integrator attributes."""
        isys, y, x = forced_system()
        integ = init(ODEProblem(isys, {"y": 1.0}, (0.0, 2.0)))

        assert integ.t == 0.0
        assert not integ.done

    def test_missing_attribute(self):
        """Unknown attributes raise AttributeError."""
        isys, y, x = forced_system()
        with pytest.raises(AttributeError):
            isys.does_not_exist

    def test_dir_lists_wrapped(self):
        isys, y, x = forced_system()

        assert 'state_names' in dir(isys)
        assert 'input_functions' in dir(isys)


class TestDisplay:
    """Test string representations."""

    def test_system_repr(self):
        isys, y, x = forced_system()

        assert repr(isys).startswith("InputSystem\nSystem(")

    def test_problem_repr(self):
        isys, y, x = forced_system()
        prob = ODEProblem(isys, {"y": 1.0}, (0.0, 2.0))

        assert repr(prob).startswith("InputProblem\nProblem(")

    def test_integrator_repr(self):
        isys, y, x = forced_system()
        integ = init(ODEProblem(isys, {"y": 1.0}, (0.0, 2.0)))

        assert repr(integ).startswith("InputIntegrator\nIntegrator(")


class TestBundlePropagation:
    """Test the input bundle travelling through the stages."""

    def test_same_bundle_each_stage(self):
        """Problem and integrator carry the system's bundle."""
        isys, y, x = forced_system()
        prob = ODEProblem(isys, {"y": 1.0}, (0.0, 2.0))
        integ = init(prob)

        assert isinstance(prob, InputProblem)
        assert isinstance(integ, InputIntegrator)
        assert prob.input_functions is isys.input_functions
        assert integ.input_functions is isys.input_functions

    def test_remake_keeps_bundle(self):
        """InputProblem.remake() returns an InputProblem."""
        isys, y, x = forced_system()
        prob = ODEProblem(isys, {"y": 1.0}, (0.0, 2.0))
        new = prob.remake(tspan=(0.0, 5.0))

        assert isinstance(new, InputProblem)
        assert new.input_functions is prob.input_functions
        assert new.tspan == (0.0, 5.0)
        assert prob.tspan == (0.0, 2.0)

    def test_unwrapped_access(self):
        """The wrapped objects are reachable."""
        isys, y, x = forced_system()
        prob = ODEProblem(isys, {"y": 1.0}, (0.0, 2.0))
        integ = init(prob)

        assert isinstance(isys.system, System)
        assert isinstance(prob.prob, Problem)
        assert isinstance(integ.integrator, Integrator)

    def test_get_input_functions(self):
        isys, y, x = forced_system()

        assert isinstance(get_input_functions(isys), InputFunctions)
        assert get_input_functions(isys.system) is None

    def test_wrapper_methods(self):
        """InputIntegrator offers set_input and finalize as methods."""
        isys, y, x = forced_system()
        integ = init(ODEProblem(isys, {"y": 0.0}, (0.0, 2.0)))
        integ.set_input(x, 2.0)
        integ.propagate_until(2.0)
        integ.finalize()

        assert integ.sol.value(y, 2.0) == pytest.approx(4.0, abs=1e-10)


class TestWithoutInputs:
    """Test systems compiled without inputs."""

    def test_plain_objects(self):
        """Problems and integrators are not wrapped."""
        y, k = hy.make_vars("y", "k")
        isys = compile_system(System([(y, -k * y)], parameters=[k], defaults={"k": 1.0}))
        prob = ODEProblem(isys, {"y": 1.0}, (0.0, 1.0))

        assert isys.input_functions is None
        assert type(prob) is Problem
        assert type(init(prob)) is Integrator

    def test_inputs_rejected(self):
        """Input data needs an input bundle."""
        y, k = hy.make_vars("y", "k")
        isys = compile_system(System([(y, -k * y)], parameters=[k], defaults={"k": 1.0}))
        prob = ODEProblem(isys, {"y": 1.0}, (0.0, 1.0))

        with pytest.raises(ValueError, match="Problem has no inputs"):
            solve(prob, [])

    def test_set_input_on_plain_integrator(self):
        y, k = hy.make_vars("y", "k")
        isys = compile_system(System([(y, -k * y)], parameters=[k], defaults={"k": 1.0}))
        integ = init(ODEProblem(isys, {"y": 1.0}, (0.0, 1.0)))

        with pytest.raises(TypeError):
            set_input(integ, k, 2.0)
        with pytest.raises(TypeError):
            finalize(integ)

    def test_system_kwargs_only_with_equations(self):
        """System arguments cannot accompany a built System."""
        y, x = hy.make_vars("y", "x")
        with pytest.raises(TypeError):
            InputSystem(System([(y, 1.0)]), name="twice")
