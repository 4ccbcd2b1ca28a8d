"""
Test suite for configuration and utilities.

Tests cover:
- Global configuration reset and temporary overrides
- Strict and lenient validation
- Timer
- Variable name helpers
"""

import pytest
import heyoka as hy
import eisodos
from eisodos import config, temp_config
from eisodos.utils import Timer, validation_error, var_name, find_var


class TestConfig:
    """Test the global configuration."""

    def test_defaults(self):
        assert config.STRICT_VALIDATION is True
        assert config.DEFAULT_INPUT_VALUE == 0.0
        assert config.DEFAULT_SAMPLE_POINTS == 1000

    def test_reset(self):
        """reset() restores every default."""
        config.DEFAULT_SAMPLE_POINTS = 5
        config.VERBOSE = False
        config.reset()

        assert config.DEFAULT_SAMPLE_POINTS == 1000
        assert config.VERBOSE is True

    def test_temp_config_restores(self):
        """Values are restored when the block exits."""
        with temp_config(STRICT_VALIDATION=False, DEFAULT_SAMPLE_POINTS=3):
            assert config.STRICT_VALIDATION is False
            assert config.DEFAULT_SAMPLE_POINTS == 3

        assert config.STRICT_VALIDATION is True
        assert config.DEFAULT_SAMPLE_POINTS == 1000

    def test_temp_config_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with temp_config(VERBOSE=False):
                raise RuntimeError("boom")

        assert config.VERBOSE is True

    def test_temp_config_invalid_key(self):
        with pytest.raises(AttributeError):
            with temp_config(NOT_A_SETTING=1):
                pass

    def test_repr_sections(self):
        text = repr(config)

        assert text.startswith("EisodosConfig:")
        assert "DEFAULT_INPUT_VALUE" in text

    def test_default_input_value(self):
        """Inputs without a default take the configured value."""
        y, x = hy.make_vars("y", "x")
        with temp_config(DEFAULT_INPUT_VALUE=2.5):
            isys = eisodos.compile_system(eisodos.System([(y, x)]), inputs=[x])

        assert isys.defaults["x"] == 2.5


class TestValidationError:
    """Test strict and lenient validation."""

    def test_strict_raises(self):
        with pytest.raises(ValueError, match="bad"):
            validation_error("bad")

    def test_custom_error_class(self):
        with pytest.raises(TypeError):
            validation_error("bad type", TypeError)

    def test_lenient_warns(self):
        with temp_config(STRICT_VALIDATION=False):
            with pytest.warns(UserWarning, match="bad"):
                validation_error("bad")


class TestTimer:
    """Test the timing context manager."""

    def test_elapsed(self):
        with Timer(verbose=False) as t:
            sum(range(1000))

        assert t.elapsed is not None
        assert t.elapsed >= 0.0

    def test_prints(self, capsys):
        with Timer("Work"):
            pass

        assert capsys.readouterr().out.startswith("Work: ")


class TestVariableHelpers:
    """Test symbolic variable helpers."""

    def test_var_name(self):
        x = hy.make_vars("x")
        assert var_name(x) == "x"

    def test_var_name_rejects_expression(self):
        x, y = hy.make_vars("x", "y")
        with pytest.raises(ValueError, match="single variable"):
            var_name(x + y)

    def test_var_name_rejects_string(self):
        with pytest.raises(TypeError):
            var_name("x")

    def test_find_var(self):
        x, y, z = hy.make_vars("x", "y", "z")

        assert find_var(y, [x, y]) == 1
        assert find_var(z, [x, y]) is None
