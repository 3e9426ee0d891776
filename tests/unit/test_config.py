"""Tests for runner configuration."""

import pytest
from pydantic import ValidationError

from case_runner.config import RunnerConfig


def test_defaults() -> None:
    """Explicit tests are off and causes are followed by default."""
    config = RunnerConfig()

    assert config.explicit_option == "off"
    assert config.follow_exception_causes is True


def test_loads_from_json() -> None:
    """Configuration can be parsed from a JSON object."""
    config = RunnerConfig.model_validate_json(
        '{"explicit_option": "on", "follow_exception_causes": false}'
    )

    assert config.explicit_option == "on"
    assert config.follow_exception_causes is False


def test_rejects_unknown_explicit_option() -> None:
    """Only off, on and only are accepted."""
    with pytest.raises(ValidationError):
        RunnerConfig(explicit_option="sometimes")  # type: ignore[arg-type]
