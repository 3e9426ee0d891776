"""Configuration for test case runs."""

from pydantic import BaseModel

from case_runner.models.test_case import ExplicitOption


class RunnerConfig(BaseModel):
    """Configuration applied to every test case run by a runner."""

    explicit_option: ExplicitOption = "off"
    # Descend into ``raise ... from ...`` causes when flattening faults
    follow_exception_causes: bool = True
