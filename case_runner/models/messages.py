"""Lifecycle messages published while running test cases."""

from collections.abc import Mapping, Sequence
from dataclasses import asdict
from decimal import Decimal
from typing import Any, Self

from pydantic import Field, NonNegativeInt, model_validator

from case_runner.faults import FlattenedFault
from case_runner.models.base import Model
from case_runner.models.summary import RunSummary
from case_runner.models.test_case import TestCase


class TestClassMessage(Model):
    """Base for messages correlated with a test class."""

    __test__ = False

    assembly_unique_id: str
    test_collection_unique_id: str
    test_class_unique_id: str | None = None


class TestCaseMessage(TestClassMessage):
    """Base for messages correlated with a test case."""

    __test__ = False

    test_method_unique_id: str | None = None
    test_case_unique_id: str

    @staticmethod
    def identity(test_case: TestCase) -> Mapping[str, str | None]:
        """Return the identity fields shared by every message of a test case."""
        return {
            "assembly_unique_id": test_case.assembly_unique_id,
            "test_collection_unique_id": test_case.test_collection_unique_id,
            "test_class_unique_id": test_case.test_class_unique_id,
            "test_method_unique_id": test_case.test_method_unique_id,
            "test_case_unique_id": test_case.test_case_unique_id,
        }


class ExecutionSummaryMetadata(Model):
    """Counts and timing reported when a unit of tests finishes."""

    execution_time: Decimal = Field(..., ge=0, description="Seconds spent executing")
    tests_failed: NonNegativeInt
    tests_not_run: NonNegativeInt
    tests_skipped: NonNegativeInt
    tests_total: NonNegativeInt

    @staticmethod
    def summary_fields(summary: RunSummary) -> Mapping[str, Any]:
        """Map a run summary onto the execution summary fields."""
        return {
            "execution_time": summary.time,
            "tests_failed": summary.failed,
            "tests_not_run": summary.not_run,
            "tests_skipped": summary.skipped,
            "tests_total": summary.total,
        }


class ErrorMetadata(Model):
    """Flattened exception tree, stored as four parallel sequences.

    Entry ``i`` describes one exception. ``exception_parent_indices[i]`` is the
    index of its parent entry, or ``-1`` for the root.
    """

    exception_types: Sequence[str | None]
    messages: Sequence[str]
    stack_traces: Sequence[str | None]
    exception_parent_indices: Sequence[int]

    @model_validator(mode="after")
    def check_parallel_sequences(self) -> Self:
        lengths = {
            len(self.exception_types),
            len(self.messages),
            len(self.stack_traces),
            len(self.exception_parent_indices),
        }
        if len(lengths) != 1:
            raise ValueError("error metadata sequences must have equal lengths")
        if not self.exception_parent_indices:
            raise ValueError("error metadata must describe at least one exception")

        for index, parent in enumerate(self.exception_parent_indices):
            if index == 0 and parent != -1:
                raise ValueError("the first exception must be the root (parent -1)")
            if index > 0 and not 0 <= parent < index:
                raise ValueError(
                    f"parent index {parent} at position {index} must refer to an "
                    "earlier entry"
                )
        return self


class TestCaseStarting(TestCaseMessage):
    """A test case is about to start executing."""

    __test__ = False

    explicit: bool
    skip_reason: str | None = None
    source_file_path: str | None = None
    source_line_number: int | None = None
    test_case_display_name: str
    test_class_name: str | None = None
    test_class_namespace: str | None = None
    test_class_simple_name: str | None = None
    test_method_name: str | None = None
    traits: Mapping[str, Sequence[str]] = Field(default_factory=dict)

    @classmethod
    def from_test_case(cls, test_case: TestCase) -> Self:
        """Build the starting message for a test case."""
        return cls(
            **cls.identity(test_case),
            explicit=test_case.explicit,
            skip_reason=test_case.skip_reason,
            source_file_path=test_case.source_file_path,
            source_line_number=test_case.source_line_number,
            test_case_display_name=test_case.test_case_display_name,
            test_class_name=test_case.test_class_name,
            test_class_namespace=test_case.test_class_namespace,
            test_class_simple_name=test_case.test_class_simple_name,
            test_method_name=test_case.test_method_name,
            traits=test_case.traits,
        )


class TestCaseFinished(TestCaseMessage, ExecutionSummaryMetadata):
    """A test case has finished executing."""

    __test__ = False

    @classmethod
    def from_summary(cls, test_case: TestCase, summary: RunSummary) -> Self:
        """Build the finished message for a test case and its run summary."""
        return cls(**cls.identity(test_case), **cls.summary_fields(summary))


class TestCaseCleanupFailure(TestCaseMessage, ErrorMetadata):
    """A test case hook failed after the test case itself had finished."""

    __test__ = False

    @classmethod
    def from_fault(cls, test_case: TestCase, fault: FlattenedFault) -> Self:
        """Build the cleanup failure message for a flattened fault."""
        return cls(**cls.identity(test_case), **asdict(fault))


class ErrorMessage(TestCaseMessage, ErrorMetadata):
    """An error that could not be reported through any lifecycle stage."""

    @classmethod
    def from_fault(cls, test_case: TestCase, fault: FlattenedFault) -> Self:
        """Build the error message for a flattened fault."""
        return cls(**cls.identity(test_case), **asdict(fault))


class TestClassFinished(TestClassMessage, ExecutionSummaryMetadata):
    """All test cases of a test class have finished executing."""

    __test__ = False

    @classmethod
    def from_summary(
        cls,
        *,
        assembly_unique_id: str,
        test_collection_unique_id: str,
        test_class_unique_id: str | None,
        summary: RunSummary,
    ) -> Self:
        """Build the finished message for a test class and its aggregate summary."""
        return cls(
            assembly_unique_id=assembly_unique_id,
            test_collection_unique_id=test_collection_unique_id,
            test_class_unique_id=test_class_unique_id,
            **cls.summary_fields(summary),
        )

