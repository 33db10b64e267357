"""
errors.py

Error taxonomy for stagecheck.

Two kinds of errors live here:

- Structural errors (``MalformedTraceError`` and friends) are raised. They
  mean the trace producer handed us something that breaks the data model,
  so no comparison can be trusted.
- Discrepancies (``EmptyTraceError`` and the ``SC2xx`` family) are never
  raised by the checker. They are collected into a ``VerificationFailure``
  so one verification reports every stage and position that broke.

All errors carry an ``error_code`` and format as ``[CODE] message``.
"""

from typing import Any, Dict, List, Optional

from stagecheck.equality import describe_value, structurally_equal


class StageCheckError(Exception):
    """
    Base class for all stagecheck errors.

    Every error carries:
    - a stable error code (``SCxxx``)
    - a plain-language message
    - optional suggestions for the person reading a test report
    """

    def __init__(
        self,
        message: str,
        *,
        suggestions: Optional[List[str]] = None,
        error_code: str = "SC000",
    ):
        self.message = message
        self.suggestions = suggestions or []
        self.error_code = error_code
        super().__init__(self.format())

    def format(self) -> str:
        """Format as single-line error message."""
        return f"[{self.error_code}] {self.message}"

    def format_full(self) -> str:
        """Format as multi-line human-readable error."""
        lines = [self.format()]
        if len(self.suggestions) == 1:
            lines.append(f"  Suggestion: {self.suggestions[0]}")
        elif self.suggestions:
            lines.append("  Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"    - {suggestion}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reports."""
        return {
            "error_code": self.error_code,
            "kind": type(self).__name__,
            "message": self.message,
        }


# === Structural Errors (SC0xx) ===

class MalformedTraceError(StageCheckError):
    """Raised when an input trace violates the trace data model."""

    def __init__(self, message: str, *, error_code: str = "SC001"):
        self.detail = message
        super().__init__(
            message=f"Malformed trace: {message}",
            suggestions=["Fix the code that captures the execution trace"],
            error_code=error_code,
        )


class TraceLoadError(MalformedTraceError):
    """Failed to load a trace from a file or a serialized form."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        source_info = f" from '{source}'" if source else ""
        super().__init__(
            f"failed to load trace{source_info}: {message}",
            error_code="SC002",
        )


class TraceImmutabilityError(StageCheckError):
    """Raised when attempting to mutate a captured trace."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            message=f"Cannot {operation}: trace is immutable after capture",
            error_code="SC003",
        )


# === Discrepancies (SC1xx, SC2xx) ===

class VerificationError(StageCheckError):
    """
    Base class for discrepancies collected by the equivalence checker.

    Discrepancies compare by value so that verifying the same runs twice
    yields equal reports.
    """

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VerificationError):
            return NotImplemented
        return type(self) is type(other) and structurally_equal(vars(self), vars(other))

    def __hash__(self) -> int:
        # Raw outputs may be unhashable, so hash only the location
        return hash((type(self), getattr(self, "stage", None), getattr(self, "position", None)))


class EmptyTraceError(VerificationError):
    """
    No tracked stage was found.

    Either one run's filtered trace is empty (``run`` is set), or a required
    stage name was absent from both runs (``stage`` is set).
    """

    def __init__(self, run: Optional[str] = None, stage: Optional[str] = None):
        self.run = run
        self.stage = stage
        if stage is not None:
            message = f"Stage '{stage}' is missing from both runs"
        else:
            message = f"Run {run or '?'} contains none of the tracked stages"
        super().__init__(
            message=message,
            suggestions=[
                "Check that the tracked stage names match the names the "
                "pipeline records",
            ],
            error_code="SC100",
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["run"] = self.run
        result["stage"] = self.stage
        return result


class StageSetMismatchError(VerificationError):
    """The two runs exercised different sets of tracked stages."""

    def __init__(self, only_in_a: List[str], only_in_b: List[str]):
        self.only_in_a = tuple(sorted(only_in_a))
        self.only_in_b = tuple(sorted(only_in_b))
        parts = []
        if self.only_in_a:
            parts.append(f"only in run A: {', '.join(self.only_in_a)}")
        if self.only_in_b:
            parts.append(f"only in run B: {', '.join(self.only_in_b)}")
        super().__init__(
            message=f"Stage sets differ ({'; '.join(parts)})",
            error_code="SC201",
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["only_in_a"] = list(self.only_in_a)
        result["only_in_b"] = list(self.only_in_b)
        return result


class StepCountMismatchError(VerificationError):
    """A stage ran a different number of steps in each run."""

    def __init__(self, stage: str, count_a: int, count_b: int):
        self.stage = stage
        self.count_a = count_a
        self.count_b = count_b
        super().__init__(
            message=f"Stage '{stage}' has {count_a} step(s) in run A "
                    f"but {count_b} in run B",
            error_code="SC202",
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update(stage=self.stage, count_a=self.count_a, count_b=self.count_b)
        return result


class OutputMismatchError(VerificationError):
    """A step produced a different output on the second run."""

    def __init__(self, stage: str, position: int, a: Any, b: Any):
        self.stage = stage
        self.position = position
        self.a = a
        self.b = b
        super().__init__(
            message=f"Stage '{stage}' step {position} output differs: "
                    f"expected {describe_value(a)}, got {describe_value(b)}",
            suggestions=[
                f"'{stage}' should produce cacheable outputs: make the "
                "output type compare by value and keep it deterministic",
            ],
            error_code="SC203",
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update(
            stage=self.stage,
            position=self.position,
            a=describe_value(self.a),
            b=describe_value(self.b),
        )
        return result


class SpuriousRecomputationError(VerificationError):
    """A step of the second run was recomputed instead of reused."""

    def __init__(self, stage: str, position: int, tag: Any):
        self.stage = stage
        self.position = position
        self.tag = tag
        tag_name = getattr(tag, "value", tag)
        super().__init__(
            message=f"Stage '{stage}' step {position} expected reason "
                    f"'cached' or 'unchanged', got '{tag_name}'",
            error_code="SC204",
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update(
            stage=self.stage,
            position=self.position,
            tag=getattr(self.tag, "value", self.tag),
        )
        return result
