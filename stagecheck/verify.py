"""
verify.py

Equivalence Checker for two runs of a staged incremental pipeline.

Run A is the baseline. Run B is a re-run on input the pipeline should see
as unchanged. For every tracked stage the checker asserts:

1. both runs tracked at least one stage
2. both runs tracked the same stages
3. each stage ran the same number of steps
4. each step produced a structurally equal output
5. each step of run B was reused (Cached or Unchanged), never recomputed

Checks 2-5 accumulate: a single call reports every discrepancy found.
Check 1 aborts, since nothing downstream would be meaningful.

Example:
    result = verify(extract(run_a, names), extract(run_b, names), names)
    if not result:
        print(result.to_text())

    # Or, inside a test:
    assert_runs_equal(run_a, run_b, names)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from stagecheck.equality import structurally_equal
from stagecheck.errors import (
    EmptyTraceError,
    MalformedTraceError,
    OutputMismatchError,
    SpuriousRecomputationError,
    StageSetMismatchError,
    StepCountMismatchError,
    VerificationError,
)
from stagecheck.extract import extract
from stagecheck.trace import ReuseTag, Step

logger = logging.getLogger(__name__)

# Tags a step of the second run may carry
REUSE_TAGS = frozenset({ReuseTag.CACHED, ReuseTag.UNCHANGED})


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class Ok:
    """Both runs are equivalent and the second run reused every step."""
    stages: Tuple[str, ...] = ()

    is_ok = True

    @property
    def errors(self) -> Tuple[VerificationError, ...]:
        return ()

    def __bool__(self) -> bool:
        return True

    def raise_for_failure(self) -> None:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "stages": list(self.stages), "errors": []}


class VerificationFailure(AssertionError):
    """
    Aggregated report of every discrepancy between two runs.

    Returned (not raised) by verify(). It is an AssertionError so a test
    harness can raise it directly and get the full report as the message.
    """

    is_ok = False

    def __init__(self, errors: Sequence[VerificationError]):
        self.errors: Tuple[VerificationError, ...] = tuple(errors)
        super().__init__(self.to_text())

    def __bool__(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VerificationFailure):
            return NotImplemented
        return self.errors == other.errors

    def __hash__(self) -> int:
        return hash(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def errors_of(self, kind: type) -> Tuple[VerificationError, ...]:
        """Errors of one kind, in report order."""
        return tuple(e for e in self.errors if isinstance(e, kind))

    def raise_for_failure(self) -> None:
        raise self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "errors": [error.to_dict() for error in self.errors],
        }

    def to_text(self) -> str:
        """Plain-text report, one line per discrepancy."""
        lines = [f"Runs are not equivalent: {len(self.errors)} discrepancy(ies)"]
        for i, error in enumerate(self.errors, 1):
            lines.append(f"  {i}. {error.format()}")
        return "\n".join(lines)

    def to_markdown(self) -> str:
        lines = ["# Run Equivalence Report", ""]
        lines.append(f"**Discrepancies:** {len(self.errors)}")
        lines.append("")
        lines.append("| Code | Stage | Position | Detail |")
        lines.append("|---|---|---|---|")
        for error in self.errors:
            stage = getattr(error, "stage", None) or "-"
            position = getattr(error, "position", None)
            position = "-" if position is None else str(position)
            detail = error.message.replace("|", "\\|")
            lines.append(f"| {error.error_code} | {stage} | {position} | {detail} |")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"VerificationFailure(errors={len(self.errors)})"


VerificationResult = Union[Ok, VerificationFailure]


# =============================================================================
# Checks
# =============================================================================

def _check_steps(run: str, filtered: Mapping[str, Sequence[Step]]) -> None:
    """Reject filtered traces that were not built from Step records."""
    for name, steps in filtered.items():
        if isinstance(steps, (str, bytes)):
            raise MalformedTraceError(
                f"run {run} stage '{name}' steps must be a sequence of Step, got str"
            )
        for i, step in enumerate(steps):
            if not isinstance(step, Step):
                raise MalformedTraceError(
                    f"run {run} stage '{name}' steps[{i}] must be Step, "
                    f"got {type(step).__name__}"
                )


def _check_non_empty(
    filtered_a: Mapping[str, Sequence[Step]],
    filtered_b: Mapping[str, Sequence[Step]],
    stage_names: Optional[Tuple[str, ...]],
    require_all: bool,
) -> List[VerificationError]:
    errors: List[VerificationError] = []
    if not filtered_a:
        errors.append(EmptyTraceError(run="A"))
    if not filtered_b:
        errors.append(EmptyTraceError(run="B"))
    if require_all and stage_names:
        for name in stage_names:
            if name not in filtered_a and name not in filtered_b:
                errors.append(EmptyTraceError(stage=name))
    return errors


def _check_stage_sets(
    filtered_a: Mapping[str, Sequence[Step]],
    filtered_b: Mapping[str, Sequence[Step]],
) -> List[VerificationError]:
    only_in_a = [name for name in filtered_a if name not in filtered_b]
    only_in_b = [name for name in filtered_b if name not in filtered_a]
    if only_in_a or only_in_b:
        return [StageSetMismatchError(only_in_a, only_in_b)]
    return []


def _check_stage(
    name: str,
    steps_a: Sequence[Step],
    steps_b: Sequence[Step],
) -> List[VerificationError]:
    errors: List[VerificationError] = []

    if len(steps_a) != len(steps_b):
        errors.append(StepCountMismatchError(name, len(steps_a), len(steps_b)))

    for position, (step_a, step_b) in enumerate(zip(steps_a, steps_b)):
        if not structurally_equal(step_a.output, step_b.output):
            errors.append(OutputMismatchError(name, position, step_a.output, step_b.output))

    for position, step_b in enumerate(steps_b):
        if step_b.tag not in REUSE_TAGS:
            errors.append(SpuriousRecomputationError(name, position, step_b.tag))

    return errors


# =============================================================================
# Public API
# =============================================================================

def verify(
    filtered_a: Mapping[str, Sequence[Step]],
    filtered_b: Mapping[str, Sequence[Step]],
    stage_names: Optional[Iterable[str]] = None,
    *,
    require_all: bool = False,
) -> VerificationResult:
    """
    Check that two filtered traces describe equivalent, fully-reused runs.

    Args:
        filtered_a: Tracked stages of the baseline run (see extract())
        filtered_b: Tracked stages of the re-run
        stage_names: The tracked stage names the traces were filtered by
        require_all: If True, every name in stage_names must appear in at
            least one run

    Returns:
        Ok if every check passes, otherwise a VerificationFailure listing
        every discrepancy

    Raises:
        MalformedTraceError: If a filtered trace holds something other
            than Step entries
    """
    names = tuple(stage_names) if stage_names is not None else None
    _check_steps("A", filtered_a)
    _check_steps("B", filtered_b)

    errors = _check_non_empty(filtered_a, filtered_b, names, require_all)
    if errors:
        logger.warning("Verification aborted: %s", "; ".join(e.message for e in errors))
        return VerificationFailure(errors)

    errors = _check_stage_sets(filtered_a, filtered_b)
    common = [name for name in filtered_a if name in filtered_b]
    for name in common:
        errors.extend(_check_stage(name, filtered_a[name], filtered_b[name]))

    if errors:
        logger.warning(
            "Verification failed with %d discrepancy(ies) across %d stage(s)",
            len(errors), len(common),
        )
        return VerificationFailure(errors)

    logger.debug("Verified %d stage(s): outputs equal, all reused", len(common))
    return Ok(stages=tuple(common))


def assert_runs_equal(
    run_a: Any,
    run_b: Any,
    stage_names: Iterable[str],
    *,
    require_all: bool = False,
) -> Ok:
    """
    Extract both runs, verify them, and raise on any discrepancy.

    Args:
        run_a: Baseline run (ExecutionTrace or single-trace RunResult)
        run_b: Re-run on unchanged input
        stage_names: Names of the stages to compare
        require_all: See verify()

    Returns:
        Ok when the runs are equivalent

    Raises:
        VerificationFailure: Listing every discrepancy found
        MalformedTraceError: If either run's trace is malformed
    """
    if isinstance(stage_names, str):
        raise TypeError("stage_names must be a collection of names, not a str")
    names = tuple(stage_names)

    result = verify(
        extract(run_a, names),
        extract(run_b, names),
        names,
        require_all=require_all,
    )
    if isinstance(result, VerificationFailure):
        raise result
    return result
