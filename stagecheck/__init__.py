"""
stagecheck - Run-to-run equivalence checks for incremental pipelines
=====================================================================

stagecheck verifies that a staged incremental pipeline is cache-correct:
re-run on unchanged input, every tracked stage must reproduce exactly the
same outputs, and every step must report that it was reused rather than
recomputed.

What's Public
-------------
Everything exported in ``__all__``:

- **Trace model**: ExecutionTrace, StageResult, Step, ReuseTag, RunResult
- **Capture**: TraceRecorder
- **Checks**: extract, verify, assert_runs_equal, Ok, VerificationFailure
- **Errors**: structural errors (raised) and discrepancies (collected)

Example
-------
::

    from stagecheck import TraceRecorder, ReuseTag, assert_runs_equal

    tracked = {"Parse", "Transform", "Emit"}
    run_a = capture(pipeline, source)   # harness-specific
    run_b = capture(pipeline, source)
    assert_runs_equal(run_a, run_b, tracked)
"""

__version__ = "1.0.0"

__all__ = [
    # --- Package Metadata ---
    "__version__",

    # --- Trace Model ---
    "ExecutionTrace",
    "ReuseTag",
    "RunResult",
    "StageResult",
    "Step",
    "TraceRecorder",

    # --- Checks ---
    "FilteredTrace",
    "Ok",
    "REUSE_TAGS",
    "VerificationFailure",
    "VerificationResult",
    "assert_runs_equal",
    "describe_value",
    "extract",
    "structurally_equal",
    "verify",

    # --- Errors ---
    "StageCheckError",
    "MalformedTraceError",
    "TraceLoadError",
    "TraceImmutabilityError",
    "VerificationError",
    "EmptyTraceError",
    "StageSetMismatchError",
    "StepCountMismatchError",
    "OutputMismatchError",
    "SpuriousRecomputationError",
]

from stagecheck.equality import describe_value, structurally_equal
from stagecheck.errors import (
    EmptyTraceError,
    MalformedTraceError,
    OutputMismatchError,
    SpuriousRecomputationError,
    StageCheckError,
    StageSetMismatchError,
    StepCountMismatchError,
    TraceImmutabilityError,
    TraceLoadError,
    VerificationError,
)
from stagecheck.extract import FilteredTrace, extract
from stagecheck.recorder import TraceRecorder
from stagecheck.trace import ExecutionTrace, ReuseTag, RunResult, StageResult, Step
from stagecheck.verify import (
    REUSE_TAGS,
    Ok,
    VerificationFailure,
    VerificationResult,
    assert_runs_equal,
    verify,
)
