"""
extract.py

Trace Extractor: project a run's trace down to the stages a caller tracks.
"""

import logging
from typing import Dict, Iterable, Tuple, Union

from stagecheck.errors import MalformedTraceError
from stagecheck.trace import ExecutionTrace, RunResult, StageResult, Step

logger = logging.getLogger(__name__)

FilteredTrace = Dict[str, Tuple[Step, ...]]


def _single_trace(trace: Union[ExecutionTrace, RunResult, Iterable[StageResult]]):
    """Unwrap the one trace a RunResult is allowed to hold."""
    if isinstance(trace, RunResult):
        if len(trace) != 1:
            raise MalformedTraceError(
                f"expected exactly one run result to extract, got {len(trace)}"
            )
        return trace.traces[0]
    if isinstance(trace, (str, bytes)) or trace is None:
        raise MalformedTraceError(f"cannot extract stages from {type(trace).__name__}")
    return trace


def extract(
    trace: Union[ExecutionTrace, RunResult, Iterable[StageResult]],
    stage_names: Iterable[str],
) -> FilteredTrace:
    """
    Keep only the tracked stages of one run.

    Not every run exercises every stage, so ``stage_names`` may name stages
    the trace never reached. Those are simply absent from the result; the
    equivalence checker decides whether that matters.

    Args:
        trace: An ExecutionTrace, a RunResult holding exactly one trace, or
            any iterable of StageResult
        stage_names: Names of the stages to keep

    Returns:
        Mapping of stage name to its steps, in trace order

    Raises:
        MalformedTraceError: If the trace repeats a stage name, holds
            something other than StageResult, or a RunResult does not hold
            exactly one trace
        TypeError: If stage_names is a single string
    """
    if isinstance(stage_names, str):
        raise TypeError("stage_names must be a collection of names, not a str")
    wanted = frozenset(stage_names)

    filtered: FilteredTrace = {}
    seen = set()
    dropped = 0

    try:
        stages = iter(_single_trace(trace))
    except TypeError:
        raise MalformedTraceError(
            f"cannot extract stages from {type(trace).__name__}"
        ) from None

    for stage in stages:
        if not isinstance(stage, StageResult):
            raise MalformedTraceError(
                f"trace entries must be StageResult, got {type(stage).__name__}"
            )
        if stage.name in seen:
            raise MalformedTraceError(f"duplicate stage name '{stage.name}'")
        seen.add(stage.name)

        if stage.name in wanted:
            filtered[stage.name] = stage.steps
        else:
            dropped += 1

    logger.debug(
        "Extracted %d tracked stage(s), dropped %d untracked",
        len(filtered), dropped,
    )
    return filtered
