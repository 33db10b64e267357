"""
recorder.py

TraceRecorder: capture an ExecutionTrace while a pipeline runs.

The pipeline itself lives elsewhere. A harness adapter hooks into it and
calls record() once per step; build() then seals the capture into an
immutable ExecutionTrace.
"""

from typing import Any, Dict, List, Union

from stagecheck.errors import TraceImmutabilityError
from stagecheck.trace import ExecutionTrace, ReuseTag, StageResult, Step


class TraceRecorder:
    """
    Mutable builder for one run's ExecutionTrace.

    Example:
        recorder = TraceRecorder()
        recorder.record("Parse", ast, ReuseTag.COMPUTED)
        recorder.record("Emit", code, "cached")
        trace = recorder.build()
    """

    def __init__(self):
        self._steps: Dict[str, List[Step]] = {}
        self._sealed = False

    def _ensure_open(self, operation: str) -> None:
        if self._sealed:
            raise TraceImmutabilityError(operation)

    def stage(self, name: str) -> "TraceRecorder":
        """Declare a stage that may end up with no steps."""
        self._ensure_open(f"declare stage '{name}'")
        self._steps.setdefault(name, [])
        return self

    def record(self, stage: str, output: Any, tag: Union[ReuseTag, str]) -> Step:
        """
        Append one step to a stage, creating the stage on first use.

        Raises:
            MalformedTraceError: If tag is not a known reuse tag
            TraceImmutabilityError: If the recorder was already built
        """
        self._ensure_open(f"record step for stage '{stage}'")
        step = Step(output=output, tag=ReuseTag.parse(tag))
        self._steps.setdefault(stage, []).append(step)
        return step

    @property
    def sealed(self) -> bool:
        return self._sealed

    def build(self) -> ExecutionTrace:
        """Seal the recorder and return the captured trace."""
        self._sealed = True
        return ExecutionTrace(
            StageResult(name, tuple(steps)) for name, steps in self._steps.items()
        )
