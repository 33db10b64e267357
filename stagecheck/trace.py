"""
trace.py

Execution trace data model.

An ExecutionTrace is the immutable record of one pipeline run: an ordered
sequence of named stages, each holding the ordered steps that stage ran.
Every step carries its output and a ReuseTag saying why that output was
produced on that run.

Design Invariants:
- Immutable after capture
- Stage names are unique within a trace
- Step order within a stage is execution order and is preserved
- Deterministic serialization (sorted keys, content-based hash)
"""

import hashlib
import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Union

from stagecheck.errors import (
    MalformedTraceError,
    TraceImmutabilityError,
    TraceLoadError,
)

_UNSET = object()

# =============================================================================
# ReuseTag - why a step produced its output
# =============================================================================

class ReuseTag(Enum):
    """Reason a step's output was produced on a given run."""
    COMPUTED = "computed"    # Freshly computed, nothing to reuse
    UNCHANGED = "unchanged"  # Input changed but output compared equal
    CACHED = "cached"        # Input unchanged, cached output reused
    MODIFIED = "modified"    # Input changed and output changed

    @property
    def is_reuse(self) -> bool:
        """True if the output was reused rather than produced again."""
        return self in (ReuseTag.CACHED, ReuseTag.UNCHANGED)

    @classmethod
    def parse(cls, value: Union["ReuseTag", str]) -> "ReuseTag":
        """
        Coerce a tag or its string value into a ReuseTag.

        Raises:
            MalformedTraceError: If the value names no known tag
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        valid = ", ".join(tag.value for tag in cls)
        raise MalformedTraceError(f"unknown reuse tag {value!r} (valid: {valid})")


# =============================================================================
# Step and StageResult
# =============================================================================

@dataclass(frozen=True)
class Step:
    """One unit of work within a stage."""
    output: Any
    tag: ReuseTag

    def __post_init__(self):
        if not isinstance(self.tag, ReuseTag):
            raise MalformedTraceError(
                f"step tag must be ReuseTag, got {type(self.tag).__name__}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"output": self.output, "tag": self.tag.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        """Reconstruct from dictionary."""
        if not isinstance(data, dict) or "tag" not in data:
            raise MalformedTraceError(f"step must be a dict with a 'tag', got {data!r}")
        return cls(output=data.get("output"), tag=ReuseTag.parse(data["tag"]))


@dataclass(frozen=True)
class StageResult:
    """A named, ordered sequence of Steps from one stage of one run."""
    name: str
    steps: Tuple[Step, ...] = ()

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise MalformedTraceError(f"stage name must be a non-empty str, got {self.name!r}")
        steps = tuple(self.steps)
        for i, step in enumerate(steps):
            if not isinstance(step, Step):
                raise MalformedTraceError(
                    f"stage '{self.name}' steps[{i}] must be Step, "
                    f"got {type(step).__name__}"
                )
        object.__setattr__(self, "steps", steps)

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def outputs(self) -> Tuple[Any, ...]:
        """Step outputs in execution order."""
        return tuple(step.output for step in self.steps)

    @property
    def tags(self) -> Tuple[ReuseTag, ...]:
        """Step reuse tags in execution order."""
        return tuple(step.tag for step in self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "steps": [step.to_dict() for step in self.steps]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageResult":
        if not isinstance(data, dict):
            raise MalformedTraceError(f"stage must be a dict, got {type(data).__name__}")
        steps = data.get("steps", [])
        if not isinstance(steps, list):
            raise MalformedTraceError(f"stage steps must be a list, got {type(steps).__name__}")
        return cls(
            name=data.get("name", ""),
            steps=tuple(Step.from_dict(s) for s in steps),
        )


# =============================================================================
# ExecutionTrace - one pipeline run
# =============================================================================

class ExecutionTrace:
    """
    Immutable, ordered record of the stages of one pipeline run.

    Example:
        trace = ExecutionTrace([
            StageResult("Parse", (Step("ast", ReuseTag.COMPUTED),)),
            StageResult("Emit", (Step("code", ReuseTag.COMPUTED),)),
        ])

        trace.stage_names      # ("Parse", "Emit")
        trace["Parse"].outputs  # ("ast",)
    """

    __slots__ = ('_stages', '_by_name', '_trace_id', '_frozen')

    def __init__(self, stages: Iterable[StageResult] = ()):
        """
        Create an ExecutionTrace.

        Args:
            stages: StageResult entries in execution order

        Raises:
            MalformedTraceError: If an entry is not a StageResult or a
                stage name repeats
        """
        object.__setattr__(self, '_frozen', False)

        stages = tuple(stages)
        by_name: Dict[str, StageResult] = {}
        for i, stage in enumerate(stages):
            if not isinstance(stage, StageResult):
                raise MalformedTraceError(
                    f"stages[{i}] must be StageResult, got {type(stage).__name__}"
                )
            if stage.name in by_name:
                raise MalformedTraceError(f"duplicate stage name '{stage.name}'")
            by_name[stage.name] = stage

        self._stages = stages
        self._by_name = by_name
        self._trace_id = _UNSET

        object.__setattr__(self, '_frozen', True)

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent mutation after construction."""
        if getattr(self, '_frozen', False):
            raise TraceImmutabilityError(f"set attribute '{name}'")
        object.__setattr__(self, name, value)

    def __delattr__(self, name: str) -> None:
        raise TraceImmutabilityError(f"delete attribute '{name}'")

    # =========================================================================
    # Properties and lookup
    # =========================================================================

    @property
    def stages(self) -> Tuple[StageResult, ...]:
        """Stage results in execution order."""
        return self._stages

    @property
    def stage_names(self) -> Tuple[str, ...]:
        return tuple(stage.name for stage in self._stages)

    @property
    def trace_id(self) -> Optional[str]:
        """
        Deterministic content-based hash of this trace.

        Computed on first access. None when some output cannot be
        serialized to JSON.
        """
        if self._trace_id is _UNSET:
            object.__setattr__(self, '_trace_id', self._compute_trace_id())
        return self._trace_id

    def get_stage(self, name: str) -> Optional[StageResult]:
        """Get a stage by name, or None if the run never reached it."""
        return self._by_name.get(name)

    def __getitem__(self, name: str) -> StageResult:
        return self._by_name[name]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._stages)

    def __iter__(self) -> Iterator[StageResult]:
        return iter(self._stages)

    def _compute_trace_id(self) -> Optional[str]:
        try:
            json_str = json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False)
        except (TypeError, ValueError, RecursionError):
            return None
        return hashlib.sha256(json_str.encode('utf-8')).hexdigest()

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"stages": [stage.to_dict() for stage in self._stages]}

    def to_json(self, *, indent: Optional[int] = None) -> str:
        """
        Serialize to JSON string.

        Raises:
            TypeError: If some step output is not JSON-serializable
        """
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionTrace":
        """
        Reconstruct an ExecutionTrace from its dictionary form.

        Raises:
            MalformedTraceError: If the data does not describe a valid trace
        """
        if not isinstance(data, dict):
            raise MalformedTraceError(f"trace must be a dict, got {type(data).__name__}")
        stages = data.get("stages", [])
        if not isinstance(stages, list):
            raise MalformedTraceError(f"'stages' must be a list, got {type(stages).__name__}")
        return cls(StageResult.from_dict(s) for s in stages)

    @classmethod
    def from_json(cls, json_str: str) -> "ExecutionTrace":
        """
        Reconstruct an ExecutionTrace from a JSON string.

        Raises:
            TraceLoadError: If the string is not valid JSON
        """
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise TraceLoadError(f"invalid JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def load_json(cls, path: Union[str, Path]) -> "ExecutionTrace":
        """
        Load a trace previously written with to_json().

        Raises:
            TraceLoadError: If the file cannot be read, parsed, or does not
                describe a valid trace
        """
        path = Path(path)
        source = str(path)

        if not path.exists():
            raise TraceLoadError(f"file not found: {path}", source=source)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (IOError, json.JSONDecodeError) as e:
            raise TraceLoadError(str(e), source=source) from e

        try:
            return cls.from_dict(data)
        except TraceLoadError:
            raise
        except MalformedTraceError as e:
            raise TraceLoadError(e.detail, source=source) from e

    # =========================================================================
    # Equality and representations
    # =========================================================================

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExecutionTrace):
            return NotImplemented
        return self._stages == other._stages

    def __hash__(self) -> int:
        # Outputs compare with ==, so only the stage names are safe to hash
        return hash(self.stage_names)

    def __repr__(self) -> str:
        return f"ExecutionTrace(stages={list(self.stage_names)!r})"


# =============================================================================
# RunResult - what a pipeline driver hands back
# =============================================================================

@dataclass(frozen=True)
class RunResult:
    """
    Top-level result of one driver run.

    A driver may host several pipelines and return one trace per pipeline.
    Verification works on exactly one of them at a time.
    """
    traces: Tuple[ExecutionTrace, ...]

    def __post_init__(self):
        traces = tuple(self.traces)
        for i, trace in enumerate(traces):
            if not isinstance(trace, ExecutionTrace):
                raise MalformedTraceError(
                    f"traces[{i}] must be ExecutionTrace, got {type(trace).__name__}"
                )
        object.__setattr__(self, "traces", traces)

    def __len__(self) -> int:
        return len(self.traces)
