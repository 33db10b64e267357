"""
test_trace.py

Unit tests for the stagecheck trace model.

Tests prove:
- ReuseTag is a closed set with a reuse classification
- Step and StageResult validate their fields
- ExecutionTrace rejects duplicate stage names and is immutable
- Deterministic serialization and loading
"""

import json

import pytest

from stagecheck.errors import (
    MalformedTraceError,
    TraceImmutabilityError,
    TraceLoadError,
)
from stagecheck.trace import (
    ExecutionTrace,
    ReuseTag,
    RunResult,
    StageResult,
    Step,
)


# =============================================================================
# Helper Fixtures
# =============================================================================

@pytest.fixture
def parse_stage():
    """Stage with two computed steps."""
    return StageResult("Parse", (
        Step({"kind": "class", "name": "A"}, ReuseTag.COMPUTED),
        Step({"kind": "class", "name": "B"}, ReuseTag.COMPUTED),
    ))


@pytest.fixture
def emit_stage():
    """Stage with one cached step."""
    return StageResult("Emit", (Step("source", ReuseTag.CACHED),))


@pytest.fixture
def trace(parse_stage, emit_stage):
    return ExecutionTrace([parse_stage, emit_stage])


# =============================================================================
# ReuseTag Tests
# =============================================================================

class TestReuseTag:
    """Tests for the closed reuse tag set."""

    def test_closed_set(self):
        """Exactly four tags exist."""
        assert {tag.value for tag in ReuseTag} == {
            "computed", "unchanged", "cached", "modified",
        }

    def test_is_reuse(self):
        """Only cached and unchanged count as reuse."""
        assert ReuseTag.CACHED.is_reuse
        assert ReuseTag.UNCHANGED.is_reuse
        assert not ReuseTag.COMPUTED.is_reuse
        assert not ReuseTag.MODIFIED.is_reuse

    def test_parse_accepts_tag(self):
        assert ReuseTag.parse(ReuseTag.CACHED) is ReuseTag.CACHED

    def test_parse_accepts_string_any_case(self):
        assert ReuseTag.parse("Cached") is ReuseTag.CACHED
        assert ReuseTag.parse(" unchanged ") is ReuseTag.UNCHANGED

    def test_parse_rejects_unknown(self):
        with pytest.raises(MalformedTraceError) as exc_info:
            ReuseTag.parse("removed")
        assert "removed" in str(exc_info.value)
        assert exc_info.value.error_code == "SC001"

    def test_parse_rejects_non_string(self):
        with pytest.raises(MalformedTraceError):
            ReuseTag.parse(3)


# =============================================================================
# Step and StageResult Tests
# =============================================================================

class TestStep:
    """Tests for Step."""

    def test_create(self):
        step = Step([1, 2], ReuseTag.COMPUTED)
        assert step.output == [1, 2]
        assert step.tag is ReuseTag.COMPUTED

    def test_rejects_string_tag(self):
        """Tags must be ReuseTag members, not raw strings."""
        with pytest.raises(MalformedTraceError):
            Step("x", "cached")

    def test_frozen(self):
        step = Step("x", ReuseTag.CACHED)
        with pytest.raises(AttributeError):
            step.output = "y"

    def test_dict_form(self):
        step = Step({"a": 1}, ReuseTag.UNCHANGED)
        assert step.to_dict() == {"output": {"a": 1}, "tag": "unchanged"}
        assert Step.from_dict(step.to_dict()) == step

    def test_from_dict_requires_tag(self):
        with pytest.raises(MalformedTraceError):
            Step.from_dict({"output": 1})


class TestStageResult:
    """Tests for StageResult."""

    def test_steps_become_tuple(self):
        stage = StageResult("Parse", [Step(1, ReuseTag.COMPUTED)])
        assert isinstance(stage.steps, tuple)
        assert len(stage) == 1

    def test_outputs_and_tags_keep_order(self, parse_stage):
        assert parse_stage.outputs == (
            {"kind": "class", "name": "A"},
            {"kind": "class", "name": "B"},
        )
        assert parse_stage.tags == (ReuseTag.COMPUTED, ReuseTag.COMPUTED)

    def test_empty_name_rejected(self):
        with pytest.raises(MalformedTraceError):
            StageResult("   ")

    def test_non_step_rejected(self):
        with pytest.raises(MalformedTraceError) as exc_info:
            StageResult("Parse", ("not a step",))
        assert "steps[0]" in str(exc_info.value)

    def test_no_steps_allowed(self):
        assert len(StageResult("Idle")) == 0


# =============================================================================
# ExecutionTrace Tests
# =============================================================================

class TestExecutionTrace:
    """Tests for ExecutionTrace."""

    def test_stage_order_preserved(self, trace):
        assert trace.stage_names == ("Parse", "Emit")
        assert [stage.name for stage in trace] == ["Parse", "Emit"]

    def test_lookup(self, trace, emit_stage):
        assert trace["Emit"] == emit_stage
        assert trace.get_stage("Emit") == emit_stage
        assert trace.get_stage("Missing") is None
        assert "Parse" in trace
        assert "Missing" not in trace
        assert len(trace) == 2

    def test_duplicate_stage_rejected(self, parse_stage):
        with pytest.raises(MalformedTraceError) as exc_info:
            ExecutionTrace([parse_stage, parse_stage])
        assert "duplicate stage name 'Parse'" in str(exc_info.value)

    def test_non_stage_rejected(self):
        with pytest.raises(MalformedTraceError):
            ExecutionTrace([{"name": "Parse"}])

    def test_immutable(self, trace):
        with pytest.raises(TraceImmutabilityError):
            trace._stages = ()
        with pytest.raises(TraceImmutabilityError):
            del trace._stages

    def test_empty_trace(self):
        trace = ExecutionTrace()
        assert len(trace) == 0
        assert trace.stage_names == ()

    def test_equality(self, parse_stage, emit_stage):
        a = ExecutionTrace([parse_stage, emit_stage])
        b = ExecutionTrace([parse_stage, emit_stage])
        assert a == b
        assert hash(a) == hash(b)
        assert a != ExecutionTrace([emit_stage, parse_stage])

    def test_equal_traces_hash_equal(self):
        a = ExecutionTrace([StageResult("S", (Step(1, ReuseTag.COMPUTED),))])
        b = ExecutionTrace([StageResult("S", (Step(1.0, ReuseTag.COMPUTED),))])
        c = ExecutionTrace([StageResult("S", (Step(True, ReuseTag.COMPUTED),))])
        assert a == b == c
        assert hash(a) == hash(b) == hash(c)
        assert len({a, b, c}) == 1

    def test_hashable_with_unhashable_outputs(self):
        trace = ExecutionTrace([StageResult("S", (Step([{"k": 1}], ReuseTag.COMPUTED),))])
        assert trace in {trace}

    def test_trace_id_deterministic(self, parse_stage, emit_stage):
        a = ExecutionTrace([parse_stage, emit_stage])
        b = ExecutionTrace([parse_stage, emit_stage])
        assert a.trace_id == b.trace_id
        assert len(a.trace_id) == 64

    def test_trace_id_none_for_opaque_outputs(self):
        trace = ExecutionTrace([StageResult("S", (Step(object(), ReuseTag.COMPUTED),))])
        assert trace.trace_id is None

    def test_trace_id_computed_on_access(self):
        nested = []
        for _ in range(100000):
            nested = [nested]
        trace = ExecutionTrace([StageResult("S", (Step(nested, ReuseTag.COMPUTED),))])
        assert trace.stage_names == ("S",)
        assert trace.trace_id is None

    def test_trace_id_cached(self, trace):
        assert trace.trace_id is trace.trace_id

    def test_repr(self, trace):
        assert repr(trace) == "ExecutionTrace(stages=['Parse', 'Emit'])"


# =============================================================================
# Serialization Tests
# =============================================================================

class TestSerialization:
    """Tests for dict/JSON forms and file loading."""

    def test_to_dict_shape(self, emit_stage):
        trace = ExecutionTrace([emit_stage])
        assert trace.to_dict() == {
            "stages": [{"name": "Emit", "steps": [{"output": "source", "tag": "cached"}]}],
        }

    def test_json_is_sorted(self, trace):
        data = json.loads(trace.to_json())
        assert trace.to_json() == json.dumps(data, sort_keys=True, ensure_ascii=False)

    def test_from_json(self, trace):
        assert ExecutionTrace.from_json(trace.to_json()) == trace

    def test_from_json_invalid(self):
        with pytest.raises(TraceLoadError):
            ExecutionTrace.from_json("{not json")

    def test_from_dict_duplicate_stage(self):
        data = {"stages": [{"name": "A", "steps": []}, {"name": "A", "steps": []}]}
        with pytest.raises(MalformedTraceError):
            ExecutionTrace.from_dict(data)

    def test_from_dict_bad_stages(self):
        with pytest.raises(MalformedTraceError):
            ExecutionTrace.from_dict({"stages": "Parse"})

    def test_load_json(self, trace, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(trace.to_json(indent=2), encoding="utf-8")
        assert ExecutionTrace.load_json(path) == trace

    def test_load_json_missing_file(self, tmp_path):
        path = tmp_path / "missing.json"
        with pytest.raises(TraceLoadError) as exc_info:
            ExecutionTrace.load_json(path)
        assert exc_info.value.source == str(path)
        assert exc_info.value.error_code == "SC002"

    def test_load_json_bad_tag(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({
            "stages": [{"name": "A", "steps": [{"output": 1, "tag": "fresh"}]}],
        }), encoding="utf-8")
        with pytest.raises(TraceLoadError) as exc_info:
            ExecutionTrace.load_json(path)
        assert "fresh" in str(exc_info.value)


# =============================================================================
# RunResult Tests
# =============================================================================

class TestRunResult:
    """Tests for RunResult."""

    def test_holds_traces(self, trace):
        result = RunResult([trace])
        assert result.traces == (trace,)
        assert len(result) == 1

    def test_rejects_non_trace(self):
        with pytest.raises(MalformedTraceError):
            RunResult(["trace"])
