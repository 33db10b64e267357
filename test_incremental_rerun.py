"""
test_incremental_rerun.py

Integration tests for the incremental word-count example.
Proves stagecheck catches real caching bugs in a running pipeline.
"""

import pytest

from examples.incremental_rerun import TRACKED_STAGES, WordCountPipeline
from stagecheck import (
    OutputMismatchError,
    ReuseTag,
    SpuriousRecomputationError,
    VerificationFailure,
    assert_runs_equal,
    extract,
    verify,
)

DOCUMENT = "the quick brown fox\njumps over\nthe lazy dog"


class TestWordCountPipeline:
    """The example pipeline records what it reused."""

    def test_first_run_computes_everything(self):
        trace = WordCountPipeline().run(DOCUMENT)
        assert trace.stage_names == TRACKED_STAGES
        assert all(step.tag is ReuseTag.COMPUTED for stage in trace for step in stage.steps)
        assert trace["Total"].outputs == (9,)

    def test_rerun_uses_cache(self):
        pipeline = WordCountPipeline()
        pipeline.run(DOCUMENT)
        trace = pipeline.run(DOCUMENT)
        assert all(step.tag is ReuseTag.CACHED for stage in trace for step in stage.steps)

    def test_edit_keeping_count_reports_unchanged(self):
        pipeline = WordCountPipeline()
        pipeline.run(DOCUMENT)
        trace = pipeline.run(DOCUMENT.replace("lazy", "sleepy"))
        assert trace["Split"].tags[2] is ReuseTag.MODIFIED
        assert trace["Count"].tags[2] is ReuseTag.UNCHANGED
        assert trace["Total"].tags == (ReuseTag.CACHED,)


class TestVerifyingTheExample:
    """End-to-end verification of two captured runs."""

    def test_unchanged_input_verifies(self):
        pipeline = WordCountPipeline()
        run_a = pipeline.run(DOCUMENT)
        run_b = pipeline.run(DOCUMENT)
        result = assert_runs_equal(run_a, run_b, TRACKED_STAGES)
        assert result.stages == TRACKED_STAGES

    def test_cold_cache_reported(self):
        run_a = WordCountPipeline().run(DOCUMENT)
        run_b = WordCountPipeline().run(DOCUMENT)
        with pytest.raises(VerificationFailure) as exc_info:
            assert_runs_equal(run_a, run_b, TRACKED_STAGES)
        errors = exc_info.value.errors
        assert len(errors) == 7
        assert all(isinstance(e, SpuriousRecomputationError) for e in errors)

    def test_edited_input_reported(self):
        """A real change shows up as an output mismatch plus a modified step."""
        pipeline = WordCountPipeline()
        run_a = pipeline.run(DOCUMENT)
        run_b = pipeline.run(DOCUMENT.replace("lazy", "sleepy"))

        names = ("Split", "Count")
        result = verify(extract(run_a, names), extract(run_b, names), names)
        assert not result
        assert [type(e) for e in result.errors] == [
            OutputMismatchError,
            SpuriousRecomputationError,
        ]
        assert [(e.stage, e.position) for e in result.errors] == [("Split", 2), ("Split", 2)]
        assert result.errors[1].tag is ReuseTag.MODIFIED
