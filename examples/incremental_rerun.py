"""
incremental_rerun.py

A toy incremental pipeline checked with stagecheck.

The pipeline counts words in a document in three stages:

- Split: one step per line, output is the line's words
- Count: one step per line, output is the line's word count
- Total: one step, output is the document's word count

Each stage memoizes on its input. A step reports CACHED when its input was
seen before, UNCHANGED when the input is new but the output matches the
previous run, MODIFIED when the output differs, and COMPUTED on first run.

Run it directly to see a passing and a failing verification.
"""

from typing import Any, Callable, Dict, List, Optional

from stagecheck import (
    ExecutionTrace,
    ReuseTag,
    TraceRecorder,
    VerificationFailure,
    assert_runs_equal,
)

TRACKED_STAGES = ("Split", "Count", "Total")


class MemoStage:
    """One pipeline stage with a per-position memo of (input, output)."""

    def __init__(self, name: str, fn: Callable[[Any], Any]):
        self.name = name
        self.fn = fn
        self._memo: Dict[int, Any] = {}

    def run(self, position: int, value: Any, recorder: TraceRecorder) -> Any:
        previous = self._memo.get(position)
        if previous is not None and previous[0] == value:
            output, tag = previous[1], ReuseTag.CACHED
        else:
            output = self.fn(value)
            if previous is None:
                tag = ReuseTag.COMPUTED
            elif previous[1] == output:
                tag = ReuseTag.UNCHANGED
            else:
                tag = ReuseTag.MODIFIED
        self._memo[position] = (value, output)
        recorder.record(self.name, output, tag)
        return output


class WordCountPipeline:
    """Incremental word counter whose caches survive between runs."""

    def __init__(self, split: Optional[Callable[[str], List[str]]] = None):
        self.split = MemoStage("Split", split or (lambda line: line.split()))
        self.count = MemoStage("Count", len)
        self.total = MemoStage("Total", sum)

    def run(self, document: str) -> ExecutionTrace:
        recorder = TraceRecorder()
        counts = []
        for i, line in enumerate(document.splitlines()):
            words = self.split.run(i, line, recorder)
            counts.append(self.count.run(i, tuple(words), recorder))
        self.total.run(0, tuple(counts), recorder)
        return recorder.build()


def main():
    document = "the quick brown fox\njumps over\nthe lazy dog"

    pipeline = WordCountPipeline()
    run_a = pipeline.run(document)
    run_b = pipeline.run(document)
    result = assert_runs_equal(run_a, run_b, TRACKED_STAGES)
    print(f"Unchanged input: OK ({', '.join(result.stages)})")

    # A fresh pipeline has no cache, so every step of its run is recomputed
    run_c = WordCountPipeline().run(document)
    try:
        assert_runs_equal(run_a, run_c, TRACKED_STAGES)
    except VerificationFailure as failure:
        print()
        print(failure.to_text())


if __name__ == "__main__":
    main()
