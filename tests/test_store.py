"""Tests for the JSON file result store."""

from datetime import datetime, timezone

from mcpeval.models import EvalMetrics, EvalPrompt, EvalResult, Rubric, Verdict
from mcpeval.scheduler import summarize
from mcpeval.store import ResultStore, file_stamp


def _result(pid="p1", model="gpt-4o", passed=True):
    return EvalResult(
        id=pid,
        timestamp="2026-01-01T00:00:00+00:00",
        prompt=EvalPrompt(id=pid, goal="g", rubric=Rubric(criteria="c")),
        provider="openai",
        model=model,
        records=[],
        validation=Verdict(passed=passed, score=1.0 if passed else 0.0, reasoning="r"),
        metrics=EvalMetrics(start_time=0.0, end_time=1.0, latency_ms=1000),
    )


class TestResultStore:
    def test_file_stamp_is_path_safe(self):
        stamp = file_stamp(datetime(2026, 1, 2, 3, 4, 5, 600000, tzinfo=timezone.utc))
        assert stamp == "2026-01-02T03-04-05-600000-00-00"

    def test_save_result_name(self, tmp_path):
        path = ResultStore(tmp_path).save_result(_result(model="org/model:1"))
        assert path.name.startswith("p1-openai-org_model_1-")
        assert path.suffix == ".json"

    def test_creates_directory(self, tmp_path):
        store = ResultStore(tmp_path / "nested" / "results")
        store.save_result(_result())
        assert (tmp_path / "nested" / "results").is_dir()

    def test_summary_round_trip(self, tmp_path):
        store = ResultStore(tmp_path)
        summary = summarize([_result("a"), _result("b", passed=False)], {"concurrency": 2})
        path = store.save_summary(summary)

        loaded = store.load_summary(path)
        assert loaded.total == 2
        assert loaded.passed == 1
        assert loaded.results[1].validation.passed is False
        assert loaded.metadata == {"concurrency": 2}
        assert store.latest_summary().total == 2

    def test_list_empty(self, tmp_path):
        store = ResultStore(tmp_path / "missing")
        assert store.list_summaries() == []
        assert store.latest_summary() is None
