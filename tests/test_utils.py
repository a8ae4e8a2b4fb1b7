import pytest

import utils
from models import EngineSettings, OperationSpec, PipelineRequest, SourceSpec
from sequence import UnboundedMaterialization, get_materialize_limit
from utils import (
    PipelineDefinitionError, build_pipeline, clear_performance_metrics,
    compile_function, configure, get_performance_summary, get_settings,
    load_settings, measure_performance, run_pipeline, to_jsonable,
)


def make_request(source, operations=(), consumer=None):
    payload = {"source": source, "operations": list(operations)}
    if consumer is not None:
        payload["consumer"] = consumer
    return PipelineRequest(**payload)


class TestSettings:
    """SEQUENCE_* environment configuration"""

    def test_defaults(self):
        settings = load_settings({})
        assert settings.materialize_limit is None
        assert settings.log_level == "INFO"
        assert settings.max_preview == 1000

    def test_values_from_environment(self):
        settings = load_settings({
            "SEQUENCE_MATERIALIZE_LIMIT": "50",
            "SEQUENCE_LOG_LEVEL": "debug",
            "SEQUENCE_MAX_PREVIEW": "20",
        })
        assert settings.materialize_limit == 50
        assert settings.log_level == "DEBUG"
        assert settings.max_preview == 20

    def test_invalid_values_are_rejected(self):
        with pytest.raises(ValueError):
            load_settings({"SEQUENCE_LOG_LEVEL": "chatty"})
        with pytest.raises(ValueError):
            load_settings({"SEQUENCE_MATERIALIZE_LIMIT": "-1"})
        with pytest.raises(ValueError):
            load_settings({"SEQUENCE_MAX_PREVIEW": "many"})

    def test_configure_installs_limit(self):
        try:
            configure(EngineSettings(materialize_limit=3))
            assert get_materialize_limit() == 3
            assert get_settings().materialize_limit == 3
        finally:
            configure(EngineSettings())
        assert get_materialize_limit() is None


class TestCompileFunction:
    """Lambda strings evaluated with restricted builtins"""

    def test_lambda(self):
        assert compile_function("lambda x: x + 1")(1) == 2
        assert compile_function("lambda acc, x: acc + abs(x)")(1, -2) == 3

    def test_dunder_names_rejected(self):
        with pytest.raises(PipelineDefinitionError):
            compile_function("lambda x: x.__class__")

    def test_syntax_error(self):
        with pytest.raises(PipelineDefinitionError):
            compile_function("lambda x:")

    def test_not_callable(self):
        with pytest.raises(PipelineDefinitionError):
            compile_function("42")

    def test_unsafe_builtins_are_missing(self):
        opener = compile_function("lambda path: open(path)")
        with pytest.raises(NameError):
            opener("/etc/passwd")


class TestPipelineBuilding:
    """Turning request models into sequences"""

    def test_build_does_not_pull(self):
        request = make_request(
            {"type": "count_from"},
            [{"type": "map", "function": "lambda x: x * 2"}, {"type": "take", "count": 3}],
        )
        seq, applied = build_pipeline(request)
        assert applied == ["map", "take"]
        assert seq.finite is True
        assert seq.collect() == [0, 2, 4]

    def test_chain_with_second_source(self):
        request = make_request(
            {"type": "range", "start": 1, "end": 20},
            [
                {"type": "filter", "function": "lambda x: x % 5 == 0"},
                {"type": "chain", "other": {"type": "range", "start": 6, "end": 9}},
            ],
        )
        assert run_pipeline(request)["result"] == [5, 10, 15, 6, 7, 8]

    def test_zip_enumerate_and_rev(self):
        request = make_request(
            {"type": "chars", "first": "a", "last": "c"},
            [
                {"type": "rev"},
                {"type": "zip", "other": {"type": "count_from", "start": 1}},
                {"type": "enumerate", "start": 10},
            ],
        )
        assert run_pipeline(request)["result"] == [[10, ["c", 1]], [11, ["b", 2]], [12, ["a", 3]]]

    def test_collection_sort_dedup_page(self):
        request = make_request(
            {"type": "collection", "items": [5, 1, 4, 1, 3, 5, 2], "mode": "consume"},
            [{"type": "sorted"}, {"type": "dedup"}, {"type": "page", "page_number": 2, "page_size": 2}],
        )
        assert run_pipeline(request)["result"] == [3, 4]

    def test_fahrenheit_source(self):
        request = make_request(
            {"type": "fahrenheit"},
            [{"type": "take", "count": 2}, {"type": "map", "function": "lambda row: round(row[1], 1)"}],
        )
        assert run_pipeline(request)["result"] == [-17.8, -15.0]

    @pytest.mark.parametrize("consumer,expected", [
        ({"type": "count"}, 10),
        ({"type": "sum"}, 45),
        ({"type": "fold", "initial": 100, "function": "lambda acc, x: acc - x"}, 55),
        ({"type": "reduce", "function": "lambda a, b: a * b", "initial": 1}, 0),
        ({"type": "minmax"}, [0, 9]),
        ({"type": "find", "function": "lambda x: x > 6"}, 7),
        ({"type": "position", "function": "lambda x: x == 4"}, 4),
        ({"type": "any", "function": "lambda x: x > 8"}, True),
        ({"type": "all", "function": "lambda x: x < 5"}, False),
        ({"type": "last"}, 9),
        ({"type": "nth", "n": 2}, 2),
        ({"type": "partition", "function": "lambda x: x < 3"}, [[0, 1, 2], [3, 4, 5, 6, 7, 8, 9]]),
        ({"type": "group_by", "function": "lambda x: x % 2"}, {"0": [0, 2, 4, 6, 8], "1": [1, 3, 5, 7, 9]}),
        ({"type": "join", "separator": "-"}, "0-1-2-3-4-5-6-7-8-9"),
    ])
    def test_consumers(self, consumer, expected):
        request = make_request({"type": "range", "start": 0, "end": 10}, consumer=consumer)
        assert run_pipeline(request)["result"] == expected

    def test_missing_arguments_rejected_by_models(self):
        with pytest.raises(ValueError):
            OperationSpec(type="map")
        with pytest.raises(ValueError):
            OperationSpec(type="take")
        with pytest.raises(ValueError):
            SourceSpec(type="range", start=0)
        with pytest.raises(ValueError):
            make_request({"type": "range", "start": 0, "end": 3}, consumer={"type": "fold", "function": "lambda a, x: a"})


class TestRunPipeline:
    """Metrics and error propagation"""

    def test_result_and_performance(self):
        request = make_request(
            {"type": "count_from", "start": 1},
            [
                {"type": "map", "function": "lambda x: x * x"},
                {"type": "filter", "function": "lambda x: x % 5 == 0"},
                {"type": "take", "count": 10},
            ],
        )
        outcome = run_pipeline(request)
        assert outcome["result"] == [25, 100, 225, 400, 625, 900, 1225, 1600, 2025, 2500]
        assert outcome["operations_applied"] == ["map", "filter", "take"]
        assert outcome["consumer"] == "collect"
        assert outcome["performance"]["output_size"] == 10
        assert outcome["performance"]["operation"] == "count_from->map->filter->take->collect"
        assert get_performance_summary()["total_operations"] == 1

    def test_unbounded_collect_is_rejected(self):
        request = make_request({"type": "count_from"})
        with pytest.raises(UnboundedMaterialization):
            run_pipeline(request)
        assert utils._performance_metrics["operations"][-1]["success"] is False

    def test_callable_errors_propagate(self):
        request = make_request(
            {"type": "range", "start": 0, "end": 3},
            [{"type": "map", "function": "lambda x: 1 // x"}],
        )
        with pytest.raises(ZeroDivisionError):
            run_pipeline(request)
        assert get_performance_summary()["total_operations"] == 1

    def test_results_are_not_kept_in_metrics(self):
        run_pipeline(make_request({"type": "range", "start": 0, "end": 5}))
        assert "result" not in utils._performance_metrics["operations"][0]


class TestPerformanceHelpers:

    def test_measure_performance(self):
        info = measure_performance("squares", lambda n: [i * i for i in range(n)], 4)
        assert info["result"] == [0, 1, 4, 9]
        assert info["result_size"] == 4
        assert info["success"] is True

    def test_measure_performance_records_failures(self):
        def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            measure_performance("boom", boom)
        recorded = utils._performance_metrics["operations"][-1]
        assert recorded["success"] is False
        assert recorded["error"] == "boom"

    def test_summary_and_clear(self):
        measure_performance("a", list, "ab")
        measure_performance("b", list, "cd")
        summary = get_performance_summary()
        assert summary["total_operations"] == 2
        assert summary["avg_time_ms"] == pytest.approx(summary["total_time_ms"] / 2)
        clear_performance_metrics()
        assert get_performance_summary()["total_operations"] == 0

    def test_to_jsonable(self):
        assert to_jsonable({1: (2, 3)}) == {"1": [2, 3]}
        assert to_jsonable(([1], (2,))) == [[1], [2]]
        assert to_jsonable("text") == "text"
