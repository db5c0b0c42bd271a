"""Tests for parameter normalization."""

import mcpeval.normalizer as normalizer_module
from mcpeval.normalizer import DEFAULT_TIME_RANGE, ParameterNormalizer, normalize_query, register_rule


class TestNormalizeQuery:
    def test_defaults_count_and_time_range(self):
        out = normalize_query({"dataset": "frontend"})
        assert out["calculations"] == [{"op": "COUNT"}]
        assert out["time_range"] == DEFAULT_TIME_RANGE

    def test_flattens_nested_query(self):
        out = normalize_query({"dataset": "a", "query": {"dataset": "b", "limit": 5}})
        assert "query" not in out
        assert out["dataset"] == "a"
        assert out["limit"] == 5

    def test_renames_group_by_and_order(self):
        out = normalize_query({
            "groupBy": ["service.name"],
            "order": [{"column": "service.name"}],
        })
        assert out["breakdowns"] == ["service.name"]
        assert "groupBy" not in out
        assert out["orders"] == [{"column": "service.name"}]

    def test_field_becomes_column(self):
        out = normalize_query({"calculations": [{"op": "AVG", "field": "latency"}]})
        assert out["calculations"] == [{"op": "AVG", "column": "latency"}]

    def test_column_op_defaults_from_breakdown(self):
        out = normalize_query({"calculations": [{"op": "p95"}], "breakdowns": "route"})
        assert out["calculations"] == [{"op": "p95", "column": "route"}]

    def test_column_op_defaults_to_duration(self):
        out = normalize_query({"calculations": [{"op": "MAX"}]})
        assert out["calculations"] == [{"op": "MAX", "column": "duration_ms"}]

    def test_count_untouched(self):
        out = normalize_query({"calculations": [{"op": "COUNT"}], "start_time": 1})
        assert out["calculations"] == [{"op": "COUNT"}]
        assert "time_range" not in out

    def test_order_matched_to_calculation(self):
        out = normalize_query({
            "calculations": [{"op": "AVG", "column": "duration_ms"}],
            "orders": [{"column": "duration_ms"}],
        })
        assert out["orders"] == [{"op": "AVG", "column": "duration_ms", "order": "descending"}]


class TestParameterNormalizer:
    def test_does_not_mutate_input(self):
        params = {"dataset": "frontend"}
        out = ParameterNormalizer().normalize("run_query", params)
        assert params == {"dataset": "frontend"}
        assert out is not params

    def test_injects_environment(self):
        out = ParameterNormalizer().normalize("get_columns", {"dataset": "x"}, environment="prod")
        assert out == {"dataset": "x", "environment": "prod"}

    def test_explicit_environment_kept(self):
        out = ParameterNormalizer().normalize("get_columns", {"environment": "dev"}, environment="prod")
        assert out["environment"] == "dev"

    def test_unknown_tool_passthrough(self):
        assert ParameterNormalizer().normalize("anything", {"a": 1}) == {"a": 1}

    def test_none_parameters(self):
        assert ParameterNormalizer().normalize("anything", None) == {}

    def test_custom_rules(self):
        def upper(params):
            return {k: str(v).upper() for k, v in params.items()}

        normalizer = ParameterNormalizer(rules={"shout": [upper]})
        assert normalizer.normalize("shout", {"a": "b"}) == {"a": "B"}
        assert normalizer.normalize("run_query", {"a": "b"}) == {"a": "b"}


class TestRegisterRule:
    def test_default_normalizer_applies_registered_rule(self, monkeypatch):
        monkeypatch.setattr(normalizer_module, "_RULES", {k: list(v) for k, v in normalizer_module._RULES.items()})

        def lowercase_dataset(params):
            params["dataset"] = params["dataset"].lower()
            return params

        register_rule("get_columns", lowercase_dataset)
        normalizer = ParameterNormalizer()
        assert normalizer.normalize("get_columns", {"dataset": "Frontend"}) == {"dataset": "frontend"}
        assert normalizer.normalize("run_query", {})["calculations"] == [{"op": "COUNT"}]

    def test_rules_run_in_registration_order(self, monkeypatch):
        monkeypatch.setattr(normalizer_module, "_RULES", {k: list(v) for k, v in normalizer_module._RULES.items()})
        register_rule("run_query", lambda params: {**params, "limit": 10})
        out = ParameterNormalizer().normalize("run_query", {"dataset": "frontend"})
        assert out["limit"] == 10
        assert out["time_range"] == DEFAULT_TIME_RANGE
