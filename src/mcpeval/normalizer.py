"""Per-capability parameter defaulting and renaming rules.

Rules are plain functions ``(params) -> params`` registered against a tool
name. Normalization works on a deep copy and never calls the tool host.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Optional

Rule = Callable[[Dict[str, Any]], Dict[str, Any]]

# Calculation ops that are meaningless without a column.
COLUMN_OPS = {"MAX", "MIN", "AVG", "SUM", "P95", "P99"}

DEFAULT_COLUMN = "duration_ms"
DEFAULT_TIME_RANGE = 3600


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


def normalize_query(params: Dict[str, Any]) -> Dict[str, Any]:
    """Fix the common structural mistakes models make when building queries."""
    # Nested {"query": {...}} is flattened without overriding top-level keys.
    nested = params.pop("query", None)
    if isinstance(nested, dict):
        for key, value in nested.items():
            if not params.get(key):
                params[key] = value

    if params.get("groupBy") and not params.get("breakdowns"):
        params["breakdowns"] = params.pop("groupBy")
    if params.get("order") and not params.get("orders"):
        params["orders"] = params.pop("order")

    calculations = params.get("calculations")
    if not calculations:
        calculations = [{"op": "COUNT"}]
    breakdowns = _as_list(params.get("breakdowns") or params.get("groupBy") or [])
    params["calculations"] = [_fix_calculation(c, breakdowns) for c in _as_list(calculations)]

    if not any(params.get(k) for k in ("time_range", "start_time", "end_time")):
        params["time_range"] = DEFAULT_TIME_RANGE

    if params.get("orders"):
        params["orders"] = [
            _match_order(o, params["calculations"]) for o in _as_list(params["orders"])
        ]
    return params


def _fix_calculation(calc: Any, breakdowns: List[Any]) -> Any:
    if not isinstance(calc, dict) or not calc.get("op") or calc.get("column"):
        return calc
    if calc.get("field"):
        fixed = {k: v for k, v in calc.items() if k != "field"}
        fixed["column"] = calc["field"]
        return fixed
    if str(calc["op"]).upper() in COLUMN_OPS:
        column = breakdowns[0] if breakdowns else DEFAULT_COLUMN
        return {**calc, "column": column}
    return calc


def _match_order(order: Any, calculations: List[Any]) -> Any:
    if not isinstance(order, dict) or order.get("op") or not order.get("column"):
        return order
    for calc in calculations:
        if isinstance(calc, dict) and calc.get("column") == order["column"]:
            return {
                "op": calc.get("op"),
                "column": calc["column"],
                "order": order.get("order", "descending"),
            }
    return order


_RULES: Dict[str, List[Rule]] = {
    "run_query": [normalize_query],
}


def register_rule(tool: str, rule: Rule) -> None:
    """Register an extra normalization rule for ``tool``."""
    _RULES.setdefault(tool, []).append(rule)


class ParameterNormalizer:
    """Applies registered rules plus the prompt-wide environment default."""

    def __init__(self, rules: Optional[Dict[str, List[Rule]]] = None) -> None:
        self._rules = rules if rules is not None else _RULES

    def normalize(
        self,
        tool: str,
        parameters: Optional[Dict[str, Any]],
        environment: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = copy.deepcopy(parameters) if isinstance(parameters, dict) else {}
        if environment and not params.get("environment"):
            params["environment"] = environment
        for rule in self._rules.get(tool, []):
            params = rule(params)
        return params
