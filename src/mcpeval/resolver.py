"""Substitute references to earlier step results into parameters.

A reference looks like ``${{step:0.columns[0].name}}`` and may carry a
fallback literal: ``${{step:0.columns[0].name||duration_ms}}``. References
can only point at steps that already have a recorded result.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

from mcpeval.errors import UnresolvedReferenceError

logger = logging.getLogger(__name__)

REFERENCE_RE = re.compile(r"\$\{\{step:(\d+)\.([^}|]+)(?:\|\|([^}]+))?\}\}")
_INDEX_RE = re.compile(r"\[(\d+)\]")

DEFAULT_FIELD = "duration_ms"

_MISSING = object()

StepResultTable = Dict[int, Any]


@dataclass(frozen=True)
class Reference:
    """A parsed ``step:<N>.<path>`` expression."""
    expression: str
    step: int
    path: str
    fallback: Optional[str] = None


class DefaultPolicy(Protocol):
    """Chooses a substitute for a reference that cannot be resolved."""

    def default_for(self, ref: Reference, step_result: Any) -> str: ...


class HeuristicDefaults:
    """Guess a column-like field name for unresolved references.

    Paths mentioning ``duration`` resolve to ``duration_ms``; paths
    mentioning ``name`` resolve to ``name``; otherwise a candidate column
    from the referenced result is used (duration-like first), and finally
    ``duration_ms``.
    """

    def __init__(self, generic_default: str = DEFAULT_FIELD) -> None:
        self.generic_default = generic_default

    def default_for(self, ref: Reference, step_result: Any) -> str:
        if step_result is _MISSING:
            return self.generic_default
        path = ref.path
        if "column" in path or path.endswith(".key"):
            if "duration" in path or "duration" in ref.expression:
                return DEFAULT_FIELD
            if "name" in path or "name" in ref.expression:
                return "name"
            candidate = _candidate_column(step_result)
            if candidate is not None:
                return candidate
        return self.generic_default


def _candidate_column(step_result: Any) -> Optional[str]:
    columns = step_result.get("columns") if isinstance(step_result, dict) else None
    if not isinstance(columns, list):
        return None
    keyed = [c for c in columns if isinstance(c, dict) and (c.get("key") or c.get("name"))]
    for col in keyed:
        key = str(col.get("key") or col.get("name"))
        if "duration" in key or "duration" in str(col.get("description", "")):
            return key
    if keyed:
        return str(keyed[0].get("key") or keyed[0].get("name"))
    return None


def normalize_path(path: str) -> List[str]:
    """Split ``columns[0].name`` into ``["columns", "0", "name"]``."""
    return [p for p in _INDEX_RE.sub(r".\1", path).split(".") if p]


def get_value_by_path(obj: Any, path: str) -> Any:
    """Traverse ``obj`` along ``path``; returns None when any segment is missing."""
    current = obj
    for part in normalize_path(path):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            current = getattr(current, part, None)
    return current


def stringify(value: Any) -> str:
    """Coerce a resolved value to text; containers become compact JSON."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None or isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


@dataclass
class StepResolver:
    """Resolves step references inside arbitrary parameter trees.

    Unresolvable references are recorded in ``unresolved``. With
    ``strict=True`` they raise :class:`UnresolvedReferenceError` instead of
    falling back to the default policy.
    """

    defaults: DefaultPolicy = field(default_factory=HeuristicDefaults)
    strict: bool = False
    unresolved: List[Reference] = field(default_factory=list)

    def resolve(self, parameters: Any, table: StepResultTable) -> Any:
        """Return a copy of ``parameters`` with every string leaf expanded."""
        if isinstance(parameters, str):
            return self.resolve_string(parameters, table)
        if isinstance(parameters, list):
            return [self.resolve(item, table) for item in parameters]
        if isinstance(parameters, dict):
            return {k: self.resolve(v, table) for k, v in parameters.items()}
        return parameters

    def resolve_string(self, value: str, table: StepResultTable) -> str:
        return REFERENCE_RE.sub(lambda m: self._substitute(m, table), value)

    def _substitute(self, match: "re.Match", table: StepResultTable) -> str:
        ref = Reference(
            expression=match.group(0),
            step=int(match.group(1)),
            path=match.group(2).strip(),
            fallback=match.group(3),
        )
        if ref.step not in table:
            return self._unresolved(ref, _MISSING, f"step {ref.step} has no recorded result")

        value = get_value_by_path(table[ref.step], ref.path)
        if value is None:
            return self._unresolved(ref, table[ref.step], f"path '{ref.path}' not found")
        return stringify(value)

    def _unresolved(self, ref: Reference, step_result: Any, reason: str) -> str:
        self.unresolved.append(ref)
        if self.strict:
            raise UnresolvedReferenceError(ref.expression, reason)
        if ref.fallback is not None:
            logger.warning("Reference %s: %s; using fallback %r", ref.expression, reason, ref.fallback)
            return ref.fallback
        substitute = self.defaults.default_for(ref, step_result)
        logger.warning("Reference %s: %s; defaulting to %r", ref.expression, reason, substitute)
        return substitute
