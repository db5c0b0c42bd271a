"""JSON file result store for mcpeval."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from mcpeval.models import EvalResult, EvalSummary, summary_from_dict


def file_stamp(now: Optional[datetime] = None) -> str:
    """A filesystem-safe ISO timestamp."""
    now = now or datetime.now(timezone.utc)
    return re.sub(r"[:.+]", "-", now.isoformat())


def _safe(part: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]", "_", part)


class ResultStore:
    """Writes one file per evaluation plus run-level aggregate files."""

    def __init__(self, results_dir: str | Path = "eval/results") -> None:
        self._dir = Path(results_dir)

    @property
    def results_dir(self) -> Path:
        return self._dir

    def _ensure_dir(self) -> Path:
        self._dir.mkdir(parents=True, exist_ok=True)
        return self._dir

    def _write(self, name: str, payload: object) -> Path:
        path = self._ensure_dir() / name
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, default=str)
        return path

    def save_result(self, result: EvalResult) -> Path:
        """Save a single evaluation as ``<id>-<provider>-<model>-<stamp>.json``."""
        name = "-".join(_safe(p) for p in (result.id, result.provider, result.model))
        return self._write(f"{name}-{file_stamp()}.json", result.to_dict())

    def save_summary(self, summary: EvalSummary) -> Path:
        """Save the aggregate summary and an ``all-results`` file beside it."""
        stamp = file_stamp()
        self._write(f"all-results-{stamp}.json", [r.to_dict() for r in summary.results])
        return self._write(f"summary-{stamp}.json", summary.to_dict())

    def load_summary(self, path: str | Path) -> EvalSummary:
        with open(path, encoding="utf-8") as f:
            return summary_from_dict(json.load(f))

    def list_summaries(self) -> List[Path]:
        """Summary files, newest first."""
        if not self._dir.exists():
            return []
        return sorted(self._dir.glob("summary-*.json"), reverse=True)

    def latest_summary(self) -> Optional[EvalSummary]:
        summaries = self.list_summaries()
        if not summaries:
            return None
        return self.load_summary(summaries[0])
