"""Live progress for ``mcpeval run``: a rich bar, or one line per result without rich."""

from __future__ import annotations

from typing import Any, Optional

from mcpeval.models import EvalResult


class ProgressReporter:
    """Counts finished evaluations and shows pass/fail tallies as they arrive."""

    def __init__(self) -> None:
        self.total = 0
        self.done = 0
        self.passed = 0
        self._bar: Optional[Any] = None
        self._task: Optional[Any] = None

    @property
    def failed(self) -> int:
        return self.done - self.passed

    def start(self, total: int) -> None:
        self.total = total
        self.done = 0
        self.passed = 0
        try:
            from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
        except ImportError:
            self._bar = None
            return
        self._bar = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[green]{task.fields[passed]} passed[/] [red]{task.fields[failed]} failed[/]"),
            TimeElapsedColumn(),
        )
        self._task = self._bar.add_task("Evaluating", total=total, passed=0, failed=0)
        self._bar.start()

    def update(self, label: str, passed: bool) -> None:
        self.done += 1
        if passed:
            self.passed += 1
        if self._bar is None:
            mark = "PASS" if passed else "FAIL"
            print(f"[{self.done}/{self.total}] {mark} {label}")
            return
        self._bar.update(
            self._task, advance=1, description=label, passed=self.passed, failed=self.failed
        )

    def on_result(self, result: EvalResult) -> None:
        self.update(f"{result.id} ({result.provider}/{result.model})", result.validation.passed)

    def finish(self) -> None:
        if self._bar is not None:
            self._bar.stop()
            self._bar = None
