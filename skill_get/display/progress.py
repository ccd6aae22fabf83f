"""Update-all progress display.

One row per registry skill; a spinner while the skill is pending, then
a result mark and note once its update finished:

- **Updated**   green checkmark, ``old → new``.
- **Current**   dim checkmark, ``up to date``.
- **Failed**    red X with the failure message.
"""

from __future__ import annotations

import sys
from typing import Callable, Dict, List, Optional, Sequence, TextIO, Tuple

from rich.console import Console
from rich.progress import Progress, ProgressColumn, SpinnerColumn, Task, TimeElapsedColumn
from rich.text import Text

from skill_get.skills.results import Failure, Outcome, Result, UpdateSummary

# mark, mark style, note style
_ROW_STYLES: Dict[str, Tuple[str, str, str]] = {
    "updated": ("✓", "bold green", "green"),
    "current": ("✓", "dim", "dim"),
    "failed": ("✗", "bold red", "red"),
}


# ── Columns ────────────────────────────────────────────────────────────


class _MarkColumn(ProgressColumn):
    """Spinner until the row is done, then the row's ``mark`` field."""

    def __init__(self) -> None:
        super().__init__()
        self._spinner = SpinnerColumn("dots", style="bold blue")

    def render(self, task: Task) -> Text:
        if not task.finished:
            return Text("  ").append(self._spinner.render(task))
        return Text("  " + task.fields.get("mark", "✓"), style=task.fields.get("mark_style", ""))


class _SkillColumn(ProgressColumn):
    def render(self, task: Task) -> Text:
        return Text(task.fields.get("skill", task.description), style="cyan")


class _NoteColumn(ProgressColumn):
    def render(self, task: Task) -> Text:
        return Text(task.fields.get("note", ""), style=task.fields.get("note_style", "blue"))


def _row_for(result: Result) -> Tuple[str, str]:
    """Return ``(kind, note)`` for a finished row."""
    if isinstance(result, Failure):
        return "failed", result.message
    if result.outcome is Outcome.UPDATED:
        return "updated", f"{result.previous_version} → {result.version}"
    return "current", "up to date"


# ── Display ────────────────────────────────────────────────────────────


class UpdateProgress:
    """Live per-skill rows for ``skill-get update``.

    Parameters
    ----------
    names:
        Skills that will be processed, in order.
    stream:
        Output stream (default ``sys.stderr`` so ``--json`` style
        output on stdout stays clean).
    """

    def __init__(self, names: Sequence[str], stream: Optional[TextIO] = None) -> None:
        self._console = Console(file=stream or sys.stderr, highlight=False)
        self._names: List[str] = list(names)
        self._rows: Dict[str, int] = {}
        self._results: List[Result] = []
        self._live: Optional[Progress] = None
        self._done = False

    def start(self) -> None:
        """Print the header and start the live rows."""
        if not self._names:
            return
        self._console.print(f"\n[bold]Checking {len(self._names)} skill(s) for updates[/bold]\n")
        self._live = Progress(
            _MarkColumn(),
            _SkillColumn(),
            _NoteColumn(),
            TimeElapsedColumn(),
            console=self._console,
            redirect_stdout=False,
            redirect_stderr=False,
        )
        self._live.start()
        for name in self._names:
            self._rows[name] = self._live.add_task(name, total=1, skill=name, note="Checking...")

    def record(self, result: Result) -> None:
        """Mark the row for ``result.name`` finished."""
        self._results.append(result)
        row = self._rows.get(result.name)
        if self._live is None or row is None or self._done:
            return
        kind, note = _row_for(result)
        mark, mark_style, note_style = _ROW_STYLES[kind]
        self._live.update(
            row,
            completed=1,
            mark=mark,
            mark_style=mark_style,
            note=note,
            note_style=note_style,
        )

    def callback(self) -> Callable[[Result], None]:
        """Return a callback for :meth:`SkillManager.update_all`."""
        return self.record

    def finalize(self) -> None:
        """Stop the live rows and print the totals once."""
        if self._done:
            return
        self._done = True
        if self._live is not None:
            self._live.stop()

        summary = UpdateSummary(self._results)
        line = f"{summary.updated_count} updated, {summary.current_count} up to date"
        if summary.failed_count:
            self._console.print(
                f"\n[bold red]{line}[/bold red]  [red]({summary.failed_count} failed)[/red]\n"
            )
        else:
            self._console.print(f"\n[bold green]{line}[/bold green]\n")
