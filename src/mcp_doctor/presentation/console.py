"""Rich-based console renderer with plain-text fallback.

If ``rich`` is importable, :class:`ConsoleRenderer` renders tables with
colour.  Otherwise it falls back to simple ``print()`` output that works in
any terminal (and in captured test output).
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import Any

from mcp_doctor.domain.enums import HealthLevel, RepairPhase
from mcp_doctor.domain.values import (
    BackupRecord,
    HistoryEntry,
    IsolationReport,
    RepairReport,
    SelfTestResult,
    SystemStatus,
)
from mcp_doctor.services.engine import DiagnosisResult, RepairResult

# ---------------------------------------------------------------------------
# Graceful rich import
# ---------------------------------------------------------------------------

try:
    from rich.console import Console as RichConsole
    from rich.table import Table as RichTable

    _HAS_RICH = True
except ImportError:  # pragma: no cover
    _HAS_RICH = False


_HEALTH_COLOURS: dict[HealthLevel, str] = {
    HealthLevel.HEALTHY: "green",
    HealthLevel.MINOR: "yellow",
    HealthLevel.MAJOR: "orange3",
    HealthLevel.CRITICAL: "red",
}

_PHASE_COLOURS: dict[RepairPhase, str] = {
    RepairPhase.SUCCEEDED: "green",
    RepairPhase.PLANNED: "cyan",
    RepairPhase.ROLLED_BACK: "yellow",
    RepairPhase.FAILED: "red",
}


def _fmt_time(value: Any) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value is not None else "-"


# ---------------------------------------------------------------------------
# ConsoleRenderer
# ---------------------------------------------------------------------------


class ConsoleRenderer:
    """Terminal presentation of status, diagnoses, repairs and backups.

    Parameters
    ----------
    use_rich:
        Explicitly enable (``True``) or disable (``False``) rich output.
        ``None`` (default) auto-detects based on availability.
    file:
        Output stream.  Defaults to ``sys.stdout``.
    """

    def __init__(self, use_rich: bool | None = None, file: Any = None) -> None:
        self._file = file or sys.stdout
        if use_rich is None:
            self._use_rich = _HAS_RICH
        else:
            self._use_rich = use_rich and _HAS_RICH
        self._console = RichConsole(file=self._file) if self._use_rich else None

    @property
    def uses_rich(self) -> bool:
        return self._console is not None

    # -- helpers -----------------------------------------------------------

    def _plain_print(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("file", self._file)
        print(*args, **kwargs)

    def _health(self, level: HealthLevel | None) -> str:
        if level is None:
            return "-"
        if self._console is None:
            return level.value
        colour = _HEALTH_COLOURS.get(level, "white")
        return f"[{colour}]{level.value}[/{colour}]"

    def _phase(self, phase: RepairPhase) -> str:
        if self._console is None:
            return phase.value
        colour = _PHASE_COLOURS.get(phase, "white")
        return f"[bold {colour}]{phase.value}[/bold {colour}]"

    def _table(self, title: str, columns: Sequence[str], rows: list[list[str]]) -> None:
        if self._console is not None:
            table = RichTable(title=title, show_header=True, header_style="bold cyan")
            for column in columns:
                table.add_column(column)
            for row in rows:
                table.add_row(*row)
            self._console.print(table)
            return

        widths = [len(c) for c in columns]
        for row in rows:
            widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
        self._plain_print(title)
        self._plain_print("  ".join(c.ljust(w) for c, w in zip(columns, widths)))
        self._plain_print("  ".join("-" * w for w in widths))
        for row in rows:
            self._plain_print("  ".join(cell.ljust(w) for cell, w in zip(row, widths)))

    def line(self, text: str = "") -> None:
        """Print one line of (optionally rich-marked-up) text."""
        if self._console is not None:
            self._console.print(text)
        else:
            self._plain_print(text)

    # -- public API --------------------------------------------------------

    def print_status(self, status: SystemStatus) -> None:
        """Overall health plus one row per client."""
        self.line(f"Overall health: {self._health(status.overall)}")
        if not status.clients:
            self.line("No MCP clients detected.")
            return
        rows = []
        for health in status.clients.values():
            client = health.client
            rows.append([
                client.display_name,
                "running" if health.running else "stopped",
                self._health(health.health),
                str(len(client.helpers)),
                str(len(health.errors)),
            ])
        self._table("Clients", ["Client", "State", "Health", "Servers", "Errors"], rows)

    def print_diagnosis(self, result: DiagnosisResult) -> None:
        detection = result.detection
        runtime = detection.runtime_version or "not found"
        self.line(
            f"Platform: {detection.platform.value}"
            f"{' (WSL)' if detection.is_wsl else ''}, Node.js: {runtime}"
        )
        if not result.clients:
            self.line("No MCP clients detected.")
            return

        for diagnosis in result.clients:
            client = diagnosis.client
            self.line()
            self.line(f"{client.display_name}: {self._health(diagnosis.health.health)}")
            self.line(f"  config: {client.config_path}")
            for warning in diagnosis.analysis.warnings:
                self.line(f"  warning: {warning}")
            if diagnosis.errors:
                rows = [
                    [e.helper_name or "-", e.kind.value, e.message, "yes" if e.fixable else "no"]
                    for e in diagnosis.errors
                ]
                self._table("Errors", ["Server", "Kind", "Message", "Fixable"], rows)
            else:
                self.line("  no errors found")
            for name, report in diagnosis.isolations.items():
                self.line(f"  isolate {name}: {report.result.description}")
            for message, hint in diagnosis.suggestions.items():
                self.line(f"  hint: {message}: {hint}")

    def print_repair(self, result: RepairResult) -> None:
        if not result.reports and not result.failures:
            self.line("Nothing to repair.")
        for report in result.reports:
            self.print_repair_report(report)
        for name, reason in result.failures.items():
            self.line(f"{name}: {self._phase(RepairPhase.FAILED)} ({reason})")

    def print_repair_report(self, report: RepairReport) -> None:
        header = f"{report.client.display_name}: {self._phase(report.phase)}"
        if report.dry_run:
            header += " (dry run)"
        self.line(header)
        if report.plan.fixes:
            rows = [
                [
                    fix.description,
                    fix.error.kind.value,
                    "auto" if fix.automatic else "manual",
                    fix.source.value,
                ]
                for fix in report.plan.fixes
            ]
            self._table("Planned fixes", ["Fix", "Kind", "Mode", "Source"], rows)
        for change in report.applied_changes:
            verb = "would change" if report.dry_run else "changed"
            self.line(f"  {verb}: {change.description}")
        for fix in report.skipped_fixes:
            self.line(f"  skipped: {fix.description}")
        if report.health_before is not None or report.health_after is not None:
            self.line(
                f"  health: {self._health(report.health_before)} -> "
                f"{self._health(report.health_after)}"
            )
        if report.backup_id:
            self.line(f"  backup: {report.backup_id}")
        if report.reason:
            self.line(f"  reason: {report.reason}")
        if report.requires_manual_intervention:
            self.line("  manual intervention required: configuration may be inconsistent")

    def print_backups(self, records: Sequence[BackupRecord]) -> None:
        if not records:
            self.line("No backups.")
            return
        rows = [
            [r.backup_id, r.client_kind.value, _fmt_time(r.created_at), r.config_path]
            for r in records
        ]
        self._table("Backups", ["ID", "Client", "Created", "Config"], rows)

    def print_history(self, entries: Sequence[HistoryEntry]) -> None:
        if not entries:
            self.line("No repair history.")
            return
        rows = [
            [_fmt_time(e.timestamp), e.client_kind.value, self._phase(e.outcome), e.reason or "-"]
            for e in entries
        ]
        self._table("Repair history", ["When", "Client", "Outcome", "Reason"], rows)

    def print_isolation(self, helper_name: str, report: IsolationReport) -> None:
        result = report.result
        self.line(f"{helper_name}: {result.error_kind.value}: {result.description}")
        if result.evidence:
            self.line(f"  evidence: {result.evidence}")
        for probe, outcome in report.trace:
            self.line(f"  {probe}: {'yes' if outcome else 'no'}")

    def print_self_test(self, result: SelfTestResult) -> None:
        rows = [
            [c.name, "pass" if c.passed else "FAIL", c.error or c.description]
            for c in result.results
        ]
        self._table("Self test", ["Check", "Result", "Detail"], rows)
