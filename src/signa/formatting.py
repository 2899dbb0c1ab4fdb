"""Pretty-print support for signa result objects.

Uses rich library for formatted terminal output.
All functions accept their target object and print to a rich Console.

To avoid circular imports, this module does NOT import domain models
at module level. Functions access object attributes dynamically.
"""
from __future__ import annotations

import json
from typing import Any

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

_OUTCOME_STYLES = {
    "success": "green",
    "retryable": "yellow",
    "non_retryable": "red",
    "quota_exhausted": "bold red",
    "cancelled": "magenta",
}


def _make_console(file: Any = None) -> Console:
    """Create a Console, optionally writing to a file-like object."""
    if file is not None:
        return Console(file=file, force_terminal=True, width=100)
    return Console()


def _format_value(value: Any, *, abbreviate: bool) -> str:
    if isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False)
    else:
        text = str(value)
    if abbreviate and len(text) > 200:
        text = text[:197] + "..."
    return text


def _diagnostics_lines(diagnostics: Any) -> list[str]:
    lines: list[str] = []
    if diagnostics.adapter_used is not None:
        used = escape(diagnostics.adapter_used)
        if diagnostics.fallback_used:
            lines.append(f"[bold]Adapter:[/bold]  {used} [yellow](fallback)[/yellow]")
        else:
            lines.append(f"[bold]Adapter:[/bold]  {used}")
    else:
        lines.append("[bold]Adapter:[/bold]  [red]none succeeded[/red]")
    lines.append(f"[bold]Attempts:[/bold] {diagnostics.attempts}")
    for failure in diagnostics.failures:
        reason = escape(failure.reason.splitlines()[0] if failure.reason else "")
        lines.append(f"  [red]x[/red] {escape(failure.adapter)}: [dim]{reason}[/dim]")
    return lines


def pprint_diagnostics(diagnostics: Any, *, file: Any = None) -> None:
    """Pretty-print ParseDiagnostics.

    Args:
        diagnostics: A ParseDiagnostics instance.
        file: Optional file-like object for output (used in tests).
    """
    console = _make_console(file)
    console.print(Panel(
        "\n".join(_diagnostics_lines(diagnostics)),
        title="[bold]Parse[/bold]",
        border_style="yellow" if diagnostics.fallback_used else "cyan",
    ))


def pprint_call_result(result: Any, *, abbreviate: bool = False, file: Any = None) -> None:
    """Pretty-print a CallResult.

    Args:
        result: A CallResult instance.
        abbreviate: If True, truncate long values. Default False (show full).
        file: Optional file-like object for output (used in tests).
    """
    console = _make_console(file)

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value", overflow="fold")
    for name, value in result.outputs.items():
        table.add_row(escape(name), Text(_format_value(value, abbreviate=abbreviate)))

    footer = _diagnostics_lines(result.diagnostics)
    if result.usage is not None:
        u = result.usage
        footer.append(
            f"[dim]{u.prompt_tokens} prompt + {u.completion_tokens} completion"
            f" = {u.total_tokens} tokens[/dim]"
        )

    console.print(Panel(
        Group(table, Text(""), Text.from_markup("\n".join(footer))),
        title="[bold]Result[/bold]",
        border_style="yellow" if result.diagnostics.fallback_used else "green",
    ))


def pprint_retry_result(result: Any, *, file: Any = None) -> None:
    """Pretty-print a RetryResult as one row per attempt.

    Args:
        result: A RetryResult instance.
        file: Optional file-like object for output (used in tests).
    """
    console = _make_console(file)
    table = Table(title=f"{result.attempts} attempt(s)", header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Outcome")
    table.add_column("Status", justify="right")
    table.add_column("Backoff", justify="right")
    table.add_column("Error", style="dim")
    for record in result.records:
        outcome = str(record.outcome)
        style = _OUTCOME_STYLES.get(outcome, "white")
        table.add_row(
            str(record.index),
            Text(outcome, style=style),
            "-" if record.status_code is None else str(record.status_code),
            f"{record.backoff:.2f}s" if record.backoff else "-",
            Text(record.error or ""),
        )
    console.print(table)
