"""Rich console rendering of live events and results, plus markdown reports."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from cli_debate.events import DebateEvent, EventType
from cli_debate.models import (
    CodeReviewResult,
    DebateResult,
    ExecutorRole,
    FixStatus,
    Message,
    Phase,
    RunStatus,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_PHASE_TITLES = {
    Phase.OPENING: "Opening",
    Phase.FINAL: "Final Verdict",
    Phase.BUILD_CHECK: "Build Check",
    Phase.CODE_ANALYSIS: "Code Analysis",
    Phase.ISSUE_DEFENSE: "Issue Defense",
    Phase.VERDICT_ASSIGNMENT: "Verdict & Assignment",
    Phase.PARALLEL_FIX: "Parallel Fix",
}

_ROLE_STYLES = {
    ExecutorRole.MODERATOR: "bold magenta",
    ExecutorRole.CHALLENGER: "bold red",
    ExecutorRole.DEFENDER: "bold blue",
    ExecutorRole.FIXER: "bold green",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


class EventPrinter:
    """Event listener that renders a run live on the console."""

    def __init__(self, out: Console | None = None) -> None:
        self._console = out or console
        # task_id of every stream that produced chunks, None for the sequential messages
        self._streamed: set[str | None] = set()

    def __call__(self, event: DebateEvent) -> None:
        data = event.data
        if event.type is EventType.DEBATE_START:
            self._console.print("[bold cyan]Run started[/bold cyan]")
        elif event.type is EventType.PHASE_START:
            title = _PHASE_TITLES.get(data["phase"], str(data["phase"]))
            self._console.print(Rule(f"[bold]{title}[/bold]"))
        elif event.type is EventType.ROUND_START:
            self._console.print(Rule(f"[bold cyan]Round {data['round_number']}[/bold cyan]"))
        elif event.type is EventType.MESSAGE_START:
            role = data["role"]
            label = f"{role.value.title()} ({data['backend'].value})"
            if "issue" in data:
                label += f" fixing {data['issue'].id}"
            self._console.print(Text(label, style=_ROLE_STYLES.get(role, "bold")))
        elif event.type is EventType.MESSAGE_CHUNK:
            self._streamed.add(data.get("task_id"))
            self._console.out(data["chunk"], end="", highlight=False)
        elif event.type is EventType.MESSAGE_END:
            self._end_message(data)
        elif event.type is EventType.ROUND_END:
            seconds = data["round_result"].duration_ms / 1000
            self._console.print(f"[dim]Round took {seconds:.1f}s[/dim]")
        elif event.type is EventType.ERROR:
            self._console.print(f"[bold red]Error:[/bold red] {data['error']}")
        elif event.type is EventType.DEBATE_END:
            self._console.print("[bold cyan]Run finished[/bold cyan]")

    def _end_message(self, data: dict) -> None:
        task = data.get("task")
        key = task.id if task is not None else None
        if key in self._streamed:
            self._streamed.discard(key)
            self._console.print()
            return
        if task is not None:
            label = f"Fixer ({task.assigned_backend.value}) {task.issue.id}: {task.status.value}"
            self._console.print(Text(label, style=_ROLE_STYLES[ExecutorRole.FIXER]))
            content = task.result or ""
        else:
            content = data["message"].content
        if content:
            self._console.print(content, markup=False, highlight=False)
        self._console.print()


def _status_style(status: RunStatus) -> str:
    return "green" if status is RunStatus.COMPLETED else "red"


def print_debate_summary(result: DebateResult) -> None:
    style = _status_style(result.status)
    console.print(Rule("[bold]Debate Summary[/bold]"))
    console.print(
        Text(
            f"Status: {result.status.value} | "
            f"Duration: {(result.total_duration_ms or 0) / 1000:.1f}s | "
            f"Rounds: {len(result.rounds)}",
            style=style,
        )
    )
    if result.final_verdict is not None:
        console.print(Panel(Markdown(result.final_verdict.content), title="Final Verdict", border_style="green"))
    if result.error:
        console.print(f"[bold red]Error:[/bold red] {result.error}")


def print_review_summary(result: CodeReviewResult) -> None:
    style = _status_style(result.status)
    console.print(Rule("[bold]Code Review Summary[/bold]"))
    console.print(
        Text(
            f"Status: {result.status.value} | "
            f"Duration: {(result.total_duration_ms or 0) / 1000:.1f}s | "
            f"Issues: {len(result.issues)}",
            style=style,
        )
    )
    for issue in result.issues:
        assignee = issue.assigned_to.value if issue.assigned_to else "-"
        console.print(
            f"  [{issue.severity.value}] {issue.id} {issue.type.value}: {issue.description} "
            f"[dim]({issue.location or 'no location'}, {assignee})[/dim]"
        )
    if result.fix_tasks:
        done = sum(1 for t in result.fix_tasks if t.status is FixStatus.COMPLETED)
        console.print(f"Fix tasks: {done}/{len(result.fix_tasks)} completed")
    for parse_error in result.parse_errors:
        console.print(f"[yellow]Parse warning:[/yellow] {parse_error}")
    if result.error:
        console.print(f"[bold red]Error:[/bold red] {result.error}")


def _message_lines(message: Message) -> list[str]:
    return [
        f"### {message.role.value.title()} ({message.backend.value})",
        "",
        message.content,
        "",
    ]


def _write_report(lines: list[str], output_dir: Path, slug: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{slug}.md"
    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath


def save_debate(result: DebateResult, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the debate transcript as a markdown file and return its path."""
    lines: list[str] = [
        f"# Debate: {result.topic[:80]}",
        "",
        f"**Date:** {result.start_time.strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Status:** {result.status.value}",
        f"**Rounds:** {len(result.rounds)}",
        f"**Duration:** {(result.total_duration_ms or 0) / 1000:.1f}s",
    ]
    if result.error:
        lines.append(f"**Error:** {result.error}")
    lines += ["", "---", ""]

    if result.opening is not None:
        lines += ["## Opening", ""] + _message_lines(result.opening)
    for rnd in result.rounds:
        lines += [f"## Round {rnd.round_number}", ""]
        for message in (rnd.challenger_message, rnd.defender_message, rnd.moderator_evaluation):
            lines += _message_lines(message)
        lines += [f"*Round duration: {rnd.duration_ms / 1000:.1f}s*", ""]
    if result.final_verdict is not None:
        lines += ["## Final Verdict", ""] + _message_lines(result.final_verdict)

    slug = slug_override if slug_override is not None else _slug(result.topic)
    return _write_report(lines, output_dir, f"debate_{slug}")


def save_review(result: CodeReviewResult, output_dir: Path) -> Path:
    """Save the code review (issues, verdict, fix results) as a markdown file."""
    lines: list[str] = [
        f"# Code Review: {result.path}",
        "",
        f"**Date:** {result.start_time.strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Status:** {result.status.value}",
        f"**Issues:** {len(result.issues)}",
        f"**Duration:** {(result.total_duration_ms or 0) / 1000:.1f}s",
    ]
    if result.error:
        lines.append(f"**Error:** {result.error}")
    lines += ["", "---", ""]

    if result.build_check is not None:
        status = "passed" if result.build_check.success else "failed"
        lines += [f"## Build Check ({status})", "", f"`{result.build_check.command}`", ""]
        lines += [f"- {e}" for e in result.build_check.errors] + [""]

    lines += ["## Issues", ""]
    if not result.issues:
        lines += ["No issues.", ""]
    for issue in result.issues:
        lines.append(f"- **{issue.id}** [{issue.type.value}/{issue.severity.value}] {issue.description}")
        if issue.location:
            lines.append(f"  - Location: `{issue.location}`")
        if issue.assigned_to:
            lines.append(f"  - Assigned to: {issue.assigned_to.value}")
        if issue.fixed is not None:
            lines.append(f"  - Fixed: {'yes' if issue.fixed else 'no'}")
    lines.append("")

    for message in result.defense_responses:
        lines += ["## Defense", ""] + _message_lines(message)
    if result.verdict is not None:
        lines += ["## Verdict", ""] + _message_lines(result.verdict)

    if result.fix_tasks:
        lines += ["## Fix Tasks", ""]
        for task in result.fix_tasks:
            lines += [
                f"### {task.issue.id} via {task.assigned_backend.value}: {task.status.value}",
                "",
                task.result or "",
                "",
            ]

    return _write_report(lines, output_dir, f"review_{_slug(result.path)}")
