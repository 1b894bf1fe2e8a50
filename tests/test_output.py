"""Tests for cli_debate/output.py."""

import io
from datetime import datetime
from pathlib import Path

import pytest
from rich.console import Console

from cli_debate.events import EventBus, EventType
from cli_debate.models import (
    BackendIdentity,
    BuildCheckResult,
    CodeReviewResult,
    DebateResult,
    ExecutorRole,
    FixStatus,
    FixTask,
    Issue,
    IssueSeverity,
    IssueType,
    Message,
    Phase,
    RoundResult,
    RunStatus,
)
from cli_debate.output import EventPrinter, _slug, save_debate, save_review


def _message(role: ExecutorRole, backend: BackendIdentity, content: str, phase: Phase) -> Message:
    return Message(
        id=content, role=role, backend=backend, content=content, timestamp=datetime.now(), phase=phase
    )


@pytest.fixture
def sample_debate_result() -> DebateResult:
    opening = _message(ExecutorRole.MODERATOR, BackendIdentity.GEMINI, "Welcome.", Phase.OPENING)
    rnd = RoundResult(
        round_number=1,
        challenger_message=_message(ExecutorRole.CHALLENGER, BackendIdentity.CLAUDE, "Objection.", Phase.ROUND),
        defender_message=_message(ExecutorRole.DEFENDER, BackendIdentity.CODEX, "Rebuttal.", Phase.ROUND),
        moderator_evaluation=_message(ExecutorRole.MODERATOR, BackendIdentity.GEMINI, "Even.", Phase.ROUND),
        duration_ms=1500,
    )
    final = _message(ExecutorRole.MODERATOR, BackendIdentity.GEMINI, "Defender wins.", Phase.FINAL)
    return DebateResult(
        id="d1",
        topic="Should we use YAML or JSON?",
        status=RunStatus.COMPLETED,
        start_time=datetime.now(),
        opening=opening,
        rounds=[rnd],
        final_verdict=final,
        total_duration_ms=4200,
    )


@pytest.fixture
def sample_review_result() -> CodeReviewResult:
    issue = Issue(
        "issue-1", IssueType.SECURITY, IssueSeverity.HIGH, "Hardcoded key",
        file_path="app.py", line_number=3, assigned_to=BackendIdentity.CODEX, fixed=False,
    )
    task = FixTask(
        id="t1", issue=issue, assigned_backend=BackendIdentity.CODEX,
        status=FixStatus.FAILED, result="sandbox denied", duration_ms=10,
    )
    return CodeReviewResult(
        id="r1",
        path="./src/app",
        status=RunStatus.COMPLETED,
        start_time=datetime.now(),
        build_check=BuildCheckResult(
            success=False, command="make", output="", duration_ms=5, errors=["missing target"]
        ),
        issues=[issue],
        fix_tasks=[task],
    )


def test_slug_basic():
    assert _slug("Should we use YAML or JSON?") == "should-we-use-yaml-or-json"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("API vs. SDK (2024)")
    assert "." not in result
    assert "(" not in result


def test_save_debate_creates_file(tmp_path: Path, sample_debate_result: DebateResult):
    saved = save_debate(sample_debate_result, tmp_path / "nested" / "output")
    assert saved.exists()
    assert saved.suffix == ".md"
    assert "debate_should-we-use-yaml-or-json" in saved.name


def test_save_debate_content(tmp_path: Path, sample_debate_result: DebateResult):
    content = save_debate(sample_debate_result, tmp_path).read_text(encoding="utf-8")
    assert "# Debate: Should we use YAML or JSON?" in content
    assert "## Round 1" in content
    assert "### Challenger (claude)" in content
    assert "Rebuttal." in content
    assert "## Final Verdict" in content
    assert content.index("Welcome.") < content.index("Objection.") < content.index("Defender wins.")


def test_save_debate_slug_override(tmp_path: Path, sample_debate_result: DebateResult):
    saved = save_debate(sample_debate_result, tmp_path, slug_override="my-topic")
    assert saved.name.endswith("_debate_my-topic.md")


def test_save_debate_failed_includes_error(tmp_path: Path, sample_debate_result: DebateResult):
    sample_debate_result.status = RunStatus.FAILED
    sample_debate_result.error = "[defender:codex] round failed: boom"
    content = save_debate(sample_debate_result, tmp_path).read_text(encoding="utf-8")
    assert "**Status:** failed" in content
    assert "round failed: boom" in content


def test_save_review_content(tmp_path: Path, sample_review_result: CodeReviewResult):
    content = save_review(sample_review_result, tmp_path).read_text(encoding="utf-8")
    assert "# Code Review: ./src/app" in content
    assert "## Build Check (failed)" in content
    assert "- missing target" in content
    assert "**issue-1** [security/high] Hardcoded key" in content
    assert "`app.py:3`" in content
    assert "Fixed: no" in content
    assert "issue-1 via codex: failed" in content


def _printer() -> tuple[EventPrinter, io.StringIO]:
    buffer = io.StringIO()
    return EventPrinter(Console(file=buffer, width=120, force_terminal=False)), buffer


def test_event_printer_renders_messages_and_chunks():
    printer, buffer = _printer()
    bus = EventBus()
    bus.subscribe(printer)

    bus.emit(EventType.ROUND_START, round_number=2)
    bus.emit(EventType.MESSAGE_START, role=ExecutorRole.CHALLENGER, backend=BackendIdentity.CLAUDE, phase=Phase.ROUND)
    bus.emit(EventType.MESSAGE_CHUNK, chunk="streamed text", role=ExecutorRole.CHALLENGER)
    bus.emit(EventType.ERROR, error="something broke")

    out = buffer.getvalue()
    assert "Round 2" in out
    assert "Challenger (claude)" in out
    assert "streamed text" in out
    assert "something broke" in out


def test_event_printer_labels_fix_tasks(sample_review_result: CodeReviewResult):
    printer, buffer = _printer()
    issue = sample_review_result.issues[0]
    bus = EventBus()
    bus.subscribe(printer)

    bus.emit(
        EventType.MESSAGE_START,
        role=ExecutorRole.FIXER,
        backend=BackendIdentity.CODEX,
        task_id="t1",
        issue=issue,
    )

    assert "Fixer (codex) fixing issue-1" in buffer.getvalue()


def test_event_printer_prints_unstreamed_message_at_end():
    printer, buffer = _printer()
    bus = EventBus()
    bus.subscribe(printer)
    message = _message(ExecutorRole.DEFENDER, BackendIdentity.CODEX, "The design holds [for now].", Phase.ROUND)

    bus.emit(EventType.MESSAGE_START, role=ExecutorRole.DEFENDER, backend=BackendIdentity.CODEX, phase=Phase.ROUND)
    bus.emit(EventType.MESSAGE_END, message=message)

    assert "The design holds [for now]." in buffer.getvalue()


def test_event_printer_does_not_repeat_streamed_message():
    printer, buffer = _printer()
    bus = EventBus()
    bus.subscribe(printer)
    message = _message(ExecutorRole.CHALLENGER, BackendIdentity.CLAUDE, "chunked reply", Phase.ROUND)

    bus.emit(EventType.MESSAGE_START, role=ExecutorRole.CHALLENGER, backend=BackendIdentity.CLAUDE, phase=Phase.ROUND)
    bus.emit(EventType.MESSAGE_CHUNK, chunk="chunked reply", role=ExecutorRole.CHALLENGER)
    bus.emit(EventType.MESSAGE_END, message=message)

    assert buffer.getvalue().count("chunked reply") == 1


def test_event_printer_prints_unstreamed_fix_result(sample_review_result: CodeReviewResult):
    printer, buffer = _printer()
    task = FixTask(
        id="t1",
        issue=sample_review_result.issues[0],
        assigned_backend=BackendIdentity.GEMINI,
        status=FixStatus.COMPLETED,
        result="Moved the key to an environment variable.",
    )
    bus = EventBus()
    bus.subscribe(printer)

    bus.emit(EventType.MESSAGE_END, task=task)

    out = buffer.getvalue()
    assert "Fixer (gemini) issue-1: completed" in out
    assert "Moved the key to an environment variable." in out
