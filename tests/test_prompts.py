"""Tests for cli_debate/prompts.py."""

from datetime import datetime

from cli_debate import prompts
from cli_debate.models import BackendIdentity, ExecutorRole, Issue, IssueSeverity, IssueType, Message, Phase


def _message(role: ExecutorRole, backend: BackendIdentity, content: str) -> Message:
    return Message(
        id=content,
        role=role,
        backend=backend,
        content=content,
        timestamp=datetime.now(),
        phase=Phase.ROUND,
        round_number=1,
    )


def test_format_history_empty():
    assert prompts.format_history([]) == "(no messages yet)"


def test_format_history_blocks_in_order():
    history = [
        _message(ExecutorRole.MODERATOR, BackendIdentity.GEMINI, "Welcome."),
        _message(ExecutorRole.CHALLENGER, BackendIdentity.CLAUDE, "I object."),
    ]
    text = prompts.format_history(history)
    assert text == "[Moderator (gemini)]:\nWelcome.\n\n---\n\n[Challenger (claude)]:\nI object."


def test_format_issues_includes_id_type_and_location():
    issues = [
        Issue("issue-1", IssueType.SECURITY, IssueSeverity.HIGH, "Secret in log", file_path="app.py", line_number=4),
        Issue("issue-2", IssueType.DESIGN, IssueSeverity.LOW, "Too coupled"),
    ]
    text = prompts.format_issues(issues)
    assert "- issue-1 [Security][high] Secret in log" in text
    assert "Location: app.py:4" in text
    assert "Location: unspecified" in text


def test_format_focus():
    assert "every kind" in prompts.format_focus([])
    assert prompts.format_focus([IssueType.BUG, IssueType.SECURITY]) == "Concentrate on: Bug, Security"


def test_challenger_prompt_first_vs_followup(sample_prompts_config):
    first = prompts.challenger_prompt(sample_prompts_config, "Tabs", 1, [])
    later = prompts.challenger_prompt(sample_prompts_config, "Tabs", 2, [])
    assert first.startswith("Challenge round 1 on Tabs")
    assert later.startswith("Challenge again in round 2 on Tabs")


def test_evaluation_prompt_embeds_history(sample_prompts_config):
    history = [_message(ExecutorRole.DEFENDER, BackendIdentity.CODEX, "Spaces are fine.")]
    text = prompts.evaluation_prompt(sample_prompts_config, "Tabs", 1, history)
    assert "[Defender (codex)]:\nSpaces are fine." in text


def test_fix_task_prompt_fields(sample_prompts_config):
    issue = Issue(
        "issue-1", IssueType.PERFORMANCE, IssueSeverity.CRITICAL, "Quadratic loop",
        file_path="x.py", line_number=9, suggested_fix="Use a set",
    )
    text = prompts.fix_task_prompt(sample_prompts_config, "./src", issue)
    assert text == "Fix Performance (critical) in ./src: Quadratic loop at x.py:9. Hint: Use a set"


def test_fix_task_prompt_without_optional_fields(sample_prompts_config):
    issue = Issue("issue-1", IssueType.BUG, IssueSeverity.LOW, "Typo")
    text = prompts.fix_task_prompt(sample_prompts_config, ".", issue)
    assert "at unspecified" in text
    assert "Hint: none" in text


def test_review_verdict_prompt(sample_prompts_config):
    issue = Issue("issue-1", IssueType.BUG, IssueSeverity.HIGH, "Crash")
    text = prompts.review_verdict_prompt(sample_prompts_config, "lib", [issue], "Not a bug.")
    assert text.startswith("Judge lib:")
    assert "issue-1" in text
    assert text.endswith("Defense:\nNot a bug.")
