"""Fill the prompt templates from settings.yaml with transcript and issue context."""

from collections.abc import Sequence

from config.config_loader import PromptsConfig
from cli_debate.models import Issue, IssueType, Message

_ISSUE_TYPE_LABELS = {
    IssueType.BUG: "Bug",
    IssueType.SECURITY: "Security",
    IssueType.PERFORMANCE: "Performance",
    IssueType.DESIGN: "Design",
}


def format_history(messages: Sequence[Message]) -> str:
    """Render the transcript as ``[Role (backend)]`` blocks separated by rules."""
    if not messages:
        return "(no messages yet)"
    return "\n\n---\n\n".join(
        f"[{m.role.value.title()} ({m.backend.value})]:\n{m.content}" for m in messages
    )


def format_issues(issues: Sequence[Issue]) -> str:
    if not issues:
        return "None"
    lines: list[str] = []
    for issue in issues:
        lines.append(
            f"- {issue.id} [{_ISSUE_TYPE_LABELS[issue.type]}][{issue.severity.value}] {issue.description}\n"
            f"  Location: {issue.location or 'unspecified'}"
        )
    return "\n\n".join(lines)


def format_focus(focus: Sequence[IssueType]) -> str:
    if not focus:
        return "Review every kind of issue."
    return "Concentrate on: " + ", ".join(_ISSUE_TYPE_LABELS[t] for t in focus)


def opening_prompt(prompts: PromptsConfig, topic: str) -> str:
    return prompts.moderator_opening.format(topic=topic)


def challenger_prompt(prompts: PromptsConfig, topic: str, round_number: int, history: Sequence[Message]) -> str:
    template = prompts.challenger_first if round_number == 1 else prompts.challenger_followup
    return template.format(topic=topic, round=round_number, history=format_history(history))


def defender_prompt(prompts: PromptsConfig, topic: str, round_number: int, history: Sequence[Message]) -> str:
    return prompts.defender.format(topic=topic, round=round_number, history=format_history(history))


def evaluation_prompt(prompts: PromptsConfig, topic: str, round_number: int, history: Sequence[Message]) -> str:
    return prompts.moderator_evaluation.format(topic=topic, round=round_number, history=format_history(history))


def final_verdict_prompt(prompts: PromptsConfig, topic: str, history: Sequence[Message]) -> str:
    return prompts.moderator_final.format(topic=topic, history=format_history(history))


def review_challenger_prompt(prompts: PromptsConfig, path: str, focus: Sequence[IssueType]) -> str:
    return prompts.review_challenger.format(path=path, focus=format_focus(focus))


def review_defender_prompt(prompts: PromptsConfig, path: str, issues: Sequence[Issue]) -> str:
    return prompts.review_defender.format(path=path, issues=format_issues(issues))


def review_verdict_prompt(prompts: PromptsConfig, path: str, issues: Sequence[Issue], defense: str) -> str:
    return prompts.review_verdict.format(path=path, issues=format_issues(issues), defense=defense)


def fix_task_prompt(prompts: PromptsConfig, path: str, issue: Issue) -> str:
    return prompts.fix_task.format(
        path=path,
        issue_type=_ISSUE_TYPE_LABELS[issue.type],
        severity=issue.severity.value,
        description=issue.description,
        location=issue.location or "unspecified",
        suggested_fix=issue.suggested_fix or "none",
    )
