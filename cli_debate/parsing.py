"""Structured output parsing: JSON payloads embedded in free-form model text.

Model output is expected to be malformed some of the time. Every function
here degrades to an empty or fallback value and reports the problem in the
returned ParseOutcome instead of raising.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cli_debate.executors.templates import parse_backend
from cli_debate.models import Issue, IssueSeverity, IssueType

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class IssuePayload(BaseModel):
    """One issue as reported by the challenger."""

    model_config = ConfigDict(extra="ignore")

    type: IssueType = IssueType.BUG
    severity: IssueSeverity = IssueSeverity.MEDIUM
    description: str = ""
    file_path: str | None = Field(default=None, alias="filePath")
    line_number: int | None = Field(default=None, alias="lineNumber")
    suggested_fix: str | None = Field(default=None, alias="suggestedFix")

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> IssueType:
        try:
            return IssueType(str(value).strip().lower())
        except ValueError:
            return IssueType.BUG

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, value: Any) -> IssueSeverity:
        try:
            return IssueSeverity(str(value).strip().lower())
        except ValueError:
            return IssueSeverity.MEDIUM

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str:
        return "" if value is None else _as_text(value)

    @field_validator("file_path", "suggested_fix", mode="before")
    @classmethod
    def _coerce_optional_text(cls, value: Any) -> str | None:
        return None if value is None else _as_text(value)

    @field_validator("line_number", mode="before")
    @classmethod
    def _coerce_line_number(cls, value: Any) -> int | None:
        # Models sometimes answer "12-15" or "n/a"
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


class IssuesPayload(BaseModel):
    # Entries are validated individually, see _validate_entries
    issues: list[Any]


class IssueDecision(BaseModel):
    """The moderator's ruling on a single issue."""

    model_config = ConfigDict(extra="ignore")

    issue_id: str = Field(alias="issueId")
    confirmed: bool = False
    assign_to: str | None = Field(default=None, alias="assignTo")

    @field_validator("issue_id", mode="before")
    @classmethod
    def _coerce_issue_id(cls, value: Any) -> Any:
        return value if value is None else str(value).strip()

    @field_validator("confirmed", mode="before")
    @classmethod
    def _coerce_confirmed(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("assign_to", mode="before")
    @classmethod
    def _coerce_assign_to(cls, value: Any) -> str | None:
        return None if value is None else _as_text(value)


class VerdictPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    confirmed_issues: list[Any] = Field(alias="confirmedIssues")
    summary: str = ""

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value: Any) -> str:
        return "" if value is None else _as_text(value)


def _as_text(value: Any) -> str:
    """Flatten a JSON value into text; lists become one line per item."""
    if isinstance(value, list):
        return "\n".join(str(item) for item in value)
    return str(value)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    return errors[0]["msg"] if errors else str(exc)


def _validate_entries(entries: list[Any], model: type[M]) -> tuple[list[M], list[str]]:
    """Validate each entry separately. Returns (valid entries, errors for skipped ones)."""
    valid: list[M] = []
    errors: list[str] = []
    for position, entry in enumerate(entries, start=1):
        try:
            valid.append(model.model_validate(entry))
        except ValidationError as exc:
            errors.append(f"{model.__name__} #{position}: {_first_error(exc)}")
    return valid, errors


@dataclass
class ParseOutcome(Generic[T]):
    value: T
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Verdict:
    confirmed: list[Issue] = field(default_factory=list)
    summary: str = ""


def extract_json_block(raw: str) -> str:
    """Return the body of the first ```json fence, or the whole text if there is none."""
    match = _JSON_FENCE_RE.search(raw)
    return match.group(1) if match else raw.strip()


def decode_payload(raw: str, model: type[M]) -> tuple[M | None, str | None]:
    """Validate the JSON candidate in ``raw`` against ``model``.

    Returns:
        (payload, None) on success, (None, error_message) otherwise.
    """
    candidate = extract_json_block(raw)
    try:
        return model.model_validate_json(candidate), None
    except ValidationError as exc:
        return None, f"{model.__name__}: {_first_error(exc)}"


def parse_issues(raw: str) -> ParseOutcome[list[Issue]]:
    """Parse the challenger's ``{"issues": [...]}`` payload.

    Entries that cannot be read are skipped and reported in ``error``; the
    rest are kept. Issue ids are assigned to the kept entries in payload
    order: issue-1, issue-2, ...
    """
    payload, error = decode_payload(raw, IssuesPayload)
    if payload is None:
        logger.warning("Could not parse issue list: %s", error)
        return ParseOutcome(value=[], error=error)

    items, skipped = _validate_entries(payload.issues, IssuePayload)
    issues = [
        Issue(
            id=f"issue-{index}",
            type=item.type,
            severity=item.severity,
            description=item.description,
            file_path=item.file_path,
            line_number=item.line_number,
            suggested_fix=item.suggested_fix,
        )
        for index, item in enumerate(items, start=1)
    ]
    if skipped:
        logger.warning("Skipped %d unreadable issue entries: %s", len(skipped), "; ".join(skipped))
    logger.info("Parsed %d issues", len(issues))
    return ParseOutcome(value=issues, error="; ".join(skipped) or None)


def parse_verdict(raw: str, issues: list[Issue]) -> ParseOutcome[Verdict]:
    """Apply the moderator's ``{"confirmedIssues": [...], "summary": ...}`` ruling.

    Confirmed issues keep their original order and get ``assigned_to`` set
    in place; issues not confirmed are dropped from the returned list.
    Malformed decision entries are skipped and reported in ``error``. Only
    an unparseable verdict (bad JSON, no ``confirmedIssues``) keeps every
    issue, unassigned.
    """
    payload, error = decode_payload(raw, VerdictPayload)
    if payload is None:
        logger.warning("Could not parse verdict, keeping all %d issues: %s", len(issues), error)
        return ParseOutcome(value=Verdict(confirmed=list(issues)), error=error)

    valid, skipped = _validate_entries(payload.confirmed_issues, IssueDecision)
    if skipped:
        logger.warning("Skipped %d unreadable verdict entries: %s", len(skipped), "; ".join(skipped))

    decisions: dict[str, IssueDecision] = {}
    for decision in valid:
        decisions.setdefault(decision.issue_id, decision)

    confirmed: list[Issue] = []
    for issue in issues:
        decision = decisions.get(issue.id)
        if decision is None or not decision.confirmed:
            continue
        if decision.assign_to:
            issue.assigned_to = parse_backend(decision.assign_to)
        confirmed.append(issue)

    logger.info("Verdict confirmed %d/%d issues", len(confirmed), len(issues))
    return ParseOutcome(
        value=Verdict(confirmed=confirmed, summary=payload.summary),
        error="; ".join(skipped) or None,
    )
