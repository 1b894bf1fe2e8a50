"""Pure dataclasses and enums for the debate and code-review pipelines. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ExecutorRole(str, Enum):
    MODERATOR = "moderator"
    CHALLENGER = "challenger"
    DEFENDER = "defender"
    FIXER = "fixer"


class BackendIdentity(str, Enum):
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


class Phase(str, Enum):
    OPENING = "opening"
    ROUND = "round"
    FINAL = "final"
    BUILD_CHECK = "build_check"
    CODE_ANALYSIS = "code_analysis"
    ISSUE_DEFENSE = "issue_defense"
    VERDICT_ASSIGNMENT = "verdict_assignment"
    PARALLEL_FIX = "parallel_fix"


class RunStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"  # reserved, invocation timeouts fail the run


class IssueType(str, Enum):
    BUG = "bug"
    SECURITY = "security"
    PERFORMANCE = "performance"
    DESIGN = "design"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FixStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class AgentConfig:
    backend: BackendIdentity
    role: ExecutorRole
    timeout_sec: float = 300.0
    extra_args: tuple[str, ...] = ()


@dataclass(frozen=True)
class Message:
    id: str
    role: ExecutorRole
    backend: BackendIdentity
    content: str
    timestamp: datetime
    phase: Phase
    round_number: int | None = None


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    output: str
    duration_ms: int
    error: str | None = None
    timed_out: bool = False


@dataclass
class Issue:
    id: str                # "issue-1", "issue-2", ...
    type: IssueType
    severity: IssueSeverity
    description: str
    file_path: str | None = None
    line_number: int | None = None
    suggested_fix: str | None = None
    assigned_to: BackendIdentity | None = None
    fixed: bool | None = None
    fix_result: str | None = None

    @property
    def location(self) -> str | None:
        if not self.file_path:
            return None
        if self.line_number is not None:
            return f"{self.file_path}:{self.line_number}"
        return self.file_path


@dataclass
class FixTask:
    id: str
    issue: Issue           # private copy, never the issue in the result collection
    assigned_backend: BackendIdentity
    status: FixStatus = FixStatus.PENDING
    result: str | None = None
    duration_ms: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (FixStatus.COMPLETED, FixStatus.FAILED)


@dataclass(frozen=True)
class RoundResult:
    round_number: int
    challenger_message: Message
    defender_message: Message
    moderator_evaluation: Message
    duration_ms: int


@dataclass
class BuildCheckResult:
    success: bool
    command: str
    output: str
    duration_ms: int
    errors: list[str] = field(default_factory=list)


@dataclass
class DebateConfig:
    topic: str
    rounds: int
    moderator: AgentConfig
    challenger: AgentConfig
    defender: AgentConfig
    streaming: bool = True


@dataclass
class CodeReviewConfig:
    path: str
    challenger: AgentConfig
    defender: AgentConfig
    moderator: AgentConfig
    focus: list[IssueType] = field(default_factory=list)
    build_command: str | None = None
    build_timeout_sec: float = 600.0
    auto_fix: bool = False
    fixers: list[AgentConfig] = field(default_factory=list)
    streaming: bool = True
    max_parallel_fixes: int | None = None   # None = unbounded fan-out


@dataclass
class DebateResult:
    id: str
    topic: str
    status: RunStatus
    start_time: datetime
    opening: Message | None = None
    rounds: list[RoundResult] = field(default_factory=list)
    final_verdict: Message | None = None
    messages: list[Message] = field(default_factory=list)
    end_time: datetime | None = None
    total_duration_ms: int | None = None
    error: str | None = None


@dataclass
class CodeReviewResult:
    id: str
    path: str
    status: RunStatus
    start_time: datetime
    build_check: BuildCheckResult | None = None
    issues: list[Issue] = field(default_factory=list)
    defense_responses: list[Message] = field(default_factory=list)
    verdict: Message | None = None
    verdict_summary: str = ""
    fix_tasks: list[FixTask] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)
    end_time: datetime | None = None
    total_duration_ms: int | None = None
    error: str | None = None
