"""Code-review orchestration.

Phases, in order:

* BuildCheck (optional): run the configured build command; advisory only.
* Analysis: the challenger lists issues as JSON. No issues ends the run.
* Defense: the defender answers the issue list in free form.
* Verdict: the moderator confirms issues and assigns each to a backend.
* ParallelFix (optional): every confirmed issue goes to a fixer executor;
  all fix tasks run concurrently and the phase waits for all of them.
"""

import asyncio
import contextlib
import copy
import logging
import time
import uuid
from datetime import datetime
from pathlib import Path

from config.config_loader import PromptsConfig
from cli_debate import prompts as prompt_builder
from cli_debate.events import EventBus, EventType
from cli_debate.executors.base import (
    DEFAULT_TIMEOUT_SEC,
    TIMEOUT_ERROR,
    Executor,
    ExecutorError,
    ExecutorUnavailableError,
    create_executor,
    run_process,
)
from cli_debate.executors.templates import DEFAULT_BACKEND
from cli_debate.models import (
    AgentConfig,
    BackendIdentity,
    BuildCheckResult,
    CodeReviewConfig,
    CodeReviewResult,
    ExecutorRole,
    FixStatus,
    FixTask,
    Issue,
    Message,
    Phase,
    RunStatus,
)
from cli_debate.orchestrator import BaseOrchestrator, ExecutorFactory, elapsed_ms
from cli_debate.parsing import Verdict, parse_issues, parse_verdict

logger = logging.getLogger(__name__)


class CodeReviewOrchestrator(BaseOrchestrator):
    """Challenger/defender/moderator review of a code path, with optional fan-out fixes."""

    def __init__(
        self,
        config: CodeReviewConfig,
        prompts: PromptsConfig,
        bus: EventBus | None = None,
        executor_factory: ExecutorFactory = create_executor,
    ) -> None:
        if config.max_parallel_fixes is not None and config.max_parallel_fixes < 1:
            raise ValueError(f"max_parallel_fixes must be >= 1, got {config.max_parallel_fixes}")
        super().__init__(
            roles={
                ExecutorRole.CHALLENGER: config.challenger,
                ExecutorRole.DEFENDER: config.defender,
                ExecutorRole.MODERATOR: config.moderator,
            },
            streaming=config.streaming,
            bus=bus,
            executor_factory=executor_factory,
        )
        self._config = config
        self._prompts = prompts
        self._fixers = self._build_fixers(config.fixers)

    def _build_fixers(self, fixers: list[AgentConfig]) -> dict[BackendIdentity, Executor]:
        """One fixer per backend: the first configured entry wins, else one per known backend."""
        pool: dict[BackendIdentity, Executor] = {}
        for cfg in fixers:
            if cfg.backend not in pool:
                pool[cfg.backend] = self._executor_factory(
                    AgentConfig(cfg.backend, ExecutorRole.FIXER, cfg.timeout_sec, cfg.extra_args)
                )
        if not pool:
            for backend in BackendIdentity:
                pool[backend] = self._executor_factory(
                    AgentConfig(backend, ExecutorRole.FIXER, DEFAULT_TIMEOUT_SEC)
                )
        return pool

    @property
    def fixer_backends(self) -> list[BackendIdentity]:
        return list(self._fixers)

    def _route(self, issue: Issue) -> BackendIdentity:
        backend = issue.assigned_to or DEFAULT_BACKEND
        if backend in self._fixers:
            return backend
        fallback = next(iter(self._fixers))
        logger.warning(
            "No fixer configured for %s, routing %s to %s", backend.value, issue.id, fallback.value
        )
        return fallback

    # Phase 0

    def _build_cwd(self) -> str:
        path = Path(self._config.path)
        if path.is_file():
            return str(path.parent)
        return str(path)

    async def _run_build_check(self) -> BuildCheckResult:
        command = self._config.build_command or ""
        self.bus.emit(EventType.PHASE_START, phase=Phase.BUILD_CHECK)
        logger.info("Running build check: %s", command)

        start = time.monotonic()
        outcome = await run_process(
            command,
            timeout_sec=self._config.build_timeout_sec,
            cwd=self._build_cwd(),
            on_chunk=self._chunk_callback(phase=Phase.BUILD_CHECK),
        )

        if outcome.launch_error is not None:
            errors = [outcome.launch_error]
        elif outcome.timed_out:
            errors = [TIMEOUT_ERROR, *outcome.stderr.splitlines()]
        elif outcome.returncode != 0:
            errors = [line for line in outcome.stderr.splitlines() if line.strip()]
            errors = errors or [f"exit code {outcome.returncode}"]
        else:
            errors = []

        result = BuildCheckResult(
            success=not errors,
            command=command,
            output=outcome.stdout + outcome.stderr,
            duration_ms=elapsed_ms(start),
            errors=errors,
        )
        self.bus.emit(EventType.PHASE_END, phase=Phase.BUILD_CHECK, result=result)
        return result

    # Phase 1

    async def _run_analysis(self, result: CodeReviewResult) -> list[Issue]:
        self.bus.emit(EventType.PHASE_START, phase=Phase.CODE_ANALYSIS)
        prompt = prompt_builder.review_challenger_prompt(self._prompts, self._config.path, self._config.focus)
        message = await self._invoke(ExecutorRole.CHALLENGER, prompt, Phase.CODE_ANALYSIS)

        outcome = parse_issues(message.content)
        if not outcome.ok:
            result.parse_errors.append(f"{Phase.CODE_ANALYSIS.value}: {outcome.error}")

        self.bus.emit(EventType.PHASE_END, phase=Phase.CODE_ANALYSIS, issues=outcome.value)
        return outcome.value

    # Phase 2

    async def _run_defense(self, issues: list[Issue]) -> Message:
        self.bus.emit(EventType.PHASE_START, phase=Phase.ISSUE_DEFENSE)
        prompt = prompt_builder.review_defender_prompt(self._prompts, self._config.path, issues)
        message = await self._invoke(ExecutorRole.DEFENDER, prompt, Phase.ISSUE_DEFENSE)
        self.bus.emit(EventType.PHASE_END, phase=Phase.ISSUE_DEFENSE)
        return message

    # Phase 3

    async def _run_verdict(
        self, result: CodeReviewResult, issues: list[Issue], defense: str
    ) -> tuple[Message, Verdict]:
        self.bus.emit(EventType.PHASE_START, phase=Phase.VERDICT_ASSIGNMENT)
        prompt = prompt_builder.review_verdict_prompt(self._prompts, self._config.path, issues, defense)
        message = await self._invoke(ExecutorRole.MODERATOR, prompt, Phase.VERDICT_ASSIGNMENT)

        outcome = parse_verdict(message.content, issues)
        if not outcome.ok:
            result.parse_errors.append(f"{Phase.VERDICT_ASSIGNMENT.value}: {outcome.error}")

        self.bus.emit(
            EventType.PHASE_END,
            phase=Phase.VERDICT_ASSIGNMENT,
            confirmed_issues=outcome.value.confirmed,
        )
        return message, outcome.value

    # Phase 4

    async def _execute_fix(self, task: FixTask) -> None:
        fixer = self._fixers[task.assigned_backend]
        task.status = FixStatus.IN_PROGRESS
        self.bus.emit(
            EventType.MESSAGE_START,
            role=ExecutorRole.FIXER,
            backend=task.assigned_backend,
            task_id=task.id,
            issue=task.issue,
        )

        start = time.monotonic()
        try:
            execution = await fixer.execute(
                prompt_builder.fix_task_prompt(self._prompts, self._config.path, task.issue),
                on_chunk=self._chunk_callback(task_id=task.id, backend=task.assigned_backend),
            )
        except Exception as exc:
            # Isolated to this task; siblings keep running
            logger.warning("Fix task %s (%s) raised: %s", task.id, task.issue.id, exc)
            task.status = FixStatus.FAILED
            task.result = str(exc) or type(exc).__name__
        else:
            if execution.success:
                task.status = FixStatus.COMPLETED
                task.result = execution.output
            else:
                task.status = FixStatus.FAILED
                task.result = execution.error or execution.output
        task.duration_ms = elapsed_ms(start)

        logger.info(
            "Fix task for %s via %s: %s", task.issue.id, task.assigned_backend.value, task.status.value
        )
        self.bus.emit(EventType.MESSAGE_END, task=task)

    async def _run_fix_task(self, task: FixTask, limiter: asyncio.Semaphore | None) -> None:
        async with limiter or contextlib.nullcontext():
            await self._execute_fix(task)

    async def _run_parallel_fix(self, issues: list[Issue]) -> list[FixTask]:
        self.bus.emit(EventType.PHASE_START, phase=Phase.PARALLEL_FIX)

        groups: dict[BackendIdentity, list[Issue]] = {}
        for issue in issues:
            groups.setdefault(self._route(issue), []).append(issue)

        tasks = [
            FixTask(id=str(uuid.uuid4()), issue=copy.deepcopy(issue), assigned_backend=backend)
            for backend, group in groups.items()
            for issue in group
        ]
        logger.info(
            "Dispatching %d fix tasks across %s",
            len(tasks),
            ", ".join(f"{b.value}={len(g)}" for b, g in groups.items()),
        )

        limit = self._config.max_parallel_fixes
        limiter = asyncio.Semaphore(limit) if limit else None
        await asyncio.gather(*(self._run_fix_task(task, limiter) for task in tasks))

        # Fan-in: only this control flow writes to the shared issues
        by_id = {issue.id: issue for issue in issues}
        for task in tasks:
            source = by_id[task.issue.id]
            source.fixed = task.status is FixStatus.COMPLETED
            source.fix_result = task.result

        self.bus.emit(EventType.PHASE_END, phase=Phase.PARALLEL_FIX, fix_tasks=tasks)
        return tasks

    async def run(self) -> CodeReviewResult:
        """Run the review.

        Returns:
            CodeReviewResult with status COMPLETED, or FAILED with ``error``
            set. Issues and messages gathered before a failure are kept.
        """
        self._reset()
        start = time.monotonic()
        result = CodeReviewResult(
            id=str(uuid.uuid4()),
            path=self._config.path,
            status=RunStatus.PENDING,
            start_time=datetime.now(),
        )

        try:
            await self._ensure_available()

            result.status = RunStatus.IN_PROGRESS
            self.bus.emit(EventType.DEBATE_START, review_id=result.id, path=result.path)
            logger.info("Code review %s started for %s", result.id, result.path)

            if self._config.build_command:
                result.build_check = await self._run_build_check()
                if not result.build_check.success:
                    logger.warning("Build check failed, continuing review")
                    self.bus.emit(EventType.ERROR, error="Build check failed", build_check=result.build_check)

            result.issues = await self._run_analysis(result)
            if result.issues:
                defense = await self._run_defense(result.issues)
                result.defense_responses = [defense]

                result.verdict, verdict = await self._run_verdict(result, result.issues, defense.content)
                result.verdict_summary = verdict.summary
                result.issues = verdict.confirmed

                if self._config.auto_fix and result.issues:
                    result.fix_tasks = await self._run_parallel_fix(result.issues)
            else:
                logger.info("No issues found, skipping defense and verdict")

            result.status = RunStatus.COMPLETED
        except (ExecutorError, ExecutorUnavailableError) as exc:
            result.status = RunStatus.FAILED
            result.error = str(exc)
            logger.error("Code review %s failed: %s", result.id, exc)
        except Exception as exc:
            result.status = RunStatus.FAILED
            result.error = f"Unexpected error: {exc}"
            logger.exception("Code review %s failed unexpectedly", result.id)

        result.messages = list(self._messages)
        result.end_time = datetime.now()
        result.total_duration_ms = elapsed_ms(start)

        if result.status is RunStatus.FAILED:
            self.bus.emit(EventType.ERROR, error=result.error)
        self.bus.emit(EventType.DEBATE_END, result=result)
        return result
