"""Shared pytest fixtures."""

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from config.config_loader import AppConfig, BackendConfig, DefaultsConfig, PromptsConfig
from cli_debate.executors.base import Executor
from cli_debate.models import (
    AgentConfig,
    BackendIdentity,
    ExecutionResult,
    ExecutorRole,
    Message,
)


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        moderator_opening="Open the debate on: {topic}",
        moderator_evaluation="Evaluate round {round} on {topic}:\n{history}",
        moderator_final="Final verdict on {topic}:\n{history}",
        challenger_first="Challenge round {round} on {topic}:\n{history}",
        challenger_followup="Challenge again in round {round} on {topic}:\n{history}",
        defender="Defend round {round} on {topic}:\n{history}",
        review_challenger="Review {path}. {focus}",
        review_defender="Defend the code at {path}:\n{issues}",
        review_verdict="Judge {path}:\n{issues}\nDefense:\n{defense}",
        fix_task="Fix {issue_type} ({severity}) in {path}: {description} at {location}. Hint: {suggested_fix}",
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        rounds=2,
        max_rounds=5,
        moderator=BackendIdentity.GEMINI,
        challenger=BackendIdentity.CLAUDE,
        defender=BackendIdentity.CODEX,
        output_dir=tmp_path / "output",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    return AppConfig(
        defaults=sample_defaults_config,
        prompts=sample_prompts_config,
        backends={
            BackendIdentity.CLAUDE: BackendConfig(name=BackendIdentity.CLAUDE, timeout_sec=120, extra_args=["--verbose"]),
        },
    )


@pytest.fixture
def role_configs() -> dict[ExecutorRole, AgentConfig]:
    return {
        ExecutorRole.MODERATOR: AgentConfig(BackendIdentity.GEMINI, ExecutorRole.MODERATOR),
        ExecutorRole.CHALLENGER: AgentConfig(BackendIdentity.CLAUDE, ExecutorRole.CHALLENGER),
        ExecutorRole.DEFENDER: AgentConfig(BackendIdentity.CODEX, ExecutorRole.DEFENDER),
    }


class ConcurrencyTracker:
    """Counts how many mock executions are in flight at once."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0

    def enter(self) -> None:
        self.active += 1
        self.peak = max(self.peak, self.active)

    def exit(self) -> None:
        self.active -= 1


class MockExecutor(Executor):
    """Test double Executor with scripted output and availability.

    ``outputs`` are returned in order; the last one repeats once the list
    is exhausted. ``fail_with`` makes every call return a failed result,
    ``raise_with`` makes every call raise.
    """

    def __init__(
        self,
        backend: BackendIdentity,
        role: ExecutorRole,
        outputs: Sequence[str] = ("Mock output",),
        available: bool = True,
        fail_with: str | None = None,
        raise_with: Exception | None = None,
        delay: float = 0.0,
        tracker: ConcurrencyTracker | None = None,
    ) -> None:
        super().__init__(backend, role)
        self._outputs = list(outputs)
        self.available = available
        self.fail_with = fail_with
        self.raise_with = raise_with
        self.delay = delay
        self.tracker = tracker
        self.prompts: list[str] = []
        self.contexts: list[tuple[Message, ...]] = []
        self.availability_calls = 0

    async def is_available(self) -> bool:
        self.availability_calls += 1
        return self.available

    async def execute(
        self,
        prompt: str,
        context: Sequence[Message] | None = None,
        timeout_sec: float | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> ExecutionResult:
        self.prompts.append(prompt)
        self.contexts.append(tuple(context or ()))
        if self.tracker:
            self.tracker.enter()
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            if self.tracker:
                self.tracker.exit()

        if self.raise_with is not None:
            raise self.raise_with
        if self.fail_with is not None:
            return ExecutionResult(success=False, output="", duration_ms=5, error=self.fail_with)

        output = self._outputs.pop(0) if len(self._outputs) > 1 else self._outputs[0]
        if on_chunk:
            on_chunk(output)
        return ExecutionResult(success=True, output=output, duration_ms=5)


class MockExecutorFactory:
    """ExecutorFactory building MockExecutors scripted per (role, backend)."""

    def __init__(self, scripts: dict[tuple[ExecutorRole, BackendIdentity], dict] | None = None) -> None:
        self._scripts = scripts or {}
        self.created: dict[tuple[ExecutorRole, BackendIdentity], MockExecutor] = {}

    def __call__(self, config: AgentConfig) -> MockExecutor:
        key = (config.role, config.backend)
        executor = MockExecutor(config.backend, config.role, **self._scripts.get(key, {}))
        self.created[key] = executor
        return executor


@pytest.fixture
def mock_factory() -> MockExecutorFactory:
    return MockExecutorFactory()
