"""Plumbing shared by the debate and code-review orchestrators."""

import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from cli_debate.events import EventBus, EventType, Listener
from cli_debate.executors.base import Executor, ExecutorError, ExecutorUnavailableError, create_executor
from cli_debate.healthcheck import run_availability_checks
from cli_debate.models import AgentConfig, ExecutorRole, Message, Phase

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[AgentConfig], Executor]


def elapsed_ms(start: float) -> int:
    """Milliseconds since ``start`` (a time.monotonic() value)."""
    return int((time.monotonic() - start) * 1000)


class BaseOrchestrator:
    """Owns the event bus, the role-bound executors and one run's transcript.

    The transcript is append-only and is reset at the start of every run.
    """

    def __init__(
        self,
        roles: dict[ExecutorRole, AgentConfig],
        streaming: bool,
        bus: EventBus | None = None,
        executor_factory: ExecutorFactory = create_executor,
    ) -> None:
        self.bus = bus or EventBus()
        self._streaming = streaming
        self._executor_factory = executor_factory
        # Role is taken from the binding, whatever the AgentConfig says
        self._executors: dict[ExecutorRole, Executor] = {
            role: executor_factory(AgentConfig(cfg.backend, role, cfg.timeout_sec, cfg.extra_args))
            for role, cfg in roles.items()
        }
        self._messages: list[Message] = []

    def on(self, listener: Listener) -> Callable[[], None]:
        """Subscribe ``listener`` to this orchestrator's events."""
        return self.bus.subscribe(listener)

    @property
    def transcript(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def executor(self, role: ExecutorRole) -> Executor:
        return self._executors[role]

    def _reset(self) -> None:
        self._messages = []

    async def _ensure_available(self) -> None:
        """Check every role-bound executor concurrently.

        Raises:
            ExecutorUnavailableError: Naming each unavailable role and backend.
        """
        results = await run_availability_checks({role.value: ex for role, ex in self._executors.items()})
        unavailable = [
            f"{role.value} ({ex.backend.value})"
            for role, ex in self._executors.items()
            if not results[role.value]
        ]
        if unavailable:
            raise ExecutorUnavailableError(unavailable)

    def _chunk_callback(self, **payload: Any) -> Callable[[str], None] | None:
        if not self._streaming:
            return None

        def forward(chunk: str) -> None:
            self.bus.emit(EventType.MESSAGE_CHUNK, chunk=chunk, **payload)

        return forward

    def _record_message(
        self,
        executor: Executor,
        content: str,
        phase: Phase,
        round_number: int | None = None,
    ) -> Message:
        message = Message(
            id=str(uuid.uuid4()),
            role=executor.role,
            backend=executor.backend,
            content=content,
            timestamp=datetime.now(),
            phase=phase,
            round_number=round_number,
        )
        self._messages.append(message)
        return message

    async def _invoke(
        self,
        role: ExecutorRole,
        prompt: str,
        phase: Phase,
        round_number: int | None = None,
    ) -> Message:
        """Run one sequential step and append its message to the transcript.

        Raises:
            ExecutorError: If the invocation fails for any reason.
        """
        executor = self._executors[role]
        self.bus.emit(EventType.MESSAGE_START, role=role, backend=executor.backend, phase=phase)

        result = await executor.execute(
            prompt,
            context=self.transcript,
            on_chunk=self._chunk_callback(role=role, backend=executor.backend),
        )
        if not result.success:
            raise ExecutorError(executor.name(), f"{phase.value} failed: {result.error}")

        message = self._record_message(executor, result.output, phase, round_number)
        self.bus.emit(EventType.MESSAGE_END, message=message)
        return message
