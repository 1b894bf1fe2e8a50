"""Debate orchestration: opening, challenge/defend/evaluate rounds, final verdict."""

import logging
import time
import uuid
from datetime import datetime

from config.config_loader import PromptsConfig
from cli_debate import prompts as prompt_builder
from cli_debate.events import EventBus, EventType
from cli_debate.executors.base import ExecutorError, ExecutorUnavailableError, create_executor
from cli_debate.models import DebateConfig, DebateResult, ExecutorRole, Message, Phase, RoundResult, RunStatus
from cli_debate.orchestrator import BaseOrchestrator, ExecutorFactory, elapsed_ms

logger = logging.getLogger(__name__)


class DebateOrchestrator(BaseOrchestrator):
    """Runs Opening -> Round(1..N) -> Final, strictly one step at a time.

    Every step's prompt is built from the transcript as it stands when the
    step starts, so nothing here runs concurrently.
    """

    def __init__(
        self,
        config: DebateConfig,
        prompts: PromptsConfig,
        bus: EventBus | None = None,
        executor_factory: ExecutorFactory = create_executor,
    ) -> None:
        if config.rounds < 0:
            raise ValueError(f"rounds must be >= 0, got {config.rounds}")
        super().__init__(
            roles={
                ExecutorRole.MODERATOR: config.moderator,
                ExecutorRole.CHALLENGER: config.challenger,
                ExecutorRole.DEFENDER: config.defender,
            },
            streaming=config.streaming,
            bus=bus,
            executor_factory=executor_factory,
        )
        self._config = config
        self._prompts = prompts

    async def _run_opening(self) -> Message:
        self.bus.emit(EventType.PHASE_START, phase=Phase.OPENING)
        prompt = prompt_builder.opening_prompt(self._prompts, self._config.topic)
        message = await self._invoke(ExecutorRole.MODERATOR, prompt, Phase.OPENING)
        self.bus.emit(EventType.PHASE_END, phase=Phase.OPENING)
        return message

    async def _run_round(self, round_number: int) -> RoundResult:
        start = time.monotonic()
        topic = self._config.topic
        self.bus.emit(EventType.ROUND_START, round_number=round_number)
        logger.info("Starting round %d/%d", round_number, self._config.rounds)

        challenger_message = await self._invoke(
            ExecutorRole.CHALLENGER,
            prompt_builder.challenger_prompt(self._prompts, topic, round_number, self._messages),
            Phase.ROUND,
            round_number,
        )
        defender_message = await self._invoke(
            ExecutorRole.DEFENDER,
            prompt_builder.defender_prompt(self._prompts, topic, round_number, self._messages),
            Phase.ROUND,
            round_number,
        )
        moderator_evaluation = await self._invoke(
            ExecutorRole.MODERATOR,
            prompt_builder.evaluation_prompt(self._prompts, topic, round_number, self._messages),
            Phase.ROUND,
            round_number,
        )

        round_result = RoundResult(
            round_number=round_number,
            challenger_message=challenger_message,
            defender_message=defender_message,
            moderator_evaluation=moderator_evaluation,
            duration_ms=elapsed_ms(start),
        )
        self.bus.emit(EventType.ROUND_END, round_result=round_result)
        logger.info("Round %d complete in %.1fs", round_number, round_result.duration_ms / 1000)
        return round_result

    async def _run_final(self) -> Message:
        self.bus.emit(EventType.PHASE_START, phase=Phase.FINAL)
        prompt = prompt_builder.final_verdict_prompt(self._prompts, self._config.topic, self._messages)
        message = await self._invoke(ExecutorRole.MODERATOR, prompt, Phase.FINAL)
        self.bus.emit(EventType.PHASE_END, phase=Phase.FINAL)
        return message

    async def run(self) -> DebateResult:
        """Run the full debate.

        Returns:
            DebateResult with status COMPLETED, or FAILED with ``error`` set.
            The transcript so far is kept in ``messages`` either way.
        """
        self._reset()
        start = time.monotonic()
        result = DebateResult(
            id=str(uuid.uuid4()),
            topic=self._config.topic,
            status=RunStatus.PENDING,
            start_time=datetime.now(),
        )

        try:
            await self._ensure_available()

            result.status = RunStatus.IN_PROGRESS
            self.bus.emit(EventType.DEBATE_START, debate_id=result.id, topic=result.topic)
            logger.info("Debate %s started: %d rounds", result.id, self._config.rounds)

            result.opening = await self._run_opening()
            for round_number in range(1, self._config.rounds + 1):
                result.rounds.append(await self._run_round(round_number))
            result.final_verdict = await self._run_final()

            result.status = RunStatus.COMPLETED
        except (ExecutorError, ExecutorUnavailableError) as exc:
            result.status = RunStatus.FAILED
            result.error = str(exc)
            logger.error("Debate %s failed: %s", result.id, exc)
        except Exception as exc:
            result.status = RunStatus.FAILED
            result.error = f"Unexpected error: {exc}"
            logger.exception("Debate %s failed unexpectedly", result.id)

        result.messages = list(self._messages)
        result.end_time = datetime.now()
        result.total_duration_ms = elapsed_ms(start)

        if result.status is RunStatus.FAILED:
            self.bus.emit(EventType.ERROR, error=result.error)
        self.bus.emit(EventType.DEBATE_END, result=result)
        return result
