"""Executor: one external CLI invocation per call, streamed, with a hard timeout."""

import asyncio
import codecs
import contextlib
import logging
import os
import shutil
import signal
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from cli_debate.executors.templates import CommandTemplate, template_for
from cli_debate.models import AgentConfig, BackendIdentity, ExecutionResult, ExecutorRole, Message

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 300.0
TIMEOUT_ERROR = "Execution timed out"

_READ_SIZE = 4096

# Children run in their own session so a timeout can signal the whole group
_POSIX = os.name == "posix"


class ExecutorError(Exception):
    """Raised by orchestrators when an executor invocation fails."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"[{name}] {message}")


class ExecutorUnavailableError(Exception):
    """Raised before any phase runs when role-bound executors are missing."""

    def __init__(self, unavailable: list[str]) -> None:
        self.unavailable = unavailable
        super().__init__(f"Executors unavailable: {', '.join(unavailable)}")


@dataclass(frozen=True)
class ProcessOutcome:
    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool = False
    launch_error: str | None = None


def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError, PermissionError):
        if _POSIX:
            os.killpg(proc.pid, signal.SIGTERM)
        else:
            proc.terminate()


async def run_process(
    command: str | Sequence[str],
    *,
    timeout_sec: float | None = None,
    cwd: str | None = None,
    on_chunk: Callable[[str], None] | None = None,
) -> ProcessOutcome:
    """Run a command, streaming stdout to ``on_chunk`` as it arrives.

    A string is run through the shell, a sequence is exec'd directly.
    On timeout the process group gets SIGTERM, so grandchildren spawned by a
    shell command stop too, and the partial output is returned without
    waiting for it to exit. Launch failures are returned, not raised.
    """
    try:
        if isinstance(command, str):
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=_POSIX,
            )
        else:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=_POSIX,
            )
    except (OSError, ValueError) as exc:
        return ProcessOutcome(returncode=None, stdout="", stderr="", launch_error=str(exc))

    stdout_parts: list[str] = []
    stderr_parts: list[str] = []

    async def pump(
        stream: asyncio.StreamReader,
        parts: list[str],
        callback: Callable[[str], None] | None,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                parts.append(text)
                if callback:
                    callback(text)
            if not data:
                break

    async def communicate() -> int:
        await asyncio.gather(
            pump(proc.stdout, stdout_parts, on_chunk),
            pump(proc.stderr, stderr_parts, None),
        )
        return await proc.wait()

    try:
        returncode = await asyncio.wait_for(communicate(), timeout=timeout_sec)
    except TimeoutError:
        _terminate(proc)
        return ProcessOutcome(
            returncode=None,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            timed_out=True,
        )
    except BaseException:
        _terminate(proc)
        raise

    return ProcessOutcome(
        returncode=returncode,
        stdout="".join(stdout_parts),
        stderr="".join(stderr_parts),
    )


class Executor:
    """A stateless wrapper around one backend CLI, bound to a debate role."""

    def __init__(
        self,
        backend: BackendIdentity,
        role: ExecutorRole,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        extra_args: Sequence[str] = (),
        template: CommandTemplate | None = None,
        cwd: str | None = None,
    ) -> None:
        self._backend = backend
        self._template = template or template_for(backend)
        self.role = role
        self.timeout_sec = timeout_sec
        self._extra_args = tuple(extra_args)
        self._cwd = cwd

    @property
    def backend(self) -> BackendIdentity:
        return self._backend

    @property
    def template(self) -> CommandTemplate:
        return self._template

    def name(self) -> str:
        return f"{self.role.value}:{self._backend.value}"

    def build_args(self, prompt: str) -> list[str]:
        return self._template.render(prompt, self._extra_args)

    async def is_available(self) -> bool:
        """True iff the backend program resolves on PATH. Never raises."""
        try:
            path = await asyncio.to_thread(shutil.which, self._template.command)
        except Exception as exc:
            logger.debug("Availability check for %s failed: %s", self.name(), exc)
            return False
        return path is not None

    async def execute(
        self,
        prompt: str,
        context: Sequence[Message] | None = None,
        timeout_sec: float | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ) -> ExecutionResult:
        """Run the backend once with ``prompt``.

        Args:
            prompt: Full prompt text; prompts already embed the transcript.
            context: Transcript the prompt was built from (logged only).
            timeout_sec: Overrides the executor's default timeout.
            on_chunk: Called with every decoded stdout increment.

        Returns:
            ExecutionResult. Process failures (non-zero exit, timeout, launch
            error) are reported in the result, never raised.
        """
        timeout = timeout_sec if timeout_sec is not None else self.timeout_sec
        argv = self.build_args(prompt)
        logger.debug(
            "Executing %s (timeout %.0fs, %d context messages)",
            self.name(), timeout, len(context or ()),
        )

        start = time.monotonic()
        outcome = await run_process(argv, timeout_sec=timeout, cwd=self._cwd, on_chunk=on_chunk)
        duration_ms = int((time.monotonic() - start) * 1000)

        if outcome.launch_error is not None:
            logger.warning("%s failed to launch: %s", self.name(), outcome.launch_error)
            return ExecutionResult(success=False, output="", duration_ms=duration_ms, error=outcome.launch_error)

        if outcome.timed_out:
            logger.warning("%s timed out after %.0fs", self.name(), timeout)
            return ExecutionResult(
                success=False,
                output=outcome.stdout,
                duration_ms=duration_ms,
                error=TIMEOUT_ERROR,
                timed_out=True,
            )

        if outcome.returncode != 0:
            error = outcome.stderr.strip() or f"exit code {outcome.returncode}"
            logger.warning("%s exited with code %s", self.name(), outcome.returncode)
            return ExecutionResult(
                success=False,
                output=outcome.stdout.strip(),
                duration_ms=duration_ms,
                error=error,
            )

        logger.info("%s finished in %.2fs", self.name(), duration_ms / 1000)
        return ExecutionResult(success=True, output=outcome.stdout.strip(), duration_ms=duration_ms)


def create_executor(config: AgentConfig, cwd: str | None = None) -> Executor:
    return Executor(
        backend=config.backend,
        role=config.role,
        timeout_sec=config.timeout_sec,
        extra_args=config.extra_args,
        cwd=cwd,
    )
