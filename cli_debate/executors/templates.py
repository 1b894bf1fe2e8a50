"""Command templates: the only thing that differs between backend CLIs."""

import logging
from dataclasses import dataclass

from cli_debate.models import BackendIdentity

logger = logging.getLogger(__name__)

PROMPT_PLACEHOLDER = "{prompt}"

# Backend used for unrecognised names and for issues the moderator left unassigned
DEFAULT_BACKEND = BackendIdentity.CLAUDE


@dataclass(frozen=True)
class CommandTemplate:
    """Immutable command line shape for one backend CLI.

    ``args`` holds the fixed arguments with a single ``{prompt}`` entry
    marking where the prompt goes. The prompt is passed as one argv
    element, never through a shell, so it needs no quoting.
    """

    command: str
    args: tuple[str, ...]

    def render(self, prompt: str, extra_args: tuple[str, ...] = ()) -> list[str]:
        rendered = [prompt if arg == PROMPT_PLACEHOLDER else arg for arg in self.args]
        return [self.command, *rendered, *extra_args]


TEMPLATES: dict[BackendIdentity, CommandTemplate] = {
    BackendIdentity.CLAUDE: CommandTemplate("claude", ("--print", PROMPT_PLACEHOLDER)),
    BackendIdentity.CODEX: CommandTemplate("codex", ("--approval-mode", "full-auto", PROMPT_PLACEHOLDER)),
    BackendIdentity.GEMINI: CommandTemplate("gemini", (PROMPT_PLACEHOLDER, "--yolo", "-o", "text")),
}


def template_for(backend: BackendIdentity) -> CommandTemplate:
    return TEMPLATES[backend]


def parse_backend(value: str | BackendIdentity | None) -> BackendIdentity:
    """Map free text (e.g. a moderator's ``assignTo``) to a backend.

    Unknown or empty values resolve to DEFAULT_BACKEND.
    """
    if isinstance(value, BackendIdentity):
        return value
    if value:
        try:
            return BackendIdentity(str(value).strip().lower())
        except ValueError:
            logger.debug("Unknown backend %r, using %s", value, DEFAULT_BACKEND.value)
    return DEFAULT_BACKEND
