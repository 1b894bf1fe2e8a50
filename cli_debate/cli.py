"""Click CLI: config loading, role binding, debate/review runs and output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, agent_config, load_config
from cli_debate.code_review import CodeReviewOrchestrator
from cli_debate.debate import DebateOrchestrator
from cli_debate.healthcheck import check_backends
from cli_debate.models import (
    BackendIdentity,
    CodeReviewConfig,
    DebateConfig,
    ExecutorRole,
    IssueType,
    RunStatus,
)
from cli_debate.output import (
    EventPrinter,
    print_debate_summary,
    print_review_summary,
    save_debate,
    save_review,
)
from cli_debate.topic_file import parse_topic_file

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

BACKEND_CHOICE = click.Choice([b.value for b in BackendIdentity], case_sensitive=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _load_app_config(verbose: bool) -> AppConfig:
    load_dotenv()
    _setup_logging(verbose)
    try:
        return load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip().lower() for part in value.split(",") if part.strip()]


def _parse_focus(value: str | None) -> list[IssueType]:
    """Comma-separated issue types. Unknown entries are rejected."""
    focus: list[IssueType] = []
    for name in _split_csv(value):
        try:
            focus.append(IssueType(name))
        except ValueError:
            valid = ", ".join(t.value for t in IssueType)
            raise click.BadParameter(f"unknown issue type '{name}' (expected: {valid})") from None
    return focus


def _parse_backends(value: str | None) -> list[BackendIdentity]:
    backends: list[BackendIdentity] = []
    for name in _split_csv(value):
        try:
            backend = BackendIdentity(name)
        except ValueError:
            valid = ", ".join(b.value for b in BackendIdentity)
            raise click.BadParameter(f"unknown backend '{name}' (expected: {valid})") from None
        if backend not in backends:
            backends.append(backend)
    return backends


def _pick(
    cli_value: str | None, default: BackendIdentity, meta: dict | None = None, key: str = ""
) -> BackendIdentity:
    """CLI flag > frontmatter > config default."""
    if cli_value is not None:
        return BackendIdentity(cli_value.lower())
    if meta and key in meta:
        value = str(meta[key]).strip().lower()
        try:
            return BackendIdentity(value)
        except ValueError:
            raise click.BadParameter(f"unknown backend '{value}' in frontmatter '{key}'") from None
    return default


@click.group()
def main() -> None:
    """cli-debate -- debates and code reviews between LLM command-line tools.

    \b
    Examples:
      cli-debate debate "Should we use REST or GraphQL?" --rounds 1
      cli-debate debate --file topic.md
      cli-debate review -p ./src --focus bug,security --auto-fix
      cli-debate check
    """
    # Model output often carries characters the Windows console codepage can't encode
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")


@main.command()
@click.argument("topic", required=False)
@click.option("--file", "topic_file", type=click.Path(exists=True, dir_okay=False),
              help="Read topic from a .md file (frontmatter may set rounds and roles)")
@click.option("-r", "--rounds", default=None, type=int, help="Number of rounds (default: from config)")
@click.option("-c", "--challenger", type=BACKEND_CHOICE, default=None, help="Challenger backend")
@click.option("-d", "--defender", type=BACKEND_CHOICE, default=None, help="Defender backend")
@click.option("-m", "--moderator", type=BACKEND_CHOICE, default=None, help="Moderator backend")
@click.option("--no-stream", is_flag=True, help="Print messages only when complete")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def debate(
    topic: str | None,
    topic_file: str | None,
    rounds: int | None,
    challenger: str | None,
    defender: str | None,
    moderator: str | None,
    no_stream: bool,
    output_path: str | None,
    verbose: bool,
) -> None:
    """Run a moderated debate on TOPIC."""
    config = _load_app_config(verbose)
    defaults = config.defaults

    meta: dict = {}
    slug_override = None
    if topic_file:
        try:
            topic, meta = parse_topic_file(Path(topic_file))
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="'--file'") from None
        slug_override = Path(topic_file).stem
    if not topic:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument or --file.")
        sys.exit(1)

    effective_rounds = rounds if rounds is not None else meta.get("rounds", defaults.rounds)
    if not 0 <= effective_rounds <= defaults.max_rounds:
        console.print(f"[bold red]Error:[/bold red] rounds must be between 0 and {defaults.max_rounds}.")
        sys.exit(1)

    debate_config = DebateConfig(
        topic=topic,
        rounds=effective_rounds,
        moderator=agent_config(
            config, _pick(moderator, defaults.moderator, meta, "moderator"), ExecutorRole.MODERATOR
        ),
        challenger=agent_config(
            config, _pick(challenger, defaults.challenger, meta, "challenger"), ExecutorRole.CHALLENGER
        ),
        defender=agent_config(
            config, _pick(defender, defaults.defender, meta, "defender"), ExecutorRole.DEFENDER
        ),
        streaming=defaults.streaming and not no_stream,
    )

    console.print(
        f"\n[bold cyan]CLI Debate[/bold cyan] {debate_config.rounds} rounds | "
        f"moderator: {debate_config.moderator.backend.value}, "
        f"challenger: {debate_config.challenger.backend.value}, "
        f"defender: {debate_config.defender.backend.value}"
    )
    console.print(f"Topic: [italic]{topic[:80]}{'...' if len(topic) > 80 else ''}[/italic]\n")

    orchestrator = DebateOrchestrator(debate_config, config.prompts)
    orchestrator.on(EventPrinter(console))
    result = asyncio.run(orchestrator.run())

    print_debate_summary(result)
    output_dir = Path(output_path) if output_path else defaults.output_dir
    saved_path = save_debate(result, output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")

    if result.status is not RunStatus.COMPLETED:
        sys.exit(1)


@main.command()
@click.option("-p", "--path", "review_path", required=True, type=click.Path(exists=True),
              help="File or directory to review")
@click.option("-f", "--focus", default=None, help="Comma-separated issue types: bug,security,performance,design")
@click.option("--build", "build_command", default=None, help="Build command to run before the review")
@click.option("--auto-fix", is_flag=True, help="Dispatch confirmed issues to fixer CLIs in parallel")
@click.option("--fixers", default=None, help="Comma-separated fixer backends (default: all)")
@click.option("--max-parallel", default=None, type=click.IntRange(min=1),
              help="Upper bound on concurrently running fix tasks")
@click.option("-c", "--challenger", type=BACKEND_CHOICE, default=None, help="Challenger backend")
@click.option("-d", "--defender", type=BACKEND_CHOICE, default=None, help="Defender backend")
@click.option("-m", "--moderator", type=BACKEND_CHOICE, default=None, help="Moderator backend")
@click.option("--no-stream", is_flag=True, help="Print messages only when complete")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def review(
    review_path: str,
    focus: str | None,
    build_command: str | None,
    auto_fix: bool,
    fixers: str | None,
    max_parallel: int | None,
    challenger: str | None,
    defender: str | None,
    moderator: str | None,
    no_stream: bool,
    output_path: str | None,
    verbose: bool,
) -> None:
    """Review code at --path, optionally fixing confirmed issues."""
    focus_types = _parse_focus(focus)
    fixer_backends = _parse_backends(fixers)
    config = _load_app_config(verbose)
    defaults = config.defaults

    review_config = CodeReviewConfig(
        path=review_path,
        challenger=agent_config(config, _pick(challenger, defaults.challenger), ExecutorRole.CHALLENGER),
        defender=agent_config(config, _pick(defender, defaults.defender), ExecutorRole.DEFENDER),
        moderator=agent_config(config, _pick(moderator, defaults.moderator), ExecutorRole.MODERATOR),
        focus=focus_types,
        build_command=build_command,
        build_timeout_sec=defaults.build_timeout_sec,
        auto_fix=auto_fix,
        fixers=[agent_config(config, b, ExecutorRole.FIXER) for b in fixer_backends],
        streaming=defaults.streaming and not no_stream,
        max_parallel_fixes=max_parallel,
    )

    console.print(
        f"\n[bold cyan]CLI Code Review[/bold cyan] {review_path} | "
        f"challenger: {review_config.challenger.backend.value}, "
        f"defender: {review_config.defender.backend.value}, "
        f"moderator: {review_config.moderator.backend.value}"
    )
    if focus_types:
        console.print(f"Focus: {', '.join(t.value for t in focus_types)}")
    console.print()

    orchestrator = CodeReviewOrchestrator(review_config, config.prompts)
    orchestrator.on(EventPrinter(console))
    result = asyncio.run(orchestrator.run())

    print_review_summary(result)
    output_dir = Path(output_path) if output_path else defaults.output_dir
    saved_path = save_review(result, output_dir)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")

    if result.status is not RunStatus.COMPLETED:
        sys.exit(1)


@main.command()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def check(verbose: bool) -> None:
    """Check which backend CLIs are installed."""
    load_dotenv()
    _setup_logging(verbose)

    console.print("\n[bold]Checking backends...[/bold]")
    results = asyncio.run(check_backends())
    for backend in sorted(results, key=lambda b: b.value):
        if results[backend]:
            console.print(f"  [green]OK     [/green] {backend.value}")
        else:
            console.print(f"  [red]MISSING[/red] {backend.value}")

    if not any(results.values()):
        console.print("\n[bold red]Error:[/bold red] No backend CLIs found on PATH.")
        sys.exit(1)


if __name__ == "__main__":
    main()
