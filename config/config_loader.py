"""Load settings.yaml into typed dataclasses."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from cli_debate.models import AgentConfig, BackendIdentity, ExecutorRole

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

_DEFAULT_TIMEOUT_SEC = 300.0


@dataclass
class BackendConfig:
    name: BackendIdentity
    timeout_sec: float = _DEFAULT_TIMEOUT_SEC
    extra_args: list[str] = field(default_factory=list)


@dataclass
class PromptsConfig:
    moderator_opening: str
    moderator_evaluation: str
    moderator_final: str
    challenger_first: str
    challenger_followup: str
    defender: str
    review_challenger: str
    review_defender: str
    review_verdict: str
    fix_task: str


@dataclass
class DefaultsConfig:
    rounds: int
    max_rounds: int
    moderator: BackendIdentity
    challenger: BackendIdentity
    defender: BackendIdentity
    output_dir: Path
    streaming: bool = True
    build_timeout_sec: float = 600.0


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    prompts: PromptsConfig
    backends: dict[BackendIdentity, BackendConfig] = field(default_factory=dict)


def _backend(value: str, where: str) -> BackendIdentity:
    try:
        return BackendIdentity(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(b.value for b in BackendIdentity)
        raise ValueError(f"Unknown backend '{value}' in {where} (expected one of: {valid})") from None


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises:
        FileNotFoundError: If the settings file is missing.
        ValueError: If a backend name is not a known BackendIdentity.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        rounds=int(defaults_raw["rounds"]),
        max_rounds=int(defaults_raw["max_rounds"]),
        moderator=_backend(defaults_raw["moderator"], "defaults.moderator"),
        challenger=_backend(defaults_raw["challenger"], "defaults.challenger"),
        defender=_backend(defaults_raw["defender"], "defaults.defender"),
        output_dir=Path(defaults_raw["output_dir"]),
        streaming=bool(defaults_raw.get("streaming", True)),
        build_timeout_sec=float(defaults_raw.get("build_timeout_sec", 600)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        moderator_opening=prompts_raw["moderator_opening"],
        moderator_evaluation=prompts_raw["moderator_evaluation"],
        moderator_final=prompts_raw["moderator_final"],
        challenger_first=prompts_raw["challenger_first"],
        challenger_followup=prompts_raw["challenger_followup"],
        defender=prompts_raw["defender"],
        review_challenger=prompts_raw["review_challenger"],
        review_defender=prompts_raw["review_defender"],
        review_verdict=prompts_raw["review_verdict"],
        fix_task=prompts_raw["fix_task"],
    )

    backends: dict[BackendIdentity, BackendConfig] = {}
    for backend_name, backend_raw in (raw.get("backends") or {}).items():
        backend = _backend(backend_name, "backends")
        backend_raw = backend_raw or {}
        backends[backend] = BackendConfig(
            name=backend,
            timeout_sec=float(backend_raw.get("timeout_sec", _DEFAULT_TIMEOUT_SEC)),
            extra_args=[str(a) for a in backend_raw.get("extra_args") or []],
        )
        logger.debug("Backend configured: %s (timeout %ss)", backend.value, backends[backend].timeout_sec)

    return AppConfig(defaults=defaults, prompts=prompts, backends=backends)


def agent_config(config: AppConfig, backend: BackendIdentity, role: ExecutorRole) -> AgentConfig:
    """Bind ``backend`` to ``role`` using that backend's configured timeout and extra args."""
    backend_cfg = config.backends.get(backend, BackendConfig(name=backend))
    return AgentConfig(
        backend=backend,
        role=role,
        timeout_sec=backend_cfg.timeout_sec,
        extra_args=tuple(backend_cfg.extra_args),
    )
