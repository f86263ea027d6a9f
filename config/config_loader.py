"""Load settings.yaml into typed dataclasses. Reports which providers have API keys."""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from vulnswarm import prompts as default_prompts

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class SwarmConfig:
    provider: str = "claude"
    max_concurrency: int = 5
    max_novel_specialists: int = 2
    context_chars: int = 5000
    output_dir: Path = Path("reports")


@dataclass
class DebateConfig:
    max_findings: int = 15
    batch_size: int = 5
    max_rounds: int = 5
    red_team_size: int = 3
    blue_team_size: int = 2
    devils_advocates: int = 2


@dataclass
class TribunalConfig:
    judges: int = 3
    pass_threshold: int = 2
    auto_accept_threshold: int = 3


@dataclass
class RetryConfig:
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 20.0


@dataclass
class PromptsConfig:
    spawner: str = default_prompts.SPAWNER_DIRECTIVE
    red_team: str = default_prompts.RED_TEAM_DIRECTIVE
    blue_team: str = default_prompts.BLUE_TEAM_DIRECTIVE
    devils_advocate: str = default_prompts.DEVILS_ADVOCATE_DIRECTIVE
    adjudicator: str = default_prompts.ADJUDICATOR_DIRECTIVE
    smith: str = default_prompts.SMITH_DIRECTIVE
    forge_master: str = default_prompts.FORGE_MASTER_DIRECTIVE
    judge: str = default_prompts.JUDGE_DIRECTIVE
    spawn: str = default_prompts.SPAWN_TEMPLATE
    novel_specialist: str = default_prompts.NOVEL_SPECIALIST_TEMPLATE
    analysis: str = default_prompts.ANALYSIS_TEMPLATE
    present: str = default_prompts.PRESENT_TEMPLATE
    attack: str = default_prompts.ATTACK_TEMPLATE
    defend: str = default_prompts.DEFEND_TEMPLATE
    challenge: str = default_prompts.CHALLENGE_TEMPLATE
    final: str = default_prompts.FINAL_TEMPLATE
    synthesis: str = default_prompts.SYNTHESIS_TEMPLATE
    forge: str = default_prompts.FORGE_TEMPLATE
    combine: str = default_prompts.COMBINE_TEMPLATE
    verify: str = default_prompts.JUDGE_TEMPLATE
    smith_guidance: dict[str, str] = field(default_factory=lambda: dict(default_prompts.SMITH_GUIDANCE))


@dataclass
class AppConfig:
    swarm: SwarmConfig
    debate: DebateConfig
    tribunal: TribunalConfig
    retry: RetryConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    roles: dict[str, str] = field(default_factory=dict)
    available_providers: set[str] = field(default_factory=set)

    def provider_for(self, role: str) -> str:
        """Provider name serving a worker role, falling back to the swarm default."""
        return self.roles.get(role, self.swarm.provider)


def _load_prompts(raw: dict | None) -> PromptsConfig:
    raw = raw or {}
    known = {f.name for f in fields(PromptsConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        logger.warning("Ignoring unknown prompt keys: %s", ", ".join(unknown))
    prompts = PromptsConfig()
    for key, value in raw.items():
        if key not in known:
            continue
        if key == "smith_guidance":
            prompts.smith_guidance.update({str(k): str(v) for k, v in value.items()})
        else:
            setattr(prompts, key, str(value))
    return prompts


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs which providers have API keys but does not raise; callers check
    available_providers before building the swarm.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    swarm_raw = raw.get("swarm", {})
    swarm = SwarmConfig(
        provider=str(swarm_raw.get("provider", SwarmConfig.provider)),
        max_concurrency=int(swarm_raw.get("max_concurrency", SwarmConfig.max_concurrency)),
        max_novel_specialists=int(swarm_raw.get("max_novel_specialists", SwarmConfig.max_novel_specialists)),
        context_chars=int(swarm_raw.get("context_chars", SwarmConfig.context_chars)),
        output_dir=Path(swarm_raw.get("output_dir", SwarmConfig.output_dir)),
    )
    if swarm.max_concurrency < 1:
        raise ValueError(f"swarm.max_concurrency must be >= 1, got {swarm.max_concurrency}")

    debate = DebateConfig(**{k: int(v) for k, v in raw.get("debate", {}).items()})
    tribunal = TribunalConfig(**{k: int(v) for k, v in raw.get("tribunal", {}).items()})
    for section, obj, keys in (
        ("debate", debate, ("max_findings", "batch_size", "max_rounds", "red_team_size", "blue_team_size")),
        ("tribunal", tribunal, ("judges", "pass_threshold", "auto_accept_threshold")),
    ):
        for key in keys:
            if getattr(obj, key) < 1:
                raise ValueError(f"{section}.{key} must be >= 1, got {getattr(obj, key)}")
    if tribunal.pass_threshold > tribunal.judges or tribunal.auto_accept_threshold > tribunal.judges:
        raise ValueError(f"tribunal thresholds cannot exceed tribunal.judges ({tribunal.judges})")
    retry_raw = raw.get("retry", {})
    retry = RetryConfig(
        attempts=int(retry_raw.get("attempts", RetryConfig.attempts)),
        base_delay=float(retry_raw.get("base_delay", RetryConfig.base_delay)),
        max_delay=float(retry_raw.get("max_delay", RetryConfig.max_delay)),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw.get("models", {}).items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    roles = {str(k): str(v) for k, v in (raw.get("roles") or {}).items()}
    for role, provider_name in roles.items():
        if provider_name not in models:
            raise ValueError(f"Role '{role}' refers to unknown provider '{provider_name}'")

    return AppConfig(
        swarm=swarm,
        debate=debate,
        tribunal=tribunal,
        retry=retry,
        models=models,
        prompts=_load_prompts(raw.get("prompts")),
        roles=roles,
        available_providers=available_providers,
    )
