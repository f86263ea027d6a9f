"""Shared pytest fixtures."""

import asyncio
import json
import re
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    DebateConfig,
    ModelConfig,
    PromptsConfig,
    RetryConfig,
    SwarmConfig,
    TribunalConfig,
)
from vulnswarm.models import Artifact, Finding, ModelResponse, Severity, Turn
from vulnswarm.oracle import ReasoningClient
from vulnswarm.providers.base import AIProvider
from vulnswarm.worker import Worker

# First-line markers of the default prompt templates
SPAWN = "Analyze this target and decide"
NOVEL = "Create a specialist"
ANALYZE = "Analyze this target for vulnerabilities"
PRESENT = "Present your vulnerability finding"
ATTACK = "Attack this vulnerability finding"
DEFEND = "Defend this vulnerability finding"
CHALLENGE = "Challenge this surviving finding"
FINAL = "Give closing arguments"
SYNTHESIZE = "You have witnessed the entire debate"
FORGE = "Write a proof-of-concept exploit"
COMBINE = "Combine these exploit approaches"
JUDGE = "Verify this exploit"

_FINDING_ID_RE = re.compile(r"Finding id: (\S+)")
_CATALOG_ID_RE = re.compile(r"\[id: (\S+?)\]")

Route = str | Exception | Callable[[str], "str | Exception"]


def finding_id_in(prompt: str) -> str | None:
    match = _FINDING_ID_RE.search(prompt)
    return match.group(1) if match else None


def catalog_ids_in(prompt: str) -> list[str]:
    return _CATALOG_ID_RE.findall(prompt)


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=ModelResponse(
                provider=provider_name,
                model="mock-model",
                content=response_content,
                latency_sec=0.1,
                input_tokens=10,
                output_tokens=5,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(  # type: ignore[override]
        self,
        prompt: str,
        *,
        system: str = "",
        history: list[Turn] | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        """Default implementation; replaced by AsyncMock in __init__."""
        return ModelResponse(
            provider=self._name,
            model="mock-model",
            content=self._response_content,
            latency_sec=0.1,
        )


class ScriptedProvider(AIProvider):
    """Answers each prompt by the first route whose marker starts the prompt.

    A route is a string, an exception to raise, or a callable taking the prompt.
    Records every call and the peak number of overlapping calls.
    """

    def __init__(
        self,
        routes: dict[str, Route] | None = None,
        provider_name: str = "scripted",
        default: str = "OK",
        delay: float = 0.0,
    ) -> None:
        self._name = provider_name
        self.routes = dict(routes or {})
        self.default = default
        self.delay = delay
        self.calls: list[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "scripted-model"

    def calls_for(self, marker: str) -> list[dict]:
        return [c for c in self.calls if c["prompt"].startswith(marker)]

    def _answer(self, prompt: str) -> str | Exception:
        for marker, route in self.routes.items():
            if prompt.startswith(marker):
                return route(prompt) if callable(route) else route
        return self.default

    async def generate(
        self,
        prompt: str,
        *,
        system: str = "",
        history: list[Turn] | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        self.calls.append({"prompt": prompt, "system": system, "history": list(history or [])})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            answer = self._answer(prompt)
            if isinstance(answer, Exception):
                raise answer
            return ModelResponse(
                provider=self._name,
                model="scripted-model",
                content=answer,
                latency_sec=self.delay,
                input_tokens=10,
                output_tokens=5,
            )
        finally:
            self.in_flight -= 1


def make_finding(**overrides) -> Finding:
    fields = {
        "id": "finding_aaa",
        "artifact_id": "artifact_1",
        "category": "reentrancy",
        "title": "Reentrancy in withdraw",
        "description": "withdraw() sends ETH before zeroing the balance.",
        "severity": Severity.HIGH,
        "confidence": 0.8,
        "discovered_by": "ReentrancyExpert",
    }
    fields.update(overrides)
    return Finding(**fields)


def make_worker(
    provider: AIProvider,
    name: str = "Worker",
    role: str = "specialist",
    prompts: PromptsConfig | None = None,
    limiter: asyncio.Semaphore | None = None,
) -> Worker:
    client = ReasoningClient(provider, limiter or asyncio.Semaphore(5), RetryConfig(attempts=1, base_delay=0.0))
    return Worker(name, role, f"You are {name}.", client, prompts or PromptsConfig())


def findings_json(*titles: str, severity: str = "HIGH", confidence: float = 0.8) -> str:
    return json.dumps([
        {
            "category": "logic",
            "title": title,
            "description": f"Description of {title}",
            "severity": severity,
            "confidence": confidence,
            "affected_functions": ["withdraw"],
        }
        for title in titles
    ])


def validate_all(prompt: str) -> str:
    """Adjudicator that validates every finding in the catalog."""
    return json.dumps({
        "summary": "All findings stand.",
        "validated": [{"id": fid, "severity": "HIGH", "confidence": 0.9} for fid in catalog_ids_in(prompt)],
        "rejected": [],
        "insights": ["Both issues share the missing reentrancy guard"],
    })


PASS_VOTE = json.dumps({
    "vote": "pass",
    "reason": "Reproduces on every snapshot",
    "reproducibility_score": 0.9,
    "novelty_score": 0.6,
    "feasibility_score": 0.9,
    "concerns": [],
})

FAIL_VOTE = json.dumps({
    "vote": "fail",
    "reason": "Does not compile",
    "reproducibility_score": 0.1,
    "novelty_score": 0.1,
    "feasibility_score": 0.1,
    "concerns": ["compile error"],
})


def pipeline_routes(analysis: Route = None) -> dict[str, Route]:
    """Routes for a clean end-to-end run: one specialist, two findings, all verified."""
    return {
        SPAWN: json.dumps({
            "summary": "A vault holding ETH",
            "specialists": [{
                "name": "ReentrancyExpert",
                "kind": "defect",
                "rationale": "External calls before state updates",
                "directive": "Find reentrancy.",
                "focus_tags": ["withdraw"],
            }],
            "novel_patterns": [],
        }),
        ANALYZE: analysis if analysis is not None else findings_json("Reentrancy in withdraw", "Unchecked call"),
        PRESENT: "Here is the issue.",
        ATTACK: "There is no guard, but the capital needed is high.",
        DEFEND: 'No capital is needed, the loop drains the vault. {"concede": false}',
        CHALLENGE: "Has this been seen before?",
        FINAL: "The finding stands.",
        SYNTHESIZE: validate_all,
        FORGE: "```solidity\ncontract Exploit { function run() public {} }\n```",
        COMBINE: "```solidity\ncontract FinalExploit { function run() public {} }\n```",
        JUDGE: PASS_VOTE,
    }


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def prompts() -> PromptsConfig:
    return PromptsConfig()


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(attempts=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def app_config(tmp_path: Path, prompts: PromptsConfig, fast_retry: RetryConfig) -> AppConfig:
    return AppConfig(
        swarm=SwarmConfig(provider="scripted", max_concurrency=5, output_dir=tmp_path / "reports"),
        debate=DebateConfig(),
        tribunal=TribunalConfig(),
        retry=fast_retry,
        models={},
        prompts=prompts,
        available_providers={"scripted"},
    )


@pytest.fixture
def sample_artifact() -> Artifact:
    return Artifact(
        id="artifact_1",
        name="Vault",
        content=(
            "contract Vault {\n"
            "    mapping(address => uint) balances;\n"
            "    function withdraw() external {\n"
            "        (bool ok,) = msg.sender.call{value: balances[msg.sender]}(\"\");\n"
            "        balances[msg.sender] = 0;\n"
            "    }\n"
            "}"
        ),
        chain="ethereum",
        location="0x0000000000000000000000000000000000000001",
    )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()
