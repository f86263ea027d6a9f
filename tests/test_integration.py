"""Integration tests: real API calls, no mocks. Requires .env with at least one API key."""

import os
from dataclasses import replace
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

_AVAILABLE_KEYS = [
    k for k in ["ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "XAI_API_KEY"]
    if os.environ.get(k, "").strip()
]
pytestmark = pytest.mark.integration

if not _AVAILABLE_KEYS:
    pytestmark = pytest.mark.skip(reason="Need at least one provider API key")

VAULT = """\
---
name: Vault
chain: ethereum
---
pragma solidity ^0.8.20;

contract Vault {
    mapping(address => uint256) public balances;

    function deposit() external payable {
        balances[msg.sender] += msg.value;
    }

    function withdraw() external {
        uint256 amount = balances[msg.sender];
        (bool ok, ) = msg.sender.call{value: amount}("");
        require(ok, "transfer failed");
        balances[msg.sender] = 0;
    }
}
"""


async def test_full_pipeline_on_small_contract(tmp_path: Path):
    """Run the swarm over one vulnerable contract with a small debate; verify no crash."""
    from config.config_loader import load_config
    from vulnswarm.cli import _build_all_providers
    from vulnswarm.orchestrator import Orchestrator
    from vulnswarm.output import save_report
    from vulnswarm.sources import FileArtifactSource

    config = load_config()
    providers = _build_all_providers(config)
    assert providers, "No providers could be built"
    if config.swarm.provider not in providers:
        config.swarm.provider = sorted(providers)[0]
    config.debate = replace(config.debate, max_findings=2, red_team_size=1, blue_team_size=1, devils_advocates=1)
    config.tribunal = replace(config.tribunal, judges=1, pass_threshold=1, auto_accept_threshold=1)

    target = tmp_path / "Vault.sol"
    target.write_text(VAULT, encoding="utf-8")
    artifact = await FileArtifactSource().fetch(str(target))

    state = await Orchestrator(config, providers).run([artifact])

    assert state.analyses and state.specialists
    assert state.synthesis is not None
    assert state.usage.total_tokens > 0

    saved = save_report(state, tmp_path / "reports")
    content = saved.read_text(encoding="utf-8")
    assert "# Vulnerability Swarm Report: Vault" in content
