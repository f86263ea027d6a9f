"""Tests for the built-in knowledge catalog."""

from vulnswarm import catalog
from vulnswarm.models import SpecialistDefinition, SpecialistKind


def test_find_defect_by_specialist_name():
    assert catalog.find_defect("ReentrancyExpert").key == "reentrancy"
    assert catalog.find_defect("AccessControlExpert").key == "access-control"
    assert catalog.find_defect("GasGriefingExpert") is None


def test_find_integration():
    assert catalog.find_integration("UniswapV3Expert").name == "Uniswap V3"
    assert catalog.find_integration("chainlink oracle").name == "Chainlink"


def test_detect_integrations_needs_two_signatures():
    code = "IUniswapV2Pair pair; pair.getReserves(); router.swapExactTokensForTokens();"
    assert "Uniswap V2" in catalog.detect_integrations(code)
    assert catalog.detect_integrations("priceFeed") == []


def test_knowledge_for_defect_includes_past_exploits():
    definition = SpecialistDefinition("ReentrancyExpert", SpecialistKind.DEFECT, "", "Find reentrancy.")
    knowledge = catalog.knowledge_for(definition)
    assert knowledge.startswith("=== KNOWLEDGE BASE ===")
    assert "The DAO" in knowledge
    assert "onERC721Received" in knowledge


def test_knowledge_for_integration():
    definition = SpecialistDefinition("BalancerExpert", SpecialistKind.INTEGRATION, "", "x")
    knowledge = catalog.knowledge_for(definition)
    assert "Flash loan (zero fee)" in knowledge
    assert "0xBA12222222228d8Ba445958a75a0704d566BF2C8" in knowledge


def test_knowledge_refs_are_consulted():
    definition = SpecialistDefinition(
        "PriceExpert", SpecialistKind.PATTERN, "", "x", knowledge_refs=("oracle",)
    )
    assert "Mango Markets" in catalog.knowledge_for(definition)


def test_no_knowledge_for_novel_specialist():
    definition = SpecialistDefinition("WeirdExpert", SpecialistKind.NOVEL, "", "x")
    assert catalog.knowledge_for(definition) == ""


def test_fallback_set():
    names = [d.name for d in catalog.FALLBACK_SPECIALISTS]
    assert names == ["ReentrancyExpert", "AccessControlExpert", "LogicErrorExpert"]
    assert all(d.temperature == 0.0 for d in catalog.FALLBACK_SPECIALISTS)


def test_is_known_pattern():
    assert catalog.is_known_pattern("Flash loan governance takeover")
    assert not catalog.is_known_pattern("ERC4626 inflation via donation")
