"""Built-in knowledge: defect indicators, protocol integration signatures, past exploits."""

import re
from dataclasses import dataclass

from vulnswarm.models import Severity, SpecialistDefinition, SpecialistKind


@dataclass(frozen=True)
class DefectPattern:
    name: str
    key: str
    indicators: tuple[str, ...]
    severity: Severity
    examples: tuple[str, ...]


@dataclass(frozen=True)
class IntegrationPattern:
    name: str
    signatures: tuple[str, ...]
    risks: tuple[str, ...]
    addresses: tuple[str, ...] = ()


@dataclass(frozen=True)
class HistoricalExploit:
    name: str
    protocol: str
    date: str
    loss_usd: int
    defect_key: str
    description: str
    attack_vector: str


DEFECT_PATTERNS: tuple[DefectPattern, ...] = (
    DefectPattern(
        "Reentrancy", "reentrancy",
        (".call{value:", ".call(", ".delegatecall(", "transfer(", "send(", "safeTransfer",
         "onERC721Received", "onERC1155Received", "tokensReceived"),
        Severity.CRITICAL, ("The DAO", "Cream Finance", "Curve"),
    ),
    DefectPattern(
        "Access Control", "access-control",
        ("onlyOwner", "onlyAdmin", "onlyRole", "require(msg.sender", "if (msg.sender",
         "initialize(", "init(", "_setupRole", "grantRole", "transferOwnership"),
        Severity.CRITICAL, ("Ronin Bridge", "Wormhole"),
    ),
    DefectPattern(
        "Flash Loan Attack", "flash-loan",
        ("flashLoan", "flash(", "executeOperation", "receiveFlashLoan", "getFlashLoanAmount"),
        Severity.HIGH, ("bZx", "Harvest Finance"),
    ),
    DefectPattern(
        "Oracle Manipulation", "oracle",
        ("getPrice", "latestRoundData", "latestAnswer", "getReserves", "slot0", "observe",
         "consult", "TWAP"),
        Severity.HIGH, ("Mango Markets", "Cream Iron Bank"),
    ),
    DefectPattern(
        "Integer Issues", "integer",
        ("unchecked", "type(uint256).max", "/ ", "* ", "% ", "** ", ">> ", "<< "),
        Severity.MEDIUM, ("YAM Finance", "Compound"),
    ),
    DefectPattern(
        "Frontrunning/MEV", "frontrunning",
        ("slippage", "minAmount", "deadline", "commit-reveal", "private", "mempool"),
        Severity.MEDIUM, ("Bancor",),
    ),
    DefectPattern(
        "Logic Error", "logic",
        ("==", "!=", "<=", ">=", "&&", "||", "require(", "assert(", "if ("),
        Severity.HIGH, ("Compound", "Wormhole"),
    ),
)

INTEGRATION_PATTERNS: tuple[IntegrationPattern, ...] = (
    IntegrationPattern(
        "Uniswap V2",
        ("swapExactTokensForTokens", "swapTokensForExactTokens", "addLiquidity",
         "removeLiquidity", "getReserves", "IUniswapV2Pair", "IUniswapV2Router",
         "IUniswapV2Factory"),
        ("Spot price manipulation", "Flash swap reentrancy", "Sandwich attacks"),
        ("0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D", "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f"),
    ),
    IntegrationPattern(
        "Uniswap V3",
        ("exactInputSingle", "exactInput", "exactOutputSingle", "exactOutput", "ISwapRouter",
         "IUniswapV3Pool", "slot0", "observe", "positions"),
        ("TWAP manipulation", "Tick rounding errors", "Position NFT vulnerabilities"),
        ("0xE592427A0AEce92De3Edee1F18E0157C05861564", "0x1F98431c8aD98523631AE4a59f267346ea31F984"),
    ),
    IntegrationPattern(
        "Aave V3",
        ("supply", "borrow", "repay", "withdraw", "liquidationCall", "flashLoan",
         "flashLoanSimple", "getUserAccountData", "IPool", "IAToken", "IVariableDebtToken"),
        ("Flash loan callbacks", "Health factor manipulation", "Liquidation races"),
        ("0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2",),
    ),
    IntegrationPattern(
        "Chainlink",
        ("latestRoundData", "latestAnswer", "getRoundData", "AggregatorV3Interface", "priceFeed"),
        ("Stale prices", "Round completion", "Decimal mismatches"),
    ),
    IntegrationPattern(
        "Compound",
        ("mint(", "redeem(", "borrow(", "repayBorrow", "liquidateBorrow", "ICToken",
         "IComptroller", "getAccountLiquidity"),
        ("Interest rate manipulation", "Oracle manipulation", "Liquidation issues"),
    ),
    IntegrationPattern(
        "Curve",
        ("exchange", "exchange_underlying", "add_liquidity", "remove_liquidity",
         "get_virtual_price", "ICurvePool", "ICurveRegistry"),
        ("Read-only reentrancy", "Virtual price manipulation", "Imbalanced pools"),
    ),
    IntegrationPattern(
        "Balancer",
        ("swap", "batchSwap", "joinPool", "exitPool", "flashLoan", "IVault", "IBalancerPool"),
        ("Flash loan (zero fee)", "Pool manipulation", "Rate provider issues"),
        ("0xBA12222222228d8Ba445958a75a0704d566BF2C8",),
    ),
)

HISTORICAL_EXPLOITS: tuple[HistoricalExploit, ...] = (
    HistoricalExploit("The DAO", "The DAO", "2016-06-17", 60_000_000, "reentrancy",
                      "Classic reentrancy attack on recursive call in splitDAO",
                      "External call before state update allowed recursive withdrawal"),
    HistoricalExploit("Ronin Bridge", "Ronin Network", "2022-03-23", 625_000_000, "access-control",
                      "Compromised validator keys allowed unauthorized withdrawals",
                      "Attacker gained control of 5 of 9 validators"),
    HistoricalExploit("Wormhole", "Wormhole", "2022-02-02", 326_000_000, "logic",
                      "Signature verification bypass allowed minting of unbacked tokens",
                      "Deprecated function still accessible, bypassing the signature check"),
    HistoricalExploit("Mango Markets", "Mango Markets", "2022-10-11", 114_000_000, "oracle",
                      "Price manipulation of a low-liquidity token inflated collateral value",
                      "Spot price manipulation to inflate borrowing power"),
    HistoricalExploit("Cream Finance", "Cream Finance", "2021-10-27", 130_000_000, "reentrancy",
                      "Flash loan reentrancy through price oracle update",
                      "Cross-protocol reentrancy via AMP token callbacks"),
    HistoricalExploit("Curve Finance", "Curve", "2023-07-30", 70_000_000, "reentrancy",
                      "Vyper compiler bug enabled reentrancy",
                      "Reentrancy guard not applied in Vyper 0.2.x"),
    HistoricalExploit("Euler Finance", "Euler", "2023-03-13", 197_000_000, "logic",
                      "Donation attack through liquidation logic flaw",
                      "Self-liquidation with donated reserves to extract value"),
    HistoricalExploit("Beanstalk", "Beanstalk", "2022-04-17", 182_000_000, "flash-loan",
                      "Flash loan used to pass a malicious governance proposal",
                      "Flash borrowed governance tokens to pass a proposal in one block"),
)

FALLBACK_SPECIALISTS: tuple[SpecialistDefinition, ...] = (
    SpecialistDefinition(
        name="ReentrancyExpert",
        kind=SpecialistKind.DEFECT,
        rationale="Default specialist for external call ordering",
        directive=(
            "You are a reentrancy specialist. Look for state changes after external calls, "
            "cross-function and read-only reentrancy, and callback hooks such as "
            "onERC721Received and tokensReceived."
        ),
        focus_tags=("external calls", "state updates", "callbacks"),
        knowledge_refs=("reentrancy",),
    ),
    SpecialistDefinition(
        name="AccessControlExpert",
        kind=SpecialistKind.DEFECT,
        rationale="Default specialist for privileged entry points",
        directive=(
            "You are an access control specialist. Look for missing or incorrect modifiers, "
            "unprotected initializers, and privilege escalation paths."
        ),
        focus_tags=("modifiers", "initializers", "roles"),
        knowledge_refs=("access-control",),
    ),
    SpecialistDefinition(
        name="LogicErrorExpert",
        kind=SpecialistKind.DEFECT,
        rationale="Default specialist for business logic",
        directive=(
            "You are a business logic specialist. Look for incorrect conditions, off-by-one "
            "errors, rounding mistakes, and broken accounting invariants."
        ),
        focus_tags=("conditions", "accounting", "invariants"),
        knowledge_refs=("logic",),
    ),
)


def _normalize(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", text.lower())


def format_defect_catalog() -> str:
    return "\n".join(
        f"- {p.name} ({p.severity.value}): indicators {', '.join(p.indicators[:6])}"
        for p in DEFECT_PATTERNS
    )


def format_integration_catalog() -> str:
    return "\n".join(
        f"- {p.name}: signatures {', '.join(p.signatures[:5])}; risks {', '.join(p.risks)}"
        for p in INTEGRATION_PATTERNS
    )


def find_defect(ref: str) -> DefectPattern | None:
    """Catalog defect whose key or name appears in ref (e.g. 'ReentrancyExpert')."""
    needle = _normalize(ref)
    for pattern in DEFECT_PATTERNS:
        if _normalize(pattern.key) in needle or _normalize(pattern.name) in needle:
            return pattern
    return None


def find_integration(ref: str) -> IntegrationPattern | None:
    needle = _normalize(ref)
    for pattern in INTEGRATION_PATTERNS:
        if _normalize(pattern.name) in needle:
            return pattern
    return None


def detect_integrations(content: str) -> list[str]:
    """Integrations whose signatures appear in the code, at least two hits each."""
    found = []
    for pattern in INTEGRATION_PATTERNS:
        hits = sum(1 for sig in pattern.signatures if sig in content)
        if hits >= 2:
            found.append(pattern.name)
    return found


def is_known_pattern(text: str) -> bool:
    return find_defect(text) is not None or find_integration(text) is not None


def knowledge_for(definition: SpecialistDefinition) -> str:
    """Catalog knowledge to append to a specialist's directive, or "" when none matches."""
    refs = (definition.name, *definition.knowledge_refs)
    sections: list[str] = []

    if definition.kind in (SpecialistKind.DEFECT, SpecialistKind.PATTERN):
        defect = next((d for d in map(find_defect, refs) if d), None)
        if defect:
            exploits = [e for e in HISTORICAL_EXPLOITS if e.defect_key == defect.key]
            lines = [
                f"{defect.name} (typical severity {defect.severity.value})",
                f"Indicators: {', '.join(defect.indicators)}",
            ]
            lines.extend(
                f"Past exploit: {e.name} ({e.date}, ${e.loss_usd:,}): {e.attack_vector}"
                for e in exploits
            )
            sections.append("\n".join(lines))

    if definition.kind == SpecialistKind.INTEGRATION:
        integration = next((i for i in map(find_integration, refs) if i), None)
        if integration:
            lines = [
                f"{integration.name} integration",
                f"Signatures: {', '.join(integration.signatures)}",
                f"Known risks: {', '.join(integration.risks)}",
            ]
            if integration.addresses:
                lines.append(f"Mainnet contracts: {', '.join(integration.addresses)}")
            sections.append("\n".join(lines))

    if not sections:
        return ""
    return "=== KNOWLEDGE BASE ===\n" + "\n\n".join(sections)
