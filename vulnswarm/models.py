"""Dataclasses and enums for the vulnerability swarm pipeline. No I/O, no deps."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFORMATIONAL = "INFORMATIONAL"

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHTS[self]

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Case-insensitive lookup. Unknown values rank lowest."""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.INFORMATIONAL


SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFORMATIONAL: 0,
}


class SpecialistKind(str, Enum):
    DEFECT = "defect"
    INTEGRATION = "integration"
    PATTERN = "pattern"
    NOVEL = "novel"

    @classmethod
    def parse(cls, value: Any) -> "SpecialistKind":
        text = str(value).strip().lower()
        # Spawner answers sometimes use "vulnerability" and "protocol"
        aliases = {"vulnerability": cls.DEFECT, "protocol": cls.INTEGRATION}
        if text in aliases:
            return aliases[text]
        try:
            return cls(text)
        except ValueError:
            return cls.PATTERN


class FindingStatus(str, Enum):
    PROPOSED = "proposed"
    DEBATING = "debating"
    VALIDATED = "validated"
    REJECTED = "rejected"
    EXPLOITED = "exploited"
    VERIFIED = "verified"
    UNVERIFIED = "unverified"


class EntryRole(str, Enum):
    PROPOSER = "proposer"
    RED_TEAM = "red-team"
    BLUE_TEAM = "blue-team"
    DEVILS_ADVOCATE = "devils-advocate"
    ADJUDICATOR = "adjudicator"


class EntryAction(str, Enum):
    PRESENT = "present"
    ATTACK = "attack"
    DEFEND = "defend"
    CHALLENGE = "challenge"
    CONCEDE = "concede"
    SYNTHESIZE = "synthesize"


class RoundType(str, Enum):
    PRESENT = "PRESENT"
    ATTACK = "ATTACK"
    DEFEND = "DEFEND"
    CHALLENGE = "CHALLENGE"
    FINAL = "FINAL"


class RoundOutcome(str, Enum):
    CONTINUES = "CONTINUES"
    CONSENSUS = "CONSENSUS"
    REJECTED = "REJECTED"


class Consensus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    SPLIT = "SPLIT"


class PipelineStage(str, Enum):
    RECONNAISSANCE = "reconnaissance"
    EXPERT_SPAWNING = "expert-spawning"
    PARALLEL_ANALYSIS = "parallel-analysis"
    ADVERSARIAL_DEBATE = "adversarial-debate"
    SYNTHESIS = "synthesis"
    EXPLOIT_FORGE = "exploit-forge"
    VERIFICATION = "verification"
    SUBMISSION = "submission"


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass
class Turn:
    role: str              # "user" or "assistant"
    content: str


@dataclass
class ModelResponse:
    provider: str          # "claude", "openai", "gemini", ...
    model: str             # actual model string used
    content: str
    latency_sec: float
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def usage(self) -> Usage:
        return Usage(self.input_tokens, self.output_tokens)


@dataclass(frozen=True)
class Artifact:
    id: str
    name: str
    content: str
    chain: str = "unknown"
    location: str = ""     # on-chain address or file path
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class SpecialistDefinition:
    name: str
    kind: SpecialistKind
    rationale: str
    directive: str
    focus_tags: tuple[str, ...] = ()
    temperature: float = 0.0
    knowledge_refs: tuple[str, ...] = ()


@dataclass
class ArtifactAnalysis:
    artifact_id: str
    summary: str
    detected_patterns: list[str] = field(default_factory=list)
    integrations: list[str] = field(default_factory=list)
    specialists: list[SpecialistDefinition] = field(default_factory=list)
    novel_patterns: list[str] = field(default_factory=list)
    used_fallback: bool = False


@dataclass
class AffectedLocation:
    file: str
    start: int
    end: int


@dataclass
class DebateEntry:
    round: int
    speaker: str
    role: EntryRole
    content: str
    action: EntryAction
    target_finding_id: str | None = None
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class Finding:
    id: str
    artifact_id: str
    category: str
    title: str
    description: str
    severity: Severity
    confidence: float
    discovered_by: str
    affected_functions: list[str] = field(default_factory=list)
    affected_locations: list[AffectedLocation] = field(default_factory=list)
    exploit_narrative: str = ""
    proof_of_concept: str | None = None
    estimated_impact: float | None = None
    status: FindingStatus = FindingStatus.PROPOSED
    created_at: datetime = field(default_factory=utc_now)
    history: list[DebateEntry] = field(default_factory=list)

    @property
    def priority(self) -> float:
        return self.severity.weight * self.confidence


@dataclass
class DebateRound:
    number: int
    type: RoundType
    entries: list[DebateEntry] = field(default_factory=list)
    outcome: RoundOutcome = RoundOutcome.CONTINUES


@dataclass
class DebateSession:
    id: str
    artifact_ids: list[str]
    findings: list[Finding]
    rounds: list[DebateRound] = field(default_factory=list)
    participants: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    ended_at: datetime | None = None


@dataclass
class ValidatedFinding:
    finding_id: str
    severity: Severity
    confidence: float
    notes: str = ""


@dataclass
class RejectedFinding:
    finding_id: str
    reason: str


@dataclass
class Synthesis:
    summary: str
    validated: list[ValidatedFinding] = field(default_factory=list)
    rejected: list[RejectedFinding] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    combined_attack: str | None = None
    root_cause: str | None = None
    recommended_severity: Severity = Severity.INFORMATIONAL
    confidence: float = 0.0
    estimated_impact: float = 0.0
    unresolved: list[str] = field(default_factory=list)

    @property
    def validated_ids(self) -> list[str]:
        return [v.finding_id for v in self.validated]


@dataclass
class ExploitApproach:
    name: str              # "direct", "amplified" or "chained"
    code: str
    estimated_profit: float = 0.0
    capital_required: float = 0.0
    success_probability: float = 0.0


@dataclass
class ExploitTestResult:
    context: str           # execution snapshot label, e.g. a block number
    success: bool
    profit: float = 0.0
    resources_used: int = 0
    logs: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class ExploitCandidate:
    id: str
    finding_id: str
    approaches: list[ExploitApproach]
    final_code: str
    test_results: list[ExploitTestResult] = field(default_factory=list)
    verified: bool = False
    profit_achieved: float = 0.0


@dataclass
class VerificationVote:
    judge_id: str
    vote: str              # "pass" or "fail"
    reason: str
    reproducibility: float
    novelty: float
    feasibility: float
    concerns: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.vote == "pass"

    @property
    def mean_score(self) -> float:
        return (self.reproducibility + self.novelty + self.feasibility) / 3


@dataclass
class VerificationResult:
    finding_id: str
    votes: list[VerificationVote]
    consensus: Consensus
    confidence: float
    auto_submit: bool

    @property
    def pass_count(self) -> int:
        return sum(1 for v in self.votes if v.passed)


@dataclass
class PipelineLogEntry:
    stage: PipelineStage
    action: str
    detail: str = ""
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class PipelineState:
    artifacts: list[Artifact]
    current_stage: PipelineStage = PipelineStage.RECONNAISSANCE
    analyses: list[ArtifactAnalysis] = field(default_factory=list)
    specialists: list[SpecialistDefinition] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    debates: list[DebateSession] = field(default_factory=list)
    synthesis: Synthesis | None = None
    exploits: list[ExploitCandidate] = field(default_factory=list)
    verification_results: list[VerificationResult] = field(default_factory=list)
    logs: list[PipelineLogEntry] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None
    usage: Usage = field(default_factory=Usage)

    def finding(self, finding_id: str) -> Finding | None:
        return next((f for f in self.findings if f.id == finding_id), None)

    def findings_with_status(self, status: FindingStatus) -> list[Finding]:
        return [f for f in self.findings if f.status == status]
