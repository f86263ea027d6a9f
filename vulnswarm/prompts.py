"""Default directives and prompt templates.

Every template here can be overridden from the ``prompts`` section of
settings.yaml. Templates use str.format placeholders, so literal braces in JSON
examples are doubled.
"""

# --- Worker directives (system prompts) -------------------------------------

SPAWNER_DIRECTIVE = """You are the Expert Spawner. You analyze smart contracts and decide which
security specialists are needed to find vulnerabilities in them.

Identify the relevant defect classes, the external protocols the code integrates
with, and any unusual patterns. Recommend a specialist for each relevant area. If a
pattern fits no known specialist, describe it under novel patterns so a custom
specialist can be created for it.

Always answer with a single JSON object."""

RED_TEAM_DIRECTIVE = """You are Red Team Attacker #{index}. Your job is to falsify weak vulnerability findings.

Most reported findings are false positives. When attacking a finding, first
acknowledge genuine merit, then look for the guard, modifier, or check the author
missed, capital requirements no real attacker has, admin controls that neutralize
the issue, and flawed assumptions. Do not attack findings that are plainly valid."""

BLUE_TEAM_DIRECTIVE = """You are Blue Team Defender #{index}. Your job is to defend valid vulnerability findings.

Answer each attack point with concrete evidence: exact code paths and line numbers,
and why a cited protection does not apply or can be bypassed. If an attack is
correct, concede it plainly. Defending a false positive damages the team."""

DEVILS_ADVOCATE_DIRECTIVE = """You are Devil's Advocate #{index}. You challenge findings that survived the red team
with extreme skepticism: historical precedent, whether the issue is already patched,
realistic capital and gas requirements, front-running exposure, and whether a
rational attacker would bother. Be skeptical, not unfair."""

ADJUDICATOR_DIRECTIVE = """You are the Adjudicator. You have witnessed an adversarial debate over vulnerability
findings and must decide which claims stand.

The debate is the validation: a finding that survived the red team, the defense
and the devil's advocate with a sound technical argument should be validated. A
finding that was conceded or conclusively disproven should be rejected. Look for
connections between findings, shared root causes, and chains that raise severity.

Always reference findings by the EXACT id shown in the findings catalog."""

SMITH_DIRECTIVE = """You are an Exploit Smith specialising in the {approach} approach.

{guidance}

Requirements: the proof of concept must compile and run as a Foundry test, log
each attack step and the resulting profit, and be reproducible."""

SMITH_GUIDANCE = {
    "direct": "Write the simplest possible exploit: fewest steps, one transaction if possible.",
    "amplified": (
        "Amplify the attack with borrowed capital (flash loans from Aave, Balancer or "
        "Uniswap), accounting for loan fees, to maximise measurable impact."
    ),
    "chained": (
        "Combine this vulnerability with related weaknesses into a single attack "
        "where the whole is greater than the sum of its parts."
    ),
}

FORGE_MASTER_DIRECTIVE = """You are the Forge Master. You receive several exploit approaches for the same
vulnerability and combine the best parts into one final proof of concept that
compiles, demonstrates nonzero measurable impact, and is reproducible across
several chain snapshots. Output only the final Foundry test file."""

JUDGE_DIRECTIVE = """You are Verifier #{index}. You independently verify exploit-backed vulnerability
claims. Score reproducibility, novelty and feasibility from 0.0 to 1.0 and vote
pass or fail with detailed reasoning. Always answer with a single JSON object."""

# --- Prompt templates ---------------------------------------------------------

SPAWN_TEMPLATE = """Analyze this target and decide which security specialists to spawn.

TARGET:
Name: {name}
Location: {location}
Chain: {chain}

SOURCE CODE:
```
{content}
```

KNOWN DEFECT PATTERNS:
{defect_catalog}

KNOWN PROTOCOL INTEGRATIONS:
{integration_catalog}

Respond with JSON:
{{
  "summary": "Brief analysis of what the code does",
  "detected_patterns": ["pattern"],
  "integrations": ["protocol"],
  "specialists": [
    {{
      "name": "ExpertName",
      "kind": "defect|integration|pattern|novel",
      "rationale": "Why this specialist is needed",
      "directive": "Detailed system prompt for this specialist",
      "focus_tags": ["code", "areas"],
      "temperature": 0.0
    }}
  ],
  "novel_patterns": ["Patterns that need a custom specialist"]
}}"""

NOVEL_SPECIALIST_TEMPLATE = """Create a specialist for this novel pattern.

PATTERN: {pattern}

CODE CONTEXT:
{content}

Respond with JSON:
{{
  "name": "PatternNameExpert",
  "directive": "What to look for and how to analyze it",
  "focus_tags": ["code patterns to examine"],
  "temperature": 0.0
}}"""

ANALYSIS_TEMPLATE = """Analyze this target for vulnerabilities in your area of expertise.

Focus areas: {focus}

TARGET:
Name: {name}
Location: {location}
Chain: {chain}

SOURCE CODE:
```
{content}
```

If you find vulnerabilities, respond with a JSON array:
[
  {{
    "category": "vulnerability type",
    "title": "Brief title",
    "description": "Detailed description",
    "severity": "CRITICAL|HIGH|MEDIUM|LOW|INFORMATIONAL",
    "confidence": 0.0,
    "affected_functions": ["function"],
    "affected_lines": [{{"file": "Contract.sol", "start": 10, "end": 20}}],
    "exploit_scenario": "Step by step exploit",
    "proof_of_concept": "Optional code snippet",
    "estimated_impact": 0
  }}
]

If you find nothing, respond with []"""

PRESENT_TEMPLATE = """Present your vulnerability finding to the debate panel.

Finding id: {finding_id}

CODE CONTEXT:
{context}

YOUR FINDING:
{finding}

State what the vulnerability is, exactly where it is in the code, how it can be
exploited, and the impact. Be prepared to defend it against aggressive attacks."""

ATTACK_TEMPLATE = """Attack this vulnerability finding. Be ruthless but fair.

Finding id: {finding_id}

CODE CONTEXT:
{context}

FINDING:
{finding}

SPECIALIST'S PRESENTATION:
{presentation}

Consider missed protections (guards, modifiers, checks), feasibility (capital,
timing, permissions), and flawed assumptions. If the finding has merit, say so."""

DEFEND_TEMPLATE = """Defend this vulnerability finding against the red team attack.

Finding id: {finding_id}

CODE CONTEXT:
{context}

FINDING:
{finding}

RED TEAM ATTACK:
{attack}

Address each attack point with evidence. If you cannot defend the finding, concede.
End your answer with a JSON object {{"concede": true}} or {{"concede": false}}."""

CHALLENGE_TEMPLATE = """Challenge this surviving finding with extreme skepticism.

Finding id: {finding_id}

CODE CONTEXT:
{context}

FINDING:
{finding}

DEBATE HISTORY:
{history}

Ask the hardest questions: real-world precedent, patch status, capital required,
front-running exposure, and the realistic rather than theoretical impact."""

FINAL_TEMPLATE = """Give closing arguments for this finding.

Finding id: {finding_id}

FINDING:
{finding}

FULL DEBATE:
{history}

Summarize why the finding is valid (or why the attacks were compelling), the
realistic impact, the recommended severity, and the key evidence."""

SYNTHESIS_TEMPLATE = """You have witnessed the entire debate. Synthesize what is actually true.

=== CODE CONTEXT ===
{context}

=== DEBATE TRANSCRIPT ===
{transcript}

=== FINDINGS CATALOG ===
{catalog}

Validate the findings that survived the debate, reject the ones that were
disproven or conceded, and describe connections between findings.

Respond with JSON, using the EXACT ids from the catalog:
{{
  "summary": "Overall synthesis",
  "validated": [
    {{
      "id": "finding_xxx",
      "title": "exact title from the catalog",
      "description": "Updated description",
      "severity": "CRITICAL|HIGH|MEDIUM|LOW|INFORMATIONAL",
      "confidence": 0.0,
      "notes": "Why this stands"
    }}
  ],
  "rejected": [
    {{"id": "finding_xxx", "reason": "Which argument disproved it"}}
  ],
  "insights": ["Insights that emerged from the full debate"],
  "combined_attack": "How findings chain together, if they do",
  "root_cause": "Shared underlying cause, if any",
  "recommended_severity": "CRITICAL|HIGH|MEDIUM|LOW|INFORMATIONAL",
  "estimated_impact": 0,
  "confidence": 0.0
}}"""

FORGE_TEMPLATE = """Write a proof-of-concept exploit for this validated vulnerability.

Finding id: {finding_id}

VULNERABILITY:
{finding}

CODE:
{context}

COMBINED ATTACK VECTOR:
{combined_attack}

Output a complete Foundry test file."""

COMBINE_TEMPLATE = """Combine these exploit approaches into one final exploit.

Finding id: {finding_id}

{approaches}

Keep the best elements of each. Output only the final Foundry test code."""

JUDGE_TEMPLATE = """Verify this exploit as an independent security researcher.

Finding id: {finding_id}

=== VULNERABILITY ===
{finding}

=== EXPLOIT CODE ===
{code}

=== EXECUTION RESULTS ===
{test_results}

Respond with JSON:
{{
  "vote": "pass|fail",
  "reason": "Detailed explanation",
  "reproducibility_score": 0.0,
  "novelty_score": 0.0,
  "feasibility_score": 0.0,
  "concerns": ["Any concerns"]
}}"""
