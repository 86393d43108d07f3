"""
Generation prompt construction.

Turns a protocol, its resolved difficulty weights and a topic into the
instruction text sent to the generation service, with exact per-category
question counts.
"""
from typing import Dict, List

from exam_generator.core.quota import allocate_quotas
from exam_generator.models.protocol_models import (
    Archetype,
    Protocol,
    ResolvedConfig,
    StructuralForm,
)

ARCHETYPE_DESCRIPTIONS = {
    Archetype.DIRECT_RECALL: (
        "Direct Recall",
        "Single-concept factual knowledge, definitions, terminology. Use exact curriculum wording."),
    Archetype.DIRECT_APPLICATION: (
        "Direct Application",
        "Single-step application of a concept to a straightforward scenario."),
    Archetype.INTEGRATIVE: (
        "Integrative/Multi-concept",
        "Combine two or more concepts, requiring connections across topics."),
    Archetype.DISCRIMINATOR: (
        "Conceptual Discriminator",
        "Separate subtle distinctions by exploiting a specific misconception."),
    Archetype.EXCEPTION_OUTLIER: (
        "Exception/Outlier Logic",
        "Identify exceptions to general rules, special cases and outliers."),
    Archetype.THEORY_ATTRIBUTION: (
        "Theory Attribution",
        "Link a theory, principle or concept to the thinker who proposed it."),
    Archetype.CALCULATION_NUMERICAL: (
        "Calculation/Numerical",
        "Short computation such as a ratio, percentile or score interpretation."),
}

FORM_DESCRIPTIONS = {
    StructuralForm.STANDARD_MCQ: (
        "Standard 4-Option MCQ",
        "Single stem with 4 options (1), (2), (3), (4)."),
    StructuralForm.MATCH_FOLLOWING: (
        "Match-the-Following",
        "Always a 4×4 matrix with coded options (template below)."),
    StructuralForm.ASSERTION_REASON: (
        "Assertion-Reason",
        "Two statements with 4 options about truth and linkage (template below)."),
    StructuralForm.NEGATIVE_PHRASING: (
        "Negative Phrasing",
        'Use "Which is NOT correct", "incorrect statement" or "exception" wording.'),
    StructuralForm.MULTI_STATEMENT: (
        "Multi-Statement Combination",
        "Give 2-5 statements and ask for the correct coded combination (template below)."),
    StructuralForm.SCENARIO_BASED_MCQ: (
        "Scenario-Based MCQ",
        "A short classroom or real-life situation followed by a single question."),
}

FORM_TEMPLATES = {
    StructuralForm.MATCH_FOLLOWING: """### Match-the-Following Template
The questionText MUST contain the complete matrix and the exact ending phrase.
Options contain ONLY coded combinations.

Match Column I with Column II:

Column I                          Column II
A. [Item 1]                       I. [Description 1]
B. [Item 2]                       II. [Description 2]
C. [Item 3]                       III. [Description 3]
D. [Item 4]                       IV. [Description 4]

Choose the correct answer from the options given below:
(1) A-III, B-I, C-IV, D-II
(2) A-I, B-II, C-III, D-IV
(3) A-II, B-IV, C-I, D-III
(4) A-IV, B-III, C-II, D-I""",
    StructuralForm.ASSERTION_REASON: """### Assertion-Reason Template
The questionText MUST contain Assertion (A), Reason (R) and the ending phrase.
The word "explanation" MUST appear in options (1) and (2).

Assertion (A): [Statement about a concept]
Reason (R): [Statement offering a reason]

In the light of the above statements, choose the correct answer from the options given below:
(1) Both A and R are true and R is the correct explanation of A
(2) Both A and R are true but R is NOT the correct explanation of A
(3) A is true but R is false
(4) A is false but R is true""",
    StructuralForm.MULTI_STATEMENT: """### Multi-Statement Template
Given below are two statements:

Statement I: [First statement]
Statement II: [Second statement]

In the light of the above statements, choose the correct answer from the options given below:
(1) Both Statement I and Statement II are true
(2) Both Statement I and Statement II are false
(3) Statement I is true but Statement II is false
(4) Statement I is false but Statement II is true

OR list statements A-D and offer coded combinations such as "A and B only".""",
}

OUTPUT_SCHEMA = """{
  "questions": [
    {
      "questionNumber": 1,
      "questionText": "Full question text, including any statements or matrix",
      "archetype": "%(archetypes)s",
      "structuralForm": "%(forms)s",
      "cognitiveLoad": "low" | "medium" | "high",
      "correctAnswer": "(1)" | "(2)" | "(3)" | "(4)",
      "options": {
        "(1)": "Full text of option 1",
        "(2)": "Full text of option 2",
        "(3)": "Full text of option 3",
        "(4)": "Full text of option 4"
      },
      "explanation": "Why the correct answer is right and the others are wrong",
      "difficulty": "easy" | "medium" | "hard",
      "ncertFidelity": "strict" | "moderate" | "loose"
    }
  ]
}"""


def _count_lines(counts: Dict, descriptions: Dict) -> List[str]:
    lines = []
    for key, count in counts.items():
        label, description = descriptions.get(key, (key.value, ""))
        lines.append(f"- **{count} {label}** (`{key.value}`): {description}".rstrip())
    return lines


def _section(title: str, lines: List[str]) -> str:
    return f"## {title}\n\n" + "\n".join(lines)


def build_prompt(
    protocol: Protocol,
    resolved: ResolvedConfig,
    topic: str,
    batch_target: int,
    total_target: int
) -> str:
    """
    Build the generation instruction for one batch.

    Args:
        protocol: Active protocol for the unit's exam and subject.
        resolved: Protocol weights resolved for the unit's difficulty.
        topic: Chapter or topic name.
        batch_target: Number of questions to request in this call.
        total_target: Number of questions in the whole paper.

    Returns:
        The instruction string.
    """
    archetype_counts = allocate_quotas(resolved.archetypes, batch_target)
    form_counts = allocate_quotas(resolved.structural_forms, batch_target)
    density_counts = allocate_quotas(resolved.density_mix, batch_target)
    fidelity_counts = allocate_quotas(resolved.fidelity, batch_target)
    rules = protocol.cognitive_load

    sections = [
        f'You are an expert {protocol.name} question paper setter. Generate exactly '
        f'{batch_target} high-quality {protocol.exam}-style {protocol.subject} questions '
        f'from the provided study materials for the topic: "{topic}".\n\n'
        f'This batch is part of a {total_target}-question paper at "{resolved.difficulty}" '
        f'difficulty. Follow the {protocol.name} protocol strictly.',

        _section(
            "QUESTION ARCHETYPE DISTRIBUTION (Exact Counts)",
            ["Generate exactly:"] + _count_lines(archetype_counts, ARCHETYPE_DESCRIPTIONS)
            + ["", "Every question must fall into exactly ONE archetype."]),

        _section(
            "STRUCTURAL FORM DISTRIBUTION (Exact Counts)",
            ["Generate exactly:"] + _count_lines(form_counts, FORM_DESCRIPTIONS)
            + ["", "Every question must use exactly ONE structural form."]),
    ]

    templates = [FORM_TEMPLATES[f] for f in resolved.structural_forms if f in FORM_TEMPLATES]
    if templates:
        sections.append("## STRUCTURAL FORM TEMPLATES (Use Exact Formats)\n\n" + "\n\n".join(templates))

    if protocol.co_occurrence:
        lines = []
        for rule in protocol.co_occurrence:
            label = ARCHETYPE_DESCRIPTIONS[rule.archetype][0]
            forms = " OR ".join(FORM_DESCRIPTIONS[f][0] for f in rule.structural_forms)
            verb = "MUST use" if rule.strength == "mandatory" else "STRONGLY prefer"
            lines.append(f"- **{label}** archetype → {verb} {forms}")
        sections.append(_section("CO-OCCURRENCE RULES", lines))

    high_forms = ", ".join(FORM_DESCRIPTIONS[f][0] for f in rules.high_density_forms)
    sections.append(_section("COGNITIVE LOAD SEQUENCING", [
        f"- Density mix: {density_counts.get('low', 0)} low, {density_counts.get('medium', 0)} medium, "
        f"{density_counts.get('high', 0)} high.",
        f"- First {resolved.warmup_count} questions: WARM-UP ZONE, low density only.",
        (f"- NEVER place more than {resolved.max_consecutive_high} high-density questions consecutively."
         if resolved.max_consecutive_high else "- NEVER write high-density questions."),
        f"- High density means: stems over {rules.high_density_word_threshold} words, "
        f"{rules.high_density_decision_threshold}+ statements to judge, or {high_forms or 'n/a'}.",
    ]))

    sections.append(_section(
        "ABSOLUTE PROHIBITIONS (Zero Violations Allowed)",
        [f"- {rule}" for rule in resolved.prohibitions]))

    sections.append(_section("SELF-CONTAINED QUESTIONS", [
        "- NEVER refer to the source in a question: no \"according to NCERT\", "
        "\"as per the notes\", \"the study material states\".",
        "- NEVER add parenthesised editorial notes such as \"(Note: ...)\".",
        "- Write every stem as a direct, authoritative statement.",
    ]))

    sections.append(_section("ANSWER KEY BALANCE", [
        "- Spread correct answers roughly evenly across (1), (2), (3) and (4).",
        "- Never give more than 3 consecutive questions the same correct answer.",
        "- All 4 options must be mutually exclusive and of similar length.",
    ]))

    sections.append(_section("CURRICULUM FIDELITY", [
        f"- {fidelity_counts.get('strict', 0)} questions with strict curriculum wording, "
        f"{fidelity_counts.get('moderate', 0)} moderate paraphrase, {fidelity_counts.get('loose', 0)} loose paraphrase.",
        "- Tag each question's ncertFidelity accordingly.",
    ]))

    schema = OUTPUT_SCHEMA % {
        "archetypes": '" | "'.join(a.value for a in resolved.archetypes),
        "forms": '" | "'.join(f.value for f in resolved.structural_forms),
    }
    sections.append(
        "## OUTPUT FORMAT\n\nReturn ONLY a JSON object in exactly this structure, "
        f"with {batch_target} entries in \"questions\":\n\n{schema}")

    return "\n\n---\n\n".join(sections)
