"""
Pydantic models for exam protocols.

A protocol is the declarative constraint table for one exam and subject:
distribution ranges per difficulty, cognitive-load rules, co-occurrence
pairings and absolute prohibitions. Protocols are frozen once loaded.
"""
import math
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Archetype(str, Enum):
    """Cognitive role a question tests."""
    DIRECT_RECALL = "directRecall"
    DIRECT_APPLICATION = "directApplication"
    INTEGRATIVE = "integrative"
    DISCRIMINATOR = "discriminator"
    EXCEPTION_OUTLIER = "exceptionOutlier"
    THEORY_ATTRIBUTION = "theoryAttribution"
    CALCULATION_NUMERICAL = "calculationNumerical"


class StructuralForm(str, Enum):
    """Presentation format of a question."""
    STANDARD_MCQ = "standardMCQ"
    MATCH_FOLLOWING = "matchFollowing"
    ASSERTION_REASON = "assertionReason"
    NEGATIVE_PHRASING = "negativePhrasing"
    MULTI_STATEMENT = "multiStatement"
    SCENARIO_BASED_MCQ = "scenarioBasedMCQ"


Difficulty = Literal["easy", "balanced", "hard"]
DensityClass = Literal["low", "medium", "high"]
FidelityClass = Literal["strict", "moderate", "loose"]


class PercentRange(BaseModel):
    """Inclusive percentage range for one category of a distribution."""
    model_config = ConfigDict(frozen=True)

    min: float = Field(ge=0.0, le=100.0, description="Lower bound in percent")
    max: float = Field(ge=0.0, le=100.0, description="Upper bound in percent")

    @model_validator(mode="after")
    def _ordered(self):
        if self.min > self.max:
            raise ValueError(f"range min {self.min} exceeds max {self.max}")
        return self

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2

    def contains(self, percent: float) -> bool:
        return self.min <= percent <= self.max


def check_distribution(name: str, ranges: Dict[str, PercentRange]) -> None:
    """
    Check that a distribution admits an integer allocation for any N.

    Midpoints must sum to 100 and the range bounds must straddle 100.
    Raises ValueError otherwise.
    """
    if not ranges:
        raise ValueError(f"{name}: distribution is empty")
    low = sum(r.min for r in ranges.values())
    high = sum(r.max for r in ranges.values())
    mid = sum(r.midpoint for r in ranges.values())
    if low > 100 + 1e-9 or high < 100 - 1e-9:
        raise ValueError(f"{name}: ranges [{low:g}, {high:g}] cannot sum to 100")
    if not math.isclose(mid, 100.0, abs_tol=0.01):
        raise ValueError(f"{name}: range midpoints sum to {mid:g}, expected 100")


class DifficultyProfile(BaseModel):
    """Distribution ranges for one difficulty level."""
    model_config = ConfigDict(frozen=True)

    archetypes: Dict[Archetype, PercentRange] = Field(
        description="Archetype percentage ranges")
    structural_forms: Dict[StructuralForm, PercentRange] = Field(
        description="Structural form percentage ranges")
    density_mix: Dict[DensityClass, PercentRange] = Field(
        description="Cognitive density percentage ranges (low/medium/high)")

    @model_validator(mode="after")
    def _distributions_sum(self):
        check_distribution("archetypes", self.archetypes)
        check_distribution("structural_forms", self.structural_forms)
        check_distribution("density_mix", self.density_mix)
        return self


class CognitiveLoadRules(BaseModel):
    """Cognitive-load sequencing constraints shared by all difficulties."""
    model_config = ConfigDict(frozen=True)

    max_consecutive_high: int = Field(default=2, ge=0)
    warmup_fraction: float = Field(default=0.1, ge=0.0, le=1.0)
    max_warmup: int = Field(default=3, ge=0)
    high_density_word_threshold: int = Field(
        default=50, ge=1, description="Stems longer than this many words count as high density")
    high_density_decision_threshold: int = Field(
        default=3, ge=1, description="Stems with this many statements to judge count as high density")
    high_density_forms: List[StructuralForm] = Field(
        default_factory=lambda: [StructuralForm.MATCH_FOLLOWING, StructuralForm.ASSERTION_REASON])

    def warmup_count(self, question_count: int) -> int:
        return min(math.floor(question_count * self.warmup_fraction), self.max_warmup)


class CoOccurrenceRule(BaseModel):
    """Archetype that must (or should) be expressed in one of the given forms."""
    model_config = ConfigDict(frozen=True)

    archetype: Archetype
    structural_forms: List[StructuralForm] = Field(min_length=1)
    strength: Literal["mandatory", "strong"]


class Prohibitions(BaseModel):
    """Absolute prohibitions: verbatim rules for the prompt plus the patterns the validator checks."""
    model_config = ConfigDict(frozen=True)

    rules: List[str] = Field(
        description="Prohibition rules listed verbatim in every prompt")
    banned_option_phrases: List[str] = Field(
        default_factory=lambda: ["none of the above", "all of the above"])
    banned_stem_words: List[str] = Field(
        default_factory=lambda: ["always", "never"])
    double_negative_patterns: List[str] = Field(
        default_factory=lambda: [r"\bnot\s+(?:in|un|im|dis|non)-?\w+"],
        description="Regular expressions matched case-insensitively against the stem")
    forbid_subset_options: bool = True
    forbid_both_and_options: bool = True

    @field_validator("banned_option_phrases", "banned_stem_words")
    @classmethod
    def _lowercase(cls, values: List[str]) -> List[str]:
        return [v.lower() for v in values]


class ResolvedConfig(BaseModel):
    """Protocol weights for one difficulty and batch size, as consumed by the prompt builder."""
    model_config = ConfigDict(frozen=True)

    difficulty: Difficulty
    archetypes: Dict[Archetype, PercentRange]
    structural_forms: Dict[StructuralForm, PercentRange]
    density_mix: Dict[DensityClass, PercentRange]
    fidelity: Dict[FidelityClass, PercentRange]
    warmup_count: int
    max_consecutive_high: int
    prohibitions: List[str]


class Protocol(BaseModel):
    """Complete protocol definition for one exam + subject."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (e.g., neet-biology)")
    name: str = Field(description="Display name (e.g., NEET Biology)")
    exam: str = Field(description="Exam / stream name, exact registry key part")
    subject: str = Field(description="Subject name, exact registry key part")
    version: str = "1.0.0"
    description: Optional[str] = None
    difficulty_profiles: Dict[Difficulty, DifficultyProfile]
    fidelity: Dict[FidelityClass, PercentRange] = Field(
        description="Curriculum-wording fidelity ranges")
    cognitive_load: CognitiveLoadRules = Field(default_factory=CognitiveLoadRules)
    co_occurrence: List[CoOccurrenceRule] = Field(default_factory=list)
    prohibitions: Prohibitions

    @model_validator(mode="after")
    def _check_tables(self):
        missing = {"easy", "balanced", "hard"} - set(self.difficulty_profiles)
        if missing:
            raise ValueError(f"missing difficulty profiles: {sorted(missing)}")
        check_distribution("fidelity", self.fidelity)
        return self

    @property
    def key(self) -> tuple:
        return (self.exam, self.subject)

    def declared_archetypes(self) -> set:
        return {a for p in self.difficulty_profiles.values() for a in p.archetypes}

    def declared_forms(self) -> set:
        return {f for p in self.difficulty_profiles.values() for f in p.structural_forms}

    def mandatory_forms(self, archetype: Archetype) -> Optional[List[StructuralForm]]:
        for rule in self.co_occurrence:
            if rule.archetype == archetype and rule.strength == "mandatory":
                return rule.structural_forms
        return None

    def resolve(self, difficulty: Difficulty, question_count: int) -> ResolvedConfig:
        """Map a difficulty level to the weights used for a batch of ``question_count``."""
        profile = self.difficulty_profiles[difficulty]
        return ResolvedConfig(
            difficulty=difficulty,
            archetypes=profile.archetypes,
            structural_forms=profile.structural_forms,
            density_mix=profile.density_mix,
            fidelity=self.fidelity,
            warmup_count=self.cognitive_load.warmup_count(question_count),
            max_consecutive_high=self.cognitive_load.max_consecutive_high,
            prohibitions=self.prohibitions.rules,
        )
