"""
Pydantic models for generated exam questions.

The generative model answers in camelCase; fields accept those keys through
aliases and also accept their snake_case names.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from exam_generator.models.protocol_models import Archetype, StructuralForm

OPTION_KEYS = ("(1)", "(2)", "(3)", "(4)")


class RawQuestion(BaseModel):
    """Represents a single question as produced by the normalizer."""
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    question_number: Optional[int] = Field(
        default=None,
        alias="questionNumber",
        description="Position of the question in the generated batch")
    question_text: str = Field(
        alias="questionText",
        description="The question stem, including any statements or matrices")
    options: Dict[str, str] = Field(
        description='Answer options keyed "(1)".."(4)"')
    correct_answer: str = Field(
        alias="correctAnswer",
        description='Key of the correct option, e.g. "(2)"')
    archetype: Archetype = Field(
        description="Cognitive role of the question")
    structural_form: StructuralForm = Field(
        alias="structuralForm",
        description="Presentation format of the question")
    cognitive_load: Literal["low", "medium", "high"] = Field(
        default="medium",
        alias="cognitiveLoad",
        description="Declared cognitive density")
    difficulty: Optional[str] = Field(
        default=None,
        description="Difficulty tag emitted by the model")
    fidelity: Optional[Literal["strict", "moderate", "loose"]] = Field(
        default=None,
        alias="ncertFidelity",
        description="How closely the wording follows the curriculum text")
    explanation: str = Field(
        default="",
        description="Why the correct answer is correct")

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _normalize_answer_key(cls, value):
        if isinstance(value, int):
            return f"({value})"
        text = str(value).strip()
        if text.isdigit():
            return f"({text})"
        return text

    @field_validator("cognitive_load", "fidelity", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    def option_texts(self) -> List[str]:
        return [self.options[k] for k in sorted(self.options)]


class QuestionBatch(BaseModel):
    """Typed output of the normalizer: the only shape downstream code sees."""
    questions: List[RawQuestion] = Field(
        min_length=1,
        description="Candidate questions in generation order")
    warnings: List[str] = Field(
        default_factory=list,
        description="Items dropped during normalization and why")


class AcceptedQuestion(BaseModel):
    """A question that passed validation and is ready to persist."""
    model_config = ConfigDict(frozen=True)

    unit_id: str
    question_order: int = Field(
        ge=1, description="Unit-scoped ordinal, strictly increasing")
    question: RawQuestion
