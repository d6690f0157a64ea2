"""
schemas.py — persona classification Pydantic v2 data contracts.

Defines:
  - PersonaType, Mood enums (closed sets)
  - Classification       (classifier output / cached session label)
  - BehaviorFeatures     (classifier input: aggregate metrics + 12-d vector)
  - ClassifyRequest / ClassifyResponse  (HTTP contract, camelCase on the wire)
"""
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from persona_pipeline.rollup.vector import VECTOR_DIMENSIONS


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PersonaType(str, Enum):
    recruiter = "recruiter"
    engineer = "engineer"
    designer = "designer"
    cto = "cto"
    gamer = "gamer"
    curious = "curious"


class Mood(str, Enum):
    professional = "professional"
    casual = "casual"
    exploratory = "exploratory"
    focused = "focused"
    playful = "playful"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class Classification(BaseModel):
    """A persona label with confidence and mood, as returned by any classifier."""
    model_config = ConfigDict(use_enum_values=False)

    persona: PersonaType
    confidence: float = Field(..., ge=0.0, le=1.0)
    mood: Mood = Mood.exploratory
    rationale: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("rationale", "reasoning"),
        description="Free-text justification; LLM classifiers only.",
    )


DEFAULT_PERSONA = PersonaType.curious

# Returned for visitors with no session row or no aggregate yet
DEFAULT_CLASSIFICATION = Classification(
    persona=DEFAULT_PERSONA,
    confidence=0.3,
    mood=Mood.exploratory,
)


# ---------------------------------------------------------------------------
# Classifier input
# ---------------------------------------------------------------------------

class BehaviorFeatures(BaseModel):
    """Everything a classifier may look at. No identifiers, no raw events."""

    vector: List[float] = Field(..., min_length=VECTOR_DIMENSIONS, max_length=VECTOR_DIMENSIONS)
    navigation_path: List[str] = Field(default_factory=list)
    hovered_keywords: List[str] = Field(default_factory=list)
    time_on_homepage: float = 0.0
    scroll_depth: float = 0.0
    idle_time: float = 0.0
    navigation_speed: float = 0.5
    clicked_resume: bool = False
    opened_design_showcase: bool = False
    opened_ai_intake_form: bool = False
    played_demos_count: int = 0

    @field_validator("vector")
    @classmethod
    def _unit_interval(cls, value: List[float]) -> List[float]:
        if any(v < 0.0 or v > 1.0 for v in value):
            raise ValueError("behavior vector values must lie in [0, 1]")
        return value


# An opaque classifier: features in, classification out (may raise ClassifierFailure)
Classifier = Callable[[BehaviorFeatures], Awaitable[Classification]]


# ---------------------------------------------------------------------------
# HTTP contract
# ---------------------------------------------------------------------------

class ClassifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    session_id: str = Field(..., min_length=1, alias="sessionId")
    use_ai: bool = Field(default=True, alias="useAI")


class ClassifyResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    classification: Optional[Classification] = None
    source: str


__all__ = [
    "PersonaType",
    "Mood",
    "Classification",
    "DEFAULT_PERSONA",
    "DEFAULT_CLASSIFICATION",
    "BehaviorFeatures",
    "Classifier",
    "ClassifyRequest",
    "ClassifyResponse",
]
