"""
llm_classifier.py — Mistral-backed persona classification.

Components:
  SYSTEM_PROMPT              — persona / mood definitions and the JSON-only reply rule
  build_classification_prompt() — aggregate features → compact behavioral summary
  parse_classification()     — first {...} block in the reply → Classification
  MistralClassifier          — async Mistral call wrapped in the shared semaphore
  HybridClassifier           — centroid first; LLM only for ambiguous vectors

No module-level asyncio.Semaphore — it is created in main.py lifespan and
passed in. Every provider or parsing problem surfaces as ClassifierFailure;
the gate decides what to do with it.
"""
import asyncio
import json
import logging
import re
from typing import Optional

from mistralai import Mistral
from pydantic import ValidationError as PydanticValidationError

from persona_pipeline.config import settings
from persona_pipeline.errors import ClassifierFailure
from persona_pipeline.persona.centroids import centroid_classifier
from persona_pipeline.persona.schemas import BehaviorFeatures, Classification

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mistral API constants
# ---------------------------------------------------------------------------

MISTRAL_TEMPERATURE = 0.3
MISTRAL_MAX_TOKENS = 256

# Vector confidence at or above this skips the LLM call in HybridClassifier
HYBRID_CONFIDENCE_THRESHOLD = 0.6

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


SYSTEM_PROMPT = """You are a behavioral analyst classifying visitors of a developer portfolio website.

Personas:
- recruiter: looks for resume, contact info, quick overview of experience
- engineer: interested in code, technical depth, architecture, GitHub
- designer: focuses on visuals, UI/UX, design process, case studies
- cto: evaluates leadership, architecture decisions, scalability, team skills
- gamer: plays demos, explores interactive elements, looks for fun
- curious: browsing without a clear focus

Moods:
- professional: quick, goal-oriented browsing
- casual: relaxed, long pauses
- exploratory: wandering across sections
- focused: deep reading of one area
- playful: engaging with interactive content

Respond with ONLY a JSON object, no prose:
{"persona": "<persona>", "confidence": <0.0-1.0>, "mood": "<mood>", "rationale": "<one short sentence>"}"""


def build_classification_prompt(features: BehaviorFeatures) -> str:
    """Summarise aggregate features for the model. No identifiers, no raw events."""
    clicked = []
    if features.clicked_resume:
        clicked.append("resume")
    if features.opened_design_showcase:
        clicked.append("design showcase")
    if features.opened_ai_intake_form:
        clicked.append("AI intake form")
    if features.played_demos_count:
        clicked.append(f"demos x{features.played_demos_count}")
    clicked.extend(f"hovered '{k}'" for k in features.hovered_keywords[:20])

    lines = [
        "Visitor behavior:",
        f"- Pages visited: {', '.join(features.navigation_path) or 'homepage only'}",
        f"- Time on homepage: {features.time_on_homepage:.0f}s",
        f"- Homepage scroll depth: {features.scroll_depth * 100:.0f}%",
        f"- Idle time: {features.idle_time:.0f}s",
        f"- Elements clicked: {', '.join(clicked) or 'none'}",
        f"- Navigation sequence: {' → '.join(features.navigation_path) or 'none'}",
        f"- Behavior vector: {[round(v, 2) for v in features.vector]}",
    ]
    return "\n".join(lines)


def parse_classification(text: str) -> Classification:
    """
    Extract and validate the JSON object from a model reply.

    Raises:
        ClassifierFailure: no JSON object, invalid JSON, or unknown persona/mood.
    """
    match = _JSON_BLOCK.search(text or "")
    if match is None:
        raise ClassifierFailure("classifier reply contained no JSON object")
    try:
        payload = json.loads(match.group(0))
        return Classification.model_validate(payload)
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        raise ClassifierFailure(f"classifier reply rejected: {exc}") from exc


def _reply_text(response) -> str:
    content = response.choices[0].message.content
    if isinstance(content, str):
        return content
    # Newer SDKs may return a list of content chunks
    return "".join(getattr(chunk, "text", "") or "" for chunk in content or [])


class MistralClassifier:
    """Classifier protocol over the Mistral chat API."""

    def __init__(
        self,
        client: Mistral,
        semaphore: asyncio.Semaphore,
        model: Optional[str] = None,
    ) -> None:
        self.client = client
        self.semaphore = semaphore
        self.model = model or settings.classifier_model

    async def __call__(self, features: BehaviorFeatures) -> Classification:
        prompt = build_classification_prompt(features)
        logger.info("Calling Mistral API model=%s path_len=%d", self.model, len(features.navigation_path))
        try:
            async with self.semaphore:
                response = await self.client.chat.complete_async(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=MISTRAL_TEMPERATURE,
                    max_tokens=MISTRAL_MAX_TOKENS,
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise ClassifierFailure(f"Mistral call failed: {type(exc).__name__}: {exc}") from exc

        try:
            text = _reply_text(response)
        except (AttributeError, IndexError, TypeError) as exc:
            raise ClassifierFailure(f"Mistral reply had no message: {exc}") from exc

        classification = parse_classification(text)
        logger.info(
            "Mistral classification persona=%s confidence=%.2f",
            classification.persona.value,
            classification.confidence,
        )
        return classification


class HybridClassifier:
    """
    Centroid classifier first. When its confidence is below the threshold the
    LLM decides persona and mood, and the two confidences are averaged.
    """

    def __init__(self, llm: MistralClassifier, threshold: float = HYBRID_CONFIDENCE_THRESHOLD) -> None:
        self.llm = llm
        self.threshold = threshold

    async def __call__(self, features: BehaviorFeatures) -> Classification:
        local = await centroid_classifier(features)
        if local.confidence >= self.threshold:
            return local

        remote = await self.llm(features)
        return remote.model_copy(
            update={"confidence": (local.confidence + remote.confidence) / 2}
        )
