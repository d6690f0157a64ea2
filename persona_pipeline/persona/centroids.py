"""
centroids.py — local vector classifier (no external calls).

Each persona has a hand-tuned centroid in the 12-d behavior space. A vector is
assigned to the centroid with the highest cosine similarity; confidence maps
similarity 0.5 → 0 and 1.0 → 1. Mood comes from a few aggregate heuristics.
"""
from __future__ import annotations

import logging

import numpy as np

from persona_pipeline.persona.schemas import (
    DEFAULT_PERSONA,
    BehaviorFeatures,
    Classification,
    Mood,
    PersonaType,
)

logger = logging.getLogger(__name__)

# Dimension order matches rollup.vector.DIMENSION_NAMES
PERSONA_CENTROIDS: dict[PersonaType, np.ndarray] = {
    # Resume-first, quick scanning, clear hiring intent
    PersonaType.recruiter: np.array([0.9, 0.2, 0.2, 0.3, 0.1, 0.4, 0.4, 0.6, 0.3, 0.3, 0.7, 0.8]),
    # Code and technical depth, slow reading
    PersonaType.engineer: np.array([0.2, 0.9, 0.3, 0.5, 0.4, 0.6, 0.8, 0.7, 0.9, 0.3, 0.4, 0.7]),
    # Visual work and case studies
    PersonaType.designer: np.array([0.2, 0.3, 0.9, 0.3, 0.4, 0.6, 0.7, 0.6, 0.3, 0.9, 0.5, 0.7]),
    # Broad exploration, architecture and leadership
    PersonaType.cto: np.array([0.5, 0.6, 0.4, 0.9, 0.2, 0.8, 0.7, 0.6, 0.7, 0.5, 0.5, 0.8]),
    # Demos and interactive elements
    PersonaType.gamer: np.array([0.1, 0.4, 0.3, 0.1, 0.9, 0.7, 0.6, 0.9, 0.5, 0.6, 0.6, 0.5]),
    # No clear focus
    PersonaType.curious: np.array([0.4, 0.4, 0.4, 0.3, 0.3, 0.5, 0.4, 0.4, 0.4, 0.4, 0.5, 0.3]),
}


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def classify_by_vector(vector: list[float]) -> tuple[PersonaType, float, dict[str, float]]:
    """
    Nearest-centroid persona for a behavior vector.

    Returns:
        (persona, confidence in [0, 1], {persona: similarity} for every persona)
    """
    point = np.asarray(vector, dtype=float)
    scores = {persona.value: cosine_similarity(point, centroid) for persona, centroid in PERSONA_CENTROIDS.items()}

    best_persona, best_score = DEFAULT_PERSONA, -1.0
    for persona, centroid in PERSONA_CENTROIDS.items():
        if scores[persona.value] > best_score:
            best_persona, best_score = persona, scores[persona.value]

    confidence = max(0.0, min(1.0, (best_score - 0.5) * 2))
    return best_persona, confidence, scores


def infer_mood(features: BehaviorFeatures) -> Mood:
    if features.navigation_speed > 0.7 and features.scroll_depth < 0.3:
        return Mood.professional
    if features.idle_time > 60:
        return Mood.casual
    if features.scroll_depth > 0.8 and features.navigation_speed < 0.4:
        return Mood.focused
    if features.played_demos_count > 0:
        return Mood.playful
    return Mood.exploratory


async def centroid_classifier(features: BehaviorFeatures) -> Classification:
    """Classifier-protocol wrapper around classify_by_vector + infer_mood."""
    persona, confidence, _ = classify_by_vector(features.vector)
    return Classification(persona=persona, confidence=confidence, mood=infer_mood(features))
