"""
Behavior vector derivation — 12 ordered dimensions, each clamped to [0, 1].

   0  resume focus          clicked_resume → 1 / 0
   1  code focus            code samples opened / 10
   2  design focus          opened_design_showcase → 1 / 0
   3  leadership focus      reserved, always 0 (no signal collected yet)
   4  game focus            demos played / 5
   5  exploration breadth   distinct pages in navigation path / 10
   6  engagement depth      max scroll depth
   7  interaction rate      total events / 50
   8  technical interest    code samples opened / 5
   9  visual interest       0.5 if design showcase or any demo, else 0
  10  pacing                see pacing_score()
  11  intent clarity        1 if AI intake form opened, else 0.3

Empty history → [0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0.5, 0.3].
"""
from __future__ import annotations

import math

from persona_pipeline.tracking.snapshot import BehaviorSnapshot

VECTOR_DIMENSIONS = 12

DIMENSION_NAMES = (
    "resume_focus",
    "code_focus",
    "design_focus",
    "leadership_focus",
    "game_focus",
    "exploration_breadth",
    "engagement_depth",
    "interaction_rate",
    "technical_interest",
    "visual_interest",
    "navigation_speed",
    "intent_clarity",
)

NEUTRAL_PACING = 0.5
# Seconds per page treated as "normal" reading pace
PACING_SECONDS_PER_PAGE = 30


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def pacing_score(time_on_homepage: float, navigation_path_length: int) -> float:
    """
    min(1, 1 / (time_on_homepage / max(len, 1) / 30)), i.e. 30·len / time.

    No navigation history → neutral 0.5. A non-empty history with no homepage
    time would divide by zero; it also gets the neutral 0.5.
    """
    if navigation_path_length <= 0:
        return NEUTRAL_PACING
    if time_on_homepage <= 0:
        return NEUTRAL_PACING
    seconds_per_page = time_on_homepage / max(navigation_path_length, 1)
    return _clamp(PACING_SECONDS_PER_PAGE / seconds_per_page)


def derive_vector(snapshot: BehaviorSnapshot) -> list[float]:
    """Map a snapshot to the fixed 12-dimension behavior vector."""
    path = snapshot.navigation_path
    vector = [
        1.0 if snapshot.clicked_resume else 0.0,
        snapshot.opened_code_samples_count / 10,
        1.0 if snapshot.opened_design_showcase else 0.0,
        0.0,
        snapshot.played_demos_count / 5,
        len(set(path)) / 10,
        snapshot.scroll_depth,
        snapshot.total_events / 50,
        snapshot.opened_code_samples_count / 5,
        0.5 if (snapshot.opened_design_showcase or snapshot.played_demos_count > 0) else 0.0,
        pacing_score(snapshot.time_on_homepage, len(path)),
        1.0 if snapshot.opened_ai_intake_form else 0.3,
    ]
    return [_clamp(float(value)) for value in vector]
