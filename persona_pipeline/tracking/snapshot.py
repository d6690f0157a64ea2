"""
snapshot.py — per-event-type accumulation rules shared by ingestion and rollup.

Both tiers fold events through BehaviorSnapshot.apply():
  - ingestion folds ONE batch, then turns the touched fields into merge
    expressions against the live row (store.increment_aggregate)
  - rollup folds a session's FULL raw history from zero and merges the result
    (store.merge_rollup)

Rules by event type:
  time         path == home path      → time_on_homepage += timeOnPage / 1000
  scroll       maxDepth               → scroll_depth = max(scroll_depth, maxDepth / 100)
  click        element / section      → resume OR, code +1, projects +1, design OR,
                                        demos +1, intake OR
  interaction  interactionType        → interacted_with_animations OR
  idle         idleDuration           → idle_time += idleDuration / 1000
  navigation   sequence               → navigation_path REPLACED (last write wins)
  hover        keywords               → hovered_keywords extended (rollup only)
  pageview                            → counted in total_events only
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from persona_pipeline.tracking.schemas import (
    BehaviorEvent,
    ClickEvent,
    HoverEvent,
    IdleEvent,
    InteractionEvent,
    NavigationEvent,
    ScrollEvent,
    TimeEvent,
)

# Fields merged by addition when applied to an existing aggregate row
ADDITIVE_FIELDS = (
    "time_on_homepage",
    "opened_code_samples_count",
    "visited_projects_count",
    "played_demos_count",
    "idle_time",
)
# Fields that only ever flip False → True
FLAG_FIELDS = (
    "clicked_resume",
    "opened_design_showcase",
    "opened_ai_intake_form",
    "interacted_with_animations",
)

INTAKE_PATH = "/intake"


@dataclass
class BehaviorSnapshot:
    """Accumulated metrics for a sequence of events, starting from zero."""

    time_on_homepage: float = 0.0
    scroll_depth: float = 0.0
    clicked_resume: bool = False
    opened_code_samples_count: int = 0
    visited_projects_count: int = 0
    opened_design_showcase: bool = False
    played_demos_count: int = 0
    opened_ai_intake_form: bool = False
    interacted_with_animations: bool = False
    idle_time: float = 0.0
    navigation_path: list[str] = field(default_factory=list)
    hovered_keywords: list[str] = field(default_factory=list)
    total_events: int = 0
    # Names of row fields this snapshot has an update for
    touched: set[str] = field(default_factory=set)

    @classmethod
    def from_events(cls, events: Iterable[BehaviorEvent], home_path: str = "/") -> "BehaviorSnapshot":
        snapshot = cls()
        for event in events:
            snapshot.apply(event, home_path)
        return snapshot

    def _add(self, name: str, amount: float) -> None:
        setattr(self, name, getattr(self, name) + amount)
        self.touched.add(name)

    def _flag(self, name: str) -> None:
        setattr(self, name, True)
        self.touched.add(name)

    def apply(self, event: BehaviorEvent, home_path: str = "/") -> None:
        self.total_events += 1
        data = event.data

        if isinstance(event, TimeEvent):
            if data.time_on_page and data.path == home_path:
                self._add("time_on_homepage", data.time_on_page / 1000)

        elif isinstance(event, ScrollEvent):
            if data.max_depth:
                self.scroll_depth = max(self.scroll_depth, data.max_depth / 100)
                self.touched.add("scroll_depth")

        elif isinstance(event, ClickEvent):
            self._apply_click(data.element or "", data.section, data.path)

        elif isinstance(event, InteractionEvent):
            if data.interaction_type == "animation":
                self._flag("interacted_with_animations")

        elif isinstance(event, IdleEvent):
            if data.idle_duration:
                self._add("idle_time", data.idle_duration / 1000)

        elif isinstance(event, NavigationEvent):
            if data.sequence is not None:
                self.navigation_path = list(data.sequence)
                self.touched.add("navigation_path")

        elif isinstance(event, HoverEvent):
            self.hovered_keywords.extend(data.keywords)

    def _apply_click(self, element: str, section: Optional[str], path: Optional[str]) -> None:
        if "resume" in element:
            self._flag("clicked_resume")
        if "code" in element or section == "code":
            self._add("opened_code_samples_count", 1)
        if "project" in element or section == "projects":
            self._add("visited_projects_count", 1)
        if "design" in element or section == "design":
            self._flag("opened_design_showcase")
        if "demo" in element or "game" in element:
            self._add("played_demos_count", 1)
        if "intake" in element or path == INTAKE_PATH:
            self._flag("opened_ai_intake_form")

    @classmethod
    def from_row(cls, row, total_events: int = 0) -> "BehaviorSnapshot":
        """Rebuild a snapshot from a stored aggregate row (no touched fields)."""
        return cls(
            time_on_homepage=row.time_on_homepage or 0.0,
            scroll_depth=row.scroll_depth or 0.0,
            clicked_resume=bool(row.clicked_resume),
            opened_code_samples_count=row.opened_code_samples_count or 0,
            visited_projects_count=row.visited_projects_count or 0,
            opened_design_showcase=bool(row.opened_design_showcase),
            played_demos_count=row.played_demos_count or 0,
            opened_ai_intake_form=bool(row.opened_ai_intake_form),
            interacted_with_animations=bool(row.interacted_with_animations),
            idle_time=row.idle_time or 0.0,
            navigation_path=list(row.navigation_path or []),
            hovered_keywords=list(row.hovered_keywords or []),
            total_events=total_events,
        )
