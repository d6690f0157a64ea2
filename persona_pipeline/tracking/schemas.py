"""
schemas.py — tracking Pydantic v2 data contracts.

Defines:
  - EventType, DeviceType enums
  - One payload model per event type (PageviewData, ScrollData, ClickData, ...)
  - One event model per event type, discriminated on `type` → BehaviorEvent
  - DecodedBatch   (output of the codec — one session, ordered typed events)
  - TrackResponse  (ingestion endpoint reply)

Wire format is camelCase (browser client); Python attributes are snake_case.
Payload models ignore unknown keys so newer clients never break ingestion.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class EventType(str, Enum):
    pageview = "pageview"
    scroll = "scroll"
    click = "click"
    hover = "hover"
    time = "time"
    navigation = "navigation"
    interaction = "interaction"
    idle = "idle"


class DeviceType(str, Enum):
    desktop = "desktop"
    mobile = "mobile"
    tablet = "tablet"


_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

class PageviewData(BaseModel):
    model_config = _WIRE_CONFIG

    path: Optional[str] = None
    referrer: Optional[str] = None


class ScrollData(BaseModel):
    model_config = _WIRE_CONFIG

    depth: Optional[float] = Field(default=None, ge=0, description="Current depth, 0–100 percent")
    max_depth: Optional[float] = Field(default=None, ge=0, description="Deepest point reached, 0–100 percent")


class ClickData(BaseModel):
    model_config = _WIRE_CONFIG

    element: Optional[str] = Field(default=None, description="Element identifier or CSS selector")
    element_type: Optional[str] = None
    section: Optional[str] = None
    path: Optional[str] = None


class HoverData(BaseModel):
    model_config = _WIRE_CONFIG

    duration: Optional[float] = Field(default=None, ge=0, description="Hover duration in ms")
    keywords: List[str] = Field(default_factory=list)


class TimeData(BaseModel):
    model_config = _WIRE_CONFIG

    path: Optional[str] = None
    time_on_page: Optional[float] = Field(default=None, ge=0, description="Milliseconds on `path`")
    total_time: Optional[float] = Field(default=None, ge=0)


class NavigationData(BaseModel):
    model_config = _WIRE_CONFIG

    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    sequence: Optional[List[str]] = Field(default=None, description="Full page sequence so far")
    speed: Optional[Literal["fast", "medium", "slow"]] = None


class InteractionData(BaseModel):
    model_config = _WIRE_CONFIG

    interaction_type: Optional[str] = Field(
        default=None,
        description="'animation' | 'demo' | 'code' | 'form' | 'chat'",
    )


class IdleData(BaseModel):
    model_config = _WIRE_CONFIG

    idle_duration: Optional[float] = Field(default=None, ge=0, description="Idle milliseconds")


# ---------------------------------------------------------------------------
# Events — tagged union on `type`
# ---------------------------------------------------------------------------

class _EventBase(BaseModel):
    model_config = _WIRE_CONFIG

    session_id: str = Field(..., min_length=1, description="Client session identifier")
    timestamp: datetime = Field(..., description="Epoch milliseconds on the wire")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _from_epoch_ms(cls, value):
        if isinstance(value, bool):
            raise ValueError("timestamp must be epoch milliseconds")
        if isinstance(value, (int, float)):
            try:
                return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
            except (OverflowError, OSError, ValueError) as exc:
                raise ValueError("timestamp out of range") from exc
        return value

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class PageviewEvent(_EventBase):
    type: Literal["pageview"]
    data: PageviewData = Field(default_factory=PageviewData)


class ScrollEvent(_EventBase):
    type: Literal["scroll"]
    data: ScrollData = Field(default_factory=ScrollData)


class ClickEvent(_EventBase):
    type: Literal["click"]
    data: ClickData = Field(default_factory=ClickData)


class HoverEvent(_EventBase):
    type: Literal["hover"]
    data: HoverData = Field(default_factory=HoverData)


class TimeEvent(_EventBase):
    type: Literal["time"]
    data: TimeData = Field(default_factory=TimeData)


class NavigationEvent(_EventBase):
    type: Literal["navigation"]
    data: NavigationData = Field(default_factory=NavigationData)


class InteractionEvent(_EventBase):
    type: Literal["interaction"]
    data: InteractionData = Field(default_factory=InteractionData)


class IdleEvent(_EventBase):
    type: Literal["idle"]
    data: IdleData = Field(default_factory=IdleData)


BehaviorEvent = Annotated[
    Union[
        PageviewEvent,
        ScrollEvent,
        ClickEvent,
        HoverEvent,
        TimeEvent,
        NavigationEvent,
        InteractionEvent,
        IdleEvent,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Codec output / endpoint reply
# ---------------------------------------------------------------------------

class DecodedBatch(BaseModel):
    """A validated batch: exactly one client session, events in arrival order."""
    session_id: str
    device_type: Optional[DeviceType] = None
    events: List[BehaviorEvent]


class TrackResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    events_processed: int


__all__ = [
    "EventType",
    "DeviceType",
    "BehaviorEvent",
    "PageviewEvent",
    "ScrollEvent",
    "ClickEvent",
    "HoverEvent",
    "TimeEvent",
    "NavigationEvent",
    "InteractionEvent",
    "IdleEvent",
    "DecodedBatch",
    "TrackResponse",
]
