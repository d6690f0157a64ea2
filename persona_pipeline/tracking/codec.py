"""
Event codec — validates and normalizes a raw ingestion body into a DecodedBatch.

Pure transform, no I/O. Collects every per-event violation in one pass and
raises a single ValidationError carrying {field, issue} details, so the client
sees all problems in one 400 response.

Rejected:
  1. body is not an object, or `events` is missing / not a list / empty
  2. the first event has no sessionId
  3. any event fails its typed schema (unknown type, bad payload, bad timestamp)
  4. events assert more than one sessionId (one session per batch)
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from persona_pipeline.errors import ValidationError
from persona_pipeline.tracking.schemas import BehaviorEvent, DecodedBatch, DeviceType

logger = logging.getLogger(__name__)

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(BehaviorEvent)


def _field_path(prefix: str, loc: tuple) -> str:
    return ".".join([prefix, *(str(part) for part in loc)])


def decode_batch(body: Any) -> DecodedBatch:
    """
    Validate an ingestion body of shape {events: Event[], deviceType?}.

    Returns:
        DecodedBatch with the single session id asserted by the batch.

    Raises:
        ValidationError: on any of the rejection rules in the module docstring.
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    raw_events = body.get("events")
    if not isinstance(raw_events, list) or not raw_events:
        raise ValidationError(
            "No events provided",
            [{"field": "events", "issue": "must be a non-empty array"}],
        )

    first = raw_events[0]
    if not isinstance(first, dict) or not first.get("sessionId"):
        raise ValidationError(
            "No session ID",
            [{"field": "events.0.sessionId", "issue": "first event must carry a sessionId"}],
        )
    session_id = str(first["sessionId"])

    device_type = None
    raw_device = body.get("deviceType")
    if raw_device is not None:
        try:
            device_type = DeviceType(raw_device)
        except ValueError:
            raise ValidationError(
                "Invalid deviceType",
                [{"field": "deviceType", "issue": f"must be one of {[d.value for d in DeviceType]}"}],
            ) from None

    events = []
    violations: list[dict[str, Any]] = []
    for index, raw in enumerate(raw_events):
        try:
            event = _EVENT_ADAPTER.validate_python(raw)
        except PydanticValidationError as exc:
            for error in exc.errors():
                violations.append({
                    "field": _field_path(f"events.{index}", error["loc"]),
                    "issue": error["msg"],
                })
            continue

        if event.session_id != session_id:
            violations.append({
                "field": f"events.{index}.sessionId",
                "issue": "batch mixes session ids; send one batch per session",
            })
            continue
        events.append(event)

    if violations:
        logger.info("Rejected event batch events=%d violations=%d", len(raw_events), len(violations))
        raise ValidationError("Event batch validation failed", violations)

    return DecodedBatch(session_id=session_id, device_type=device_type, events=events)


def decode_stored(session_id: str, event_type: str, payload: Any, timestamp: Any) -> Optional[BehaviorEvent]:
    """
    Re-decode a persisted raw event into its typed form for rollup.

    Returns None (and logs) for rows that no longer match any event schema,
    e.g. written by an older client; the caller still counts them.
    """
    try:
        return _EVENT_ADAPTER.validate_python({
            "sessionId": session_id,
            "timestamp": timestamp,
            "type": event_type,
            "data": payload or {},
        })
    except PydanticValidationError:
        logger.warning("Skipping undecodable stored event session_id=%s event_type=%s", session_id, event_type)
        return None
