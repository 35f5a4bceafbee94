"""Realtime channel wire format (Phoenix JSON v1 serializer)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from campussync.local import ScopeFilter
from campussync.models import ChangeEvent, ChangeKind
from campussync.util.time import parse_rfc3339

PROTOCOL_VERSION = "1.0.0"

PHOENIX_TOPIC = "phoenix"

EVENT_JOIN = "phx_join"
EVENT_LEAVE = "phx_leave"
EVENT_REPLY = "phx_reply"
EVENT_ERROR = "phx_error"
EVENT_CLOSE = "phx_close"
EVENT_HEARTBEAT = "heartbeat"
EVENT_SYSTEM = "system"
EVENT_POSTGRES_CHANGES = "postgres_changes"


@dataclass(slots=True, frozen=True)
class Message:
    """One decoded frame."""

    topic: str
    event: str
    payload: dict[str, Any]
    ref: Optional[str] = None
    join_ref: Optional[str] = None

    @property
    def reply_status(self) -> Optional[str]:
        status = self.payload.get("status")
        return status if isinstance(status, str) else None

    @property
    def reason(self) -> str:
        """Best-effort human readable reason from an error reply/system message."""
        response = self.payload.get("response")
        if isinstance(response, dict) and isinstance(response.get("reason"), str):
            return response["reason"]
        if isinstance(self.payload.get("message"), str):
            return self.payload["message"]
        return self.event


def channel_topic(channel_key: str) -> str:
    return f"realtime:{channel_key}"


def encode_message(
    topic: str,
    event: str,
    payload: Optional[dict[str, Any]] = None,
    *,
    ref: Optional[str] = None,
    join_ref: Optional[str] = None,
) -> str:
    frame: dict[str, Any] = {
        "topic": topic,
        "event": event,
        "payload": payload or {},
        "ref": ref,
    }
    if join_ref is not None:
        frame["join_ref"] = join_ref
    return json.dumps(frame, separators=(",", ":"))


def decode_message(raw: str | bytes) -> Message:
    """Decode a frame. Raises ValueError on malformed input."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Frame must be a JSON object")

    topic = data.get("topic")
    event = data.get("event")
    payload = data.get("payload")
    if not isinstance(topic, str) or not isinstance(event, str):
        raise ValueError("Frame requires string topic and event")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError("Frame payload must be an object")

    ref = data.get("ref")
    join_ref = data.get("join_ref")
    return Message(
        topic=topic,
        event=event,
        payload=payload,
        ref=str(ref) if ref is not None else None,
        join_ref=str(join_ref) if join_ref is not None else None,
    )


def build_join_payload(
    table: str,
    scope: Optional[ScopeFilter],
    *,
    schema: str = "public",
    access_token: Optional[str] = None,
) -> dict[str, Any]:
    """Join payload subscribing to every change kind on one table."""
    change_config: dict[str, Any] = {"event": "*", "schema": schema, "table": table}
    if scope is not None:
        change_config["filter"] = scope.to_expression()

    payload: dict[str, Any] = {
        "config": {
            "broadcast": {"ack": False, "self": False},
            "presence": {"key": ""},
            "postgres_changes": [change_config],
            "private": False,
        },
    }
    if access_token:
        payload["access_token"] = access_token
    return payload


def decode_change(payload: dict[str, Any]) -> ChangeEvent:
    """
    Build a ChangeEvent from a `postgres_changes` payload.

    Expected shape:
        {"data": {"type": "UPDATE", "table": "resources",
                  "record": {...}, "old_record": {...},
                  "commit_timestamp": "..."}, "ids": [...]}

    Raises:
        ValueError: if the payload does not describe a valid change.
    """
    data = payload.get("data")
    if not isinstance(data, dict):
        raise ValueError("postgres_changes payload requires a data object")

    kind = ChangeKind(str(data.get("type", "")).upper())
    table = data.get("table")
    if not isinstance(table, str):
        raise ValueError("postgres_changes data requires a table name")

    record = data.get("record")
    old_record = data.get("old_record")

    commit_timestamp = None
    if isinstance(data.get("commit_timestamp"), str):
        try:
            commit_timestamp = parse_rfc3339(data["commit_timestamp"])
        except ValueError:
            commit_timestamp = None

    return ChangeEvent(
        kind=kind,
        table=table,
        new_row=dict(record) if isinstance(record, dict) and record else None,
        old_row=dict(old_record) if isinstance(old_record, dict) and old_record else None,
        commit_timestamp=commit_timestamp,
    )
