"""
adserver.events — structured events returned alongside command results.

Events are a side-channel list of key/value records. They are decoupled from
any particular host event bus: a host forwards `Response.events` however it
likes (the CLI prints them as JSON).

    resp = Response()
    resp.add_event(Event("serve_ad").add_attributes([attr("action", "serve_ad"), ...]))
    resp.to_dict()
    # {"attributes": [], "events": [{"type": "serve_ad", "attributes": [...]}]}

Attribute keys are identifier-like; values are strings (counters are rendered
in decimal), so a record reads the same in every host encoding.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
MAX_KEY_LEN = 64


def _check_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeError("event key must be str")
    if len(key) == 0 or len(key) > MAX_KEY_LEN:
        raise ValueError(f"event key length must be 1..{MAX_KEY_LEN}")
    if not _KEY_RE.match(key):
        raise ValueError(f"event key has invalid characters: {key!r}")
    return key


def _check_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value
    raise TypeError(f"unsupported event attribute type: {type(value).__name__}")


@dataclass(frozen=True)
class Attribute:
    key: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "value": self.value}


def attr(key: str, value: Any) -> Attribute:
    """Build a validated attribute; ints are rendered as decimal strings."""
    return Attribute(_check_key(key), _check_value(value))


@dataclass
class Event:
    """A typed, ordered record of attributes."""

    type: str
    attributes: List[Attribute] = field(default_factory=list)

    def __post_init__(self) -> None:
        _check_key(self.type)

    def add_attribute(self, key: str, value: Any) -> "Event":
        self.attributes.append(attr(key, value))
        return self

    def add_attributes(self, attrs: Iterable[Attribute]) -> "Event":
        self.attributes.extend(attrs)
        return self

    def get(self, key: str) -> Optional[str]:
        for a in self.attributes:
            if a.key == key:
                return a.value
        return None

    def as_mapping(self) -> Dict[str, str]:
        return {a.key: a.value for a in self.attributes}

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "attributes": [a.to_dict() for a in self.attributes]}


@dataclass
class Response:
    """Result of a successful command: top-level attributes plus events."""

    attributes: List[Attribute] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)

    def add_attribute(self, key: str, value: Any) -> "Response":
        self.attributes.append(attr(key, value))
        return self

    def add_event(self, event: Event) -> "Response":
        self.events.append(event)
        return self

    def add_events(self, events: Iterable[Event]) -> "Response":
        self.events.extend(events)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attributes": [a.to_dict() for a in self.attributes],
            "events": [e.to_dict() for e in self.events],
        }


__all__ = ["Attribute", "Event", "Response", "attr", "MAX_KEY_LEN"]
