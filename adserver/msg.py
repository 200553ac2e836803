"""
adserver.msg — init/execute/query messages and query responses.

Messages travel as externally tagged JSON with snake_case variant names (see
`adserver.schema`). `parse_*` helpers accept either an already-decoded JSON
value or raw JSON text/bytes and return the typed message; anything that does
not fit raises `InvalidMessage`.

    parse_execute_msg({"serve_ad": {"id": "a1"}})  -> ServeAd(id="a1")
    parse_query_msg("ads")                          -> QueryAds()
    parse_query_msg('{"ad": {"id": "a1"}}')         -> QueryAd(id="a1")
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .config import load_config
from .errors import InvalidMessage
from . import schema

# ------------------------------- init -------------------------------


@dataclass(frozen=True)
class InitMsg:
    """Initialization message (no fields)."""

    def to_dict(self) -> Dict[str, Any]:
        return {}


# ------------------------------ execute ------------------------------


@dataclass(frozen=True)
class AddAd:
    id: str
    image_url: str
    target_url: str
    reward_address: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "add_ad": {
                "id": self.id,
                "image_url": self.image_url,
                "target_url": self.target_url,
                "reward_address": self.reward_address,
            }
        }


@dataclass(frozen=True)
class ServeAd:
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"serve_ad": {"id": self.id}}


@dataclass(frozen=True)
class DeleteAd:
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"delete_ad": {"id": self.id}}


@dataclass(frozen=True)
class BatchServeAds:
    ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"batch_serve_ads": {"ids": list(self.ids)}}


ExecuteMsg = Union[AddAd, ServeAd, DeleteAd, BatchServeAds]

# ------------------------------- query -------------------------------


@dataclass(frozen=True)
class QueryAd:
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ad": {"id": self.id}}


@dataclass(frozen=True)
class QueryAds:
    def to_dict(self) -> str:
        return "ads"


@dataclass(frozen=True)
class QueryTotalViews:
    def to_dict(self) -> str:
        return "total_views"


QueryMsg = Union[QueryAd, QueryAds, QueryTotalViews]

# ----------------------------- responses -----------------------------


@dataclass(frozen=True)
class AdResponse:
    """Response for querying a single ad."""

    id: str
    image_url: str
    target_url: str
    views: int
    reward_address: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "image_url": self.image_url,
            "target_url": self.target_url,
            "views": self.views,
            "reward_address": self.reward_address,
        }


@dataclass(frozen=True)
class AllAdsResponse:
    """Response for querying all ads."""

    ads: List[AdResponse] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"ads": [a.to_dict() for a in self.ads]}


@dataclass(frozen=True)
class TotalViewsResponse:
    """Response for querying total views."""

    total_views: int

    def to_dict(self) -> Dict[str, Any]:
        return {"total_views": self.total_views}


# ------------------------------ parsing ------------------------------


def _decode(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidMessage(f"message is not UTF-8: {e}") from e
    if isinstance(raw, str):
        s = raw.strip()
        # Unit variants may arrive bare ("ads") or JSON-quoted ('"ads"').
        if s in ("ads", "total_views"):
            return s
        try:
            return json.loads(s)
        except json.JSONDecodeError as e:
            raise InvalidMessage(f"message is not valid JSON: {e.msg}") from e
    return raw


def _check(name: str, obj: Any) -> None:
    if load_config().strict_schema:
        schema.validate(name, obj)


def _tagged(obj: Any, kind: str) -> tuple:
    if not isinstance(obj, dict) or len(obj) != 1:
        raise InvalidMessage(f"{kind} must be an object with exactly one variant key")
    (tag, body), = obj.items()
    if not isinstance(body, dict):
        raise InvalidMessage(f"{kind} variant {tag!r} must carry an object")
    return tag, body


def check_text(value: str, where: str, data: Optional[Dict[str, Any]] = None) -> str:
    """Reject strings that cannot be stored as UTF-8 (lone surrogates)."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidMessage(f"{where} is not valid UTF-8 text: {e.reason}", data=data or {"field": where}) from e
    return value


def _field_str(body: Dict[str, Any], name: str, tag: str) -> str:
    v = body.get(name)
    if not isinstance(v, str):
        raise InvalidMessage(f"{tag}.{name} must be a string", data={"variant": tag, "field": name})
    return check_text(v, f"{tag}.{name}", {"variant": tag, "field": name})


def parse_init_msg(raw: Any) -> InitMsg:
    obj = _decode(raw)
    _check("init_msg", obj)
    if not isinstance(obj, dict):
        raise InvalidMessage("init message must be an object")
    return InitMsg()


def parse_execute_msg(raw: Any) -> ExecuteMsg:
    obj = _decode(raw)
    _check("execute_msg", obj)
    tag, body = _tagged(obj, "execute message")

    if tag == "add_ad":
        return AddAd(
            id=_field_str(body, "id", tag),
            image_url=_field_str(body, "image_url", tag),
            target_url=_field_str(body, "target_url", tag),
            reward_address=_field_str(body, "reward_address", tag),
        )
    if tag == "serve_ad":
        return ServeAd(id=_field_str(body, "id", tag))
    if tag == "delete_ad":
        return DeleteAd(id=_field_str(body, "id", tag))
    if tag == "batch_serve_ads":
        ids = body.get("ids")
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise InvalidMessage("batch_serve_ads.ids must be a list of strings", data={"variant": tag})
        for i in ids:
            check_text(i, "batch_serve_ads.ids", {"variant": tag, "field": "ids"})
        return BatchServeAds(ids=list(ids))
    raise InvalidMessage(f"unknown execute variant {tag!r}", data={"variant": tag})


def parse_query_msg(raw: Any) -> QueryMsg:
    obj = _decode(raw)
    _check("query_msg", obj)
    if obj == "ads":
        return QueryAds()
    if obj == "total_views":
        return QueryTotalViews()
    tag, body = _tagged(obj, "query message")
    if tag == "ad":
        return QueryAd(id=_field_str(body, "id", tag))
    raise InvalidMessage(f"unknown query variant {tag!r}", data={"variant": tag})


__all__ = [
    "InitMsg",
    "AddAd",
    "ServeAd",
    "DeleteAd",
    "BatchServeAds",
    "ExecuteMsg",
    "QueryAd",
    "QueryAds",
    "QueryTotalViews",
    "QueryMsg",
    "AdResponse",
    "AllAdsResponse",
    "TotalViewsResponse",
    "check_text",
    "parse_init_msg",
    "parse_execute_msg",
    "parse_query_msg",
]
