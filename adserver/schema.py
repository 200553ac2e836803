"""
adserver.schema — JSON Schemas for the registry's wire messages.

Every init/execute/query message and every query response has a Draft 2020-12
schema here. Hosts can publish them (`adserver schema` dumps them) and
`adserver.msg` validates inbound messages against them before parsing when
`ADSERVER_STRICT_SCHEMA` is on (the default).

Messages are externally tagged with snake_case variant names:

    {"add_ad": {"id": "a1", "image_url": "...", "target_url": "...", "reward_address": "..."}}
    {"batch_serve_ads": {"ids": ["a1", "a2"]}}
    "ads"

Unknown fields are rejected.
"""

from __future__ import annotations

import hashlib
import json
from functools import lru_cache
from typing import Any, Dict, Mapping

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from .errors import InvalidMessage

_DRAFT = "https://json-schema.org/draft/2020-12/schema"
_U64_MAX = (1 << 64) - 1

_STR = {"type": "string"}
_U64 = {"type": "integer", "minimum": 0, "maximum": _U64_MAX}


def _obj(props: Mapping[str, Any], *, title: str = "", description: str = "") -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "type": "object",
        "properties": dict(props),
        "required": list(props),
        "additionalProperties": False,
    }
    if title:
        out["title"] = title
    if description:
        out["description"] = description
    return out


def _variant(name: str, body: Dict[str, Any], description: str) -> Dict[str, Any]:
    return {
        "description": description,
        "type": "object",
        "properties": {name: body},
        "required": [name],
        "additionalProperties": False,
    }


def _unit(name: str, description: str) -> Dict[str, Any]:
    return {"description": description, "type": "string", "enum": [name]}


INIT_MSG_SCHEMA: Dict[str, Any] = {
    "$schema": _DRAFT,
    "title": "InitMsg",
    "description": "Initialization message",
    "type": "object",
    "additionalProperties": False,
}

EXECUTE_MSG_SCHEMA: Dict[str, Any] = {
    "$schema": _DRAFT,
    "title": "ExecuteMsg",
    "description": "Execution messages to modify the state of the registry.",
    "oneOf": [
        _variant(
            "add_ad",
            _obj({"id": _STR, "image_url": _STR, "target_url": _STR, "reward_address": _STR}),
            "Add a new ad with given details.",
        ),
        _variant("serve_ad", _obj({"id": _STR}), "Increment the view count of the given ad."),
        _variant("delete_ad", _obj({"id": _STR}), "Remove an ad by its ID."),
        _variant(
            "batch_serve_ads",
            _obj({"ids": {"type": "array", "items": _STR}}),
            "Serve multiple ads in a single call.",
        ),
    ],
}

QUERY_MSG_SCHEMA: Dict[str, Any] = {
    "$schema": _DRAFT,
    "title": "QueryMsg",
    "description": "Query messages to read state.",
    "oneOf": [
        _variant("ad", _obj({"id": _STR}), "Query a specific ad by ID."),
        _unit("ads", "Query all ads."),
        _unit("total_views", "Query total views across all ads."),
    ],
}

_AD_RESPONSE = _obj(
    {"id": _STR, "image_url": _STR, "target_url": _STR, "views": _U64, "reward_address": _STR},
    title="QueryAdResponse",
    description="Response for querying a single ad.",
)

AD_RESPONSE_SCHEMA: Dict[str, Any] = {"$schema": _DRAFT, **_AD_RESPONSE}

ALL_ADS_RESPONSE_SCHEMA: Dict[str, Any] = {
    "$schema": _DRAFT,
    **_obj(
        {"ads": {"type": "array", "items": {"$ref": "#/$defs/QueryAdResponse"}}},
        title="QueryAllAdsResponse",
        description="Response for querying all ads.",
    ),
    "$defs": {"QueryAdResponse": _AD_RESPONSE},
}

TOTAL_VIEWS_RESPONSE_SCHEMA: Dict[str, Any] = {
    "$schema": _DRAFT,
    **_obj(
        {"total_views": _U64},
        title="TotalViewsResponse",
        description="Response for querying total views.",
    ),
}

SCHEMAS: Dict[str, Dict[str, Any]] = {
    "init_msg": INIT_MSG_SCHEMA,
    "execute_msg": EXECUTE_MSG_SCHEMA,
    "query_msg": QUERY_MSG_SCHEMA,
    "ad_response": AD_RESPONSE_SCHEMA,
    "all_ads_response": ALL_ADS_RESPONSE_SCHEMA,
    "total_views_response": TOTAL_VIEWS_RESPONSE_SCHEMA,
}


def all_schemas() -> Dict[str, Dict[str, Any]]:
    return {k: dict(v) for k, v in SCHEMAS.items()}


def get_schema(name: str) -> Dict[str, Any]:
    try:
        return SCHEMAS[name]
    except KeyError:
        raise KeyError(f"unknown schema {name!r} (expected one of {sorted(SCHEMAS)})") from None


def schema_sha3_256(schema: Mapping[str, Any]) -> bytes:
    """Hash a schema deterministically (canonical JSON, sorted keys)."""
    s = json.dumps(schema, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha3_256(s).digest()


@lru_cache(maxsize=None)
def _validator(name: str) -> Draft202012Validator:
    schema = get_schema(name)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate(name: str, obj: Any) -> None:
    """Validate `obj` against schema `name`; InvalidMessage on mismatch."""
    err = best_match(_validator(name).iter_errors(obj))
    if err is None:
        return
    path = "/".join(str(p) for p in err.absolute_path)
    raise InvalidMessage(
        f"{name} does not match schema: {err.message}",
        data={"schema": name, "path": path or "/"},
    )


__all__ = [
    "INIT_MSG_SCHEMA",
    "EXECUTE_MSG_SCHEMA",
    "QUERY_MSG_SCHEMA",
    "AD_RESPONSE_SCHEMA",
    "ALL_ADS_RESPONSE_SCHEMA",
    "TOTAL_VIEWS_RESPONSE_SCHEMA",
    "SCHEMAS",
    "all_schemas",
    "get_schema",
    "schema_sha3_256",
    "validate",
]
