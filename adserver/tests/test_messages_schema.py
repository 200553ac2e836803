from __future__ import annotations

import pytest
from jsonschema import Draft202012Validator

from adserver import contract
from adserver.config import load_config
from adserver.errors import AdServerError, InvalidMessage
from adserver.msg import (
    AddAd,
    AdResponse,
    AllAdsResponse,
    BatchServeAds,
    DeleteAd,
    InitMsg,
    QueryAd,
    QueryAds,
    QueryTotalViews,
    ServeAd,
    TotalViewsResponse,
    check_text,
    parse_execute_msg,
    parse_init_msg,
    parse_query_msg,
)
from adserver.schema import SCHEMAS, get_schema, schema_sha3_256, validate
from adserver.state import state_key


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def test_parse_execute_variants():
    assert parse_execute_msg(
        {"add_ad": {"id": "a", "image_url": "i", "target_url": "t", "reward_address": "r"}}
    ) == AddAd(id="a", image_url="i", target_url="t", reward_address="r")
    assert parse_execute_msg('{"serve_ad": {"id": "a"}}') == ServeAd(id="a")
    assert parse_execute_msg(b'{"delete_ad": {"id": "a"}}') == DeleteAd(id="a")
    assert parse_execute_msg({"batch_serve_ads": {"ids": []}}) == BatchServeAds(ids=[])


def test_parse_query_variants():
    assert parse_query_msg("ads") == QueryAds()
    assert parse_query_msg('"ads"') == QueryAds()
    assert parse_query_msg("total_views") == QueryTotalViews()
    assert parse_query_msg({"ad": {"id": "x"}}) == QueryAd(id="x")


def test_parse_init_msg():
    assert parse_init_msg("{}") == InitMsg()
    with pytest.raises(InvalidMessage):
        parse_init_msg('{"owner": "x"}')


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        b"\xff",
        "[]",
        {"serve_ad": {"id": 1}},
        {"serve_ad": {}},
        {"serve_ad": {"id": "a", "extra": 1}},
        {"serve_ad": {"id": "a"}, "delete_ad": {"id": "a"}},
        {"batch_serve_ads": {"ids": ["a", 2]}},
        {"add_ad": {"id": "a", "image_url": "i", "target_url": "t"}},
        {"unknown": {}},
    ],
)
def test_bad_execute_messages(raw):
    with pytest.raises(InvalidMessage) as ei:
        parse_execute_msg(raw)
    assert ei.value.code == "INVALID_MESSAGE"


@pytest.mark.parametrize("raw", ["total", {"ad": {}}, {"ads": {}}, 5])
def test_bad_query_messages(raw):
    with pytest.raises(InvalidMessage):
        parse_query_msg(raw)


def test_schema_error_carries_path():
    with pytest.raises(InvalidMessage) as ei:
        validate("execute_msg", {"serve_ad": {"id": 7}})
    assert ei.value.data["schema"] == "execute_msg"


def test_lenient_mode_tolerates_unknown_fields(monkeypatch):
    monkeypatch.setenv("ADSERVER_STRICT_SCHEMA", "false")
    load_config.cache_clear()
    assert parse_execute_msg({"serve_ad": {"id": "a", "note": "x"}}) == ServeAd(id="a")
    with pytest.raises(InvalidMessage):
        parse_execute_msg({"serve_ad": {"id": 3}})


# ---------------------------------------------------------------------------
# Wire shapes
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "msg",
    [
        AddAd(id="a", image_url="i", target_url="t", reward_address="r"),
        ServeAd(id="a"),
        DeleteAd(id="a"),
        BatchServeAds(ids=["a", "a"]),
    ],
)
def test_execute_to_dict_parses_back(msg):
    validate("execute_msg", msg.to_dict())
    assert parse_execute_msg(msg.to_dict()) == msg


def test_query_to_dict_shapes():
    assert QueryAd(id="a").to_dict() == {"ad": {"id": "a"}}
    assert QueryAds().to_dict() == "ads"
    assert QueryTotalViews().to_dict() == "total_views"


def test_responses_match_schemas():
    ad = AdResponse(id="a", image_url="i", target_url="t", views=2, reward_address="r")
    validate("ad_response", ad.to_dict())
    validate("all_ads_response", AllAdsResponse(ads=[ad, ad]).to_dict())
    validate("all_ads_response", AllAdsResponse().to_dict())
    validate("total_views_response", TotalViewsResponse(total_views=(1 << 64) - 1).to_dict())

    with pytest.raises(InvalidMessage):
        validate("total_views_response", {"total_views": -1})


# ---------------------------------------------------------------------------
# Schema registry
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("name", sorted(SCHEMAS))
def test_schemas_are_valid_draft_2020_12(name):
    Draft202012Validator.check_schema(get_schema(name))


def test_get_schema_unknown_name():
    with pytest.raises(KeyError):
        get_schema("nope")


def test_schema_hash_is_stable():
    h1 = schema_sha3_256(get_schema("execute_msg"))
    h2 = schema_sha3_256(dict(get_schema("execute_msg")))
    assert h1 == h2
    assert len(h1) == 32
    assert h1 != schema_sha3_256(get_schema("query_msg"))


# ---------------------------------------------------------------------------
# Text that cannot be stored as UTF-8
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw",
    [
        '{"add_ad": {"id": "\\ud800", "image_url": "i", "target_url": "t", "reward_address": "r"}}',
        {"add_ad": {"id": "a", "image_url": "i", "target_url": "t", "reward_address": "\udcff"}},
        {"serve_ad": {"id": "\ud800"}},
        {"delete_ad": {"id": "\ud800"}},
        {"batch_serve_ads": {"ids": ["a", "\ud800"]}},
    ],
)
def test_lone_surrogates_rejected_at_parse(raw):
    with pytest.raises(InvalidMessage) as ei:
        parse_execute_msg(raw)
    assert "UTF-8" in ei.value.message


def test_lone_surrogate_query_rejected():
    with pytest.raises(InvalidMessage):
        parse_query_msg('{"ad": {"id": "\\udfff"}}')


def test_lone_surrogate_via_execute_json_leaves_store_untouched(store):
    before = store.get(state_key())
    with pytest.raises(AdServerError) as ei:
        contract.execute_json(
            store,
            '{"add_ad": {"id": "\\ud800", "image_url": "i", "target_url": "t", "reward_address": "r"}}',
        )
    assert ei.value.code == "INVALID_MESSAGE"
    assert store.get(state_key()) == before


def test_check_text_passes_valid_unicode():
    assert check_text("ad-ü-☃-😀", "id") == "ad-ü-☃-😀"
