from __future__ import annotations

import json

import pytest

from adserver import contract
from adserver.errors import CounterOverflow, DuplicateIdentifier, NotFound, StorageWriteError
from adserver.state import U64_MAX, load_state, save_state, state_key
from adserver.storage import MemoryStorage
from adserver.tests import AD1, AD2, add_ad


def _raw(store: MemoryStorage) -> bytes:
    blob = store.get(state_key())
    assert blob is not None
    return blob


# ---------------------------------------------------------------------------
# instantiate
# ---------------------------------------------------------------------------


def test_instantiate_writes_empty_registry_and_method_attribute():
    s = MemoryStorage()
    resp = contract.instantiate(s)

    assert resp.to_dict() == {"attributes": [{"key": "method", "value": "instantiate"}], "events": []}
    state = load_state(s)
    assert state.ads == []
    assert state.total_views == 0
    assert state.plt_address == ""


def test_instantiate_again_wipes_existing_data(store):
    add_ad(store, AD1)
    contract.serve_ad(store, "ad1")

    contract.instantiate(store)

    state = load_state(store)
    assert state.ads == []
    assert state.total_views == 0


# ---------------------------------------------------------------------------
# add_ad
# ---------------------------------------------------------------------------


def test_add_ad_emits_event_and_persists(store):
    resp = add_ad(store, AD1)

    assert resp.attributes == []
    assert len(resp.events) == 1
    ev = resp.events[0]
    assert ev.type == "add_ad"
    assert [a.key for a in ev.attributes] == ["action", "ad_id", "reward_address", "image_url", "target_url"]
    assert ev.as_mapping() == {
        "action": "add_ad",
        "ad_id": "ad1",
        "reward_address": "reward1",
        "image_url": "https://example.com/image1",
        "target_url": "https://example.com/landing",
    }

    state = load_state(store)
    assert [a.id for a in state.ads] == ["ad1"]
    assert state.ads[0].views == 0
    assert state.ads[0].reward_address == "reward1"
    assert state.total_views == 0


def test_add_ad_keeps_insertion_order(store):
    add_ad(store, AD2)
    add_ad(store, AD1)
    add_ad(store, {**AD1, "id": "ad0"})

    assert [a.id for a in load_state(store).ads] == ["ad2", "ad1", "ad0"]


def test_add_ad_duplicate_rejected_without_write(store):
    add_ad(store, AD1)
    before = _raw(store)

    with pytest.raises(DuplicateIdentifier) as ei:
        add_ad(store, {**AD1, "image_url": "https://other.example/img"})

    assert ei.value.code == "DUPLICATE_ID"
    assert ei.value.data == {"ad_id": "ad1"}
    assert _raw(store) == before


def test_add_ad_accepts_empty_strings(store):
    contract.add_ad(store, "", "", "", "")

    ad = load_state(store).find("")
    assert ad is not None
    assert ad.views == 0


# ---------------------------------------------------------------------------
# serve_ad
# ---------------------------------------------------------------------------


def test_serve_ad_increments_views_and_total(store):
    add_ad(store, AD1)

    resp = contract.serve_ad(store, "ad1")

    ev = resp.events[0]
    assert ev.type == "serve_ad"
    assert [a.key for a in ev.attributes] == ["action", "ad_id", "views", "image_url", "target_url"]
    assert ev.get("action") == "serve_ad"
    assert ev.get("ad_id") == "ad1"
    assert ev.get("views") == "1"
    assert ev.get("image_url") == AD1["image_url"]
    assert ev.get("target_url") == AD1["target_url"]

    state = load_state(store)
    assert state.find("ad1").views == 1
    assert state.total_views == 1


def test_serve_ad_views_attribute_is_post_increment(store):
    add_ad(store, AD1)
    values = [contract.serve_ad(store, "ad1").events[0].get("views") for _ in range(3)]
    assert values == ["1", "2", "3"]


def test_serve_ad_unknown_id_rejected_without_write(store):
    add_ad(store, AD1)
    before = _raw(store)

    with pytest.raises(NotFound) as ei:
        contract.serve_ad(store, "missing")

    assert ei.value.code == "NOT_FOUND"
    assert ei.value.message == "Cannot serve ad: ID not found"
    assert ei.value.data == {"ad_id": "missing", "op": "serve_ad"}
    assert _raw(store) == before


def test_serve_ad_counter_overflow_leaves_state(store):
    add_ad(store, AD1)
    state = load_state(store)
    state.ads[0].views = U64_MAX
    save_state(store, state)
    before = _raw(store)

    with pytest.raises(CounterOverflow) as ei:
        contract.serve_ad(store, "ad1")

    assert ei.value.data == {"counter": "views", "ad_id": "ad1"}
    assert _raw(store) == before


def test_serve_ad_total_views_overflow(store):
    add_ad(store, AD1)
    state = load_state(store)
    state.total_views = U64_MAX
    save_state(store, state)

    with pytest.raises(CounterOverflow) as ei:
        contract.serve_ad(store, "ad1")
    assert ei.value.data["counter"] == "total_views"


# ---------------------------------------------------------------------------
# delete_ad
# ---------------------------------------------------------------------------


def test_delete_ad_keeps_total_views(store):
    add_ad(store, AD1)
    add_ad(store, AD2)
    contract.serve_ad(store, "ad1")
    contract.serve_ad(store, "ad1")

    resp = contract.delete_ad(store, "ad1")

    assert resp.events[0].type == "delete_ad"
    assert resp.events[0].as_mapping() == {"action": "delete_ad", "ad_id": "ad1"}
    state = load_state(store)
    assert [a.id for a in state.ads] == ["ad2"]
    assert state.total_views == 2


def test_delete_ad_preserves_order_of_remaining(store):
    for i in range(4):
        add_ad(store, {**AD1, "id": f"ad{i}"})

    contract.delete_ad(store, "ad1")

    assert [a.id for a in load_state(store).ads] == ["ad0", "ad2", "ad3"]


def test_delete_ad_unknown_id_rejected_without_write(store):
    add_ad(store, AD1)
    before = _raw(store)

    with pytest.raises(NotFound) as ei:
        contract.delete_ad(store, "nope")

    assert ei.value.message == "Cannot delete: Ad not found"
    assert ei.value.data["op"] == "delete_ad"
    assert _raw(store) == before


def test_deleted_id_can_be_added_again(store):
    add_ad(store, AD1)
    contract.serve_ad(store, "ad1")
    contract.delete_ad(store, "ad1")

    add_ad(store, AD1)

    state = load_state(store)
    assert state.find("ad1").views == 0
    assert state.total_views == 1


# ---------------------------------------------------------------------------
# execute dispatch / wire messages
# ---------------------------------------------------------------------------


def test_execute_json_routes_every_variant(store):
    contract.execute_json(store, json.dumps({"add_ad": AD1}))
    contract.execute_json(store, {"serve_ad": {"id": "ad1"}})
    r = contract.execute_json(store, b'{"batch_serve_ads": {"ids": ["ad1", "x"]}}')
    assert [e.get("views") for e in r.events] == ["2"]

    contract.execute_json(store, {"delete_ad": {"id": "ad1"}})

    state = load_state(store)
    assert state.ads == []
    assert state.total_views == 2


def test_execute_rejects_unknown_message_type(store):
    with pytest.raises(TypeError):
        contract.execute(store, object())  # type: ignore[arg-type]


def test_add_ad_with_unencodable_id_fails_typed(store):
    before = _raw(store)
    with pytest.raises(StorageWriteError):
        contract.add_ad(store, "\udcff", "i", "t", "r")
    assert _raw(store) == before
