"""
adserver.contract — initialization, command handlers and query handlers.

Entry points
------------
- instantiate(storage, msg=None) -> Response
    Write a fresh, empty registry (overwrites whatever was there).
- execute(storage, msg: ExecuteMsg) -> Response
    Route a command to add_ad / serve_ad / delete_ad / batch_serve_ads.
- query(storage, msg: QueryMsg) -> bytes
    Route a query and return the JSON-serialized response.
- execute_json / query_json
    Same, starting from a wire message (see `adserver.msg`).

Every command is one (load, compute, save) sequence against the store. A
rejected command raises before the save, so the stored bytes are untouched.
Queries load and project; they never write and never emit events.

The host serializes invocations; nothing here locks or retries.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from . import codec
from .errors import AdServerError, NotFound
from .events import Event, Response, attr
from .logging import get_logger
from .msg import (
    AddAd,
    AdResponse,
    AllAdsResponse,
    BatchServeAds,
    DeleteAd,
    ExecuteMsg,
    InitMsg,
    QueryAd,
    QueryAds,
    QueryMsg,
    QueryTotalViews,
    ServeAd,
    TotalViewsResponse,
    parse_execute_msg,
    parse_query_msg,
)
from .state import Ad, empty_state, load_state, save_state
from .storage import Storage

log = get_logger(__name__)


# ------------------------------- initialization -------------------------------


def instantiate(storage: Storage, msg: Optional[InitMsg] = None) -> Response:
    """
    Initialize the registry: no ads, zero total views, empty plt_address.
    Calling it again wipes existing data; callers invoke it once.
    """
    save_state(storage, empty_state())
    log.info("registry initialized")
    return Response().add_attribute("method", "instantiate")


# ---------------------------------- commands ----------------------------------


def execute(storage: Storage, msg: ExecuteMsg) -> Response:
    """Route an execute message to its handler."""
    if isinstance(msg, AddAd):
        return add_ad(storage, msg.id, msg.image_url, msg.target_url, msg.reward_address)
    if isinstance(msg, ServeAd):
        return serve_ad(storage, msg.id)
    if isinstance(msg, DeleteAd):
        return delete_ad(storage, msg.id)
    if isinstance(msg, BatchServeAds):
        return batch_serve_ads(storage, msg.ids)
    raise TypeError(f"unsupported execute message: {type(msg).__name__}")


def _serve_event(ad: Ad) -> Event:
    return Event("serve_ad").add_attributes(
        [
            attr("action", "serve_ad"),
            attr("ad_id", ad.id),
            attr("views", ad.views),
            attr("image_url", ad.image_url),
            attr("target_url", ad.target_url),
        ]
    )


def add_ad(
    storage: Storage,
    id: str,
    image_url: str,
    target_url: str,
    reward_address: str,
) -> Response:
    """Add a new ad, rejecting an id that is already registered."""
    state = load_state(storage)
    try:
        state.add_ad(
            Ad(
                id=id,
                image_url=image_url,
                target_url=target_url,
                views=0,
                reward_address=reward_address,
            )
        )
    except AdServerError as e:
        log.info("add_ad rejected", extra={"ad_id": id, "code": e.code})
        raise
    save_state(storage, state)
    log.info("ad added", extra={"ad_id": id, "ads": len(state.ads)})

    event = Event("add_ad").add_attributes(
        [
            attr("action", "add_ad"),
            attr("ad_id", id),
            attr("reward_address", reward_address),
            attr("image_url", image_url),
            attr("target_url", target_url),
        ]
    )
    return Response().add_event(event)


def serve_ad(storage: Storage, id: str) -> Response:
    """Count one impression of an existing ad."""
    state = load_state(storage)
    ad = state.serve(id)
    if ad is None:
        log.info("serve_ad rejected", extra={"ad_id": id, "code": "NOT_FOUND"})
        raise NotFound(id, op="serve_ad", message="Cannot serve ad: ID not found")
    save_state(storage, state)
    log.debug("ad served", extra={"ad_id": id, "views": ad.views, "total_views": state.total_views})
    return Response().add_event(_serve_event(ad))


def delete_ad(storage: Storage, id: str) -> Response:
    """
    Remove an ad. Its accumulated views stay in total_views, which counts
    impressions served over the registry's lifetime.
    """
    state = load_state(storage)
    try:
        state.remove(id)
    except AdServerError as e:
        log.info("delete_ad rejected", extra={"ad_id": id, "code": e.code})
        raise
    save_state(storage, state)
    log.info("ad deleted", extra={"ad_id": id, "ads": len(state.ads)})

    event = Event("delete_ad").add_attribute("action", "delete_ad").add_attribute("ad_id", id)
    return Response().add_event(event)


def batch_serve_ads(storage: Storage, ids: Sequence[str]) -> Response:
    """
    Serve each id in order. Unknown ids are skipped without error or event;
    a repeated id is served once per occurrence. One load, one save.
    """
    state = load_state(storage)
    events: List[Event] = []
    skipped = 0

    for ad_id in ids:
        ad = state.serve(ad_id)
        if ad is None:
            skipped += 1
            continue
        events.append(_serve_event(ad))

    save_state(storage, state)
    log.debug(
        "batch served",
        extra={"requested": len(ids), "served": len(events), "skipped": skipped},
    )
    return Response().add_events(events)


# ----------------------------------- queries -----------------------------------


def _ad_response(ad: Ad) -> AdResponse:
    return AdResponse(
        id=ad.id,
        image_url=ad.image_url,
        target_url=ad.target_url,
        views=ad.views,
        reward_address=ad.reward_address,
    )


def query_ad(storage: Storage, id: str) -> AdResponse:
    """Return one ad by id."""
    ad = load_state(storage).find(id)
    if ad is None:
        raise NotFound(id, op="ad")
    return _ad_response(ad)


def query_all_ads(storage: Storage) -> AllAdsResponse:
    """Return every ad in insertion order."""
    state = load_state(storage)
    return AllAdsResponse(ads=[_ad_response(ad) for ad in state.ads])


def query_total_views(storage: Storage) -> TotalViewsResponse:
    """Return the cumulative view counter."""
    return TotalViewsResponse(total_views=load_state(storage).total_views)


def query_response(storage: Storage, msg: QueryMsg) -> Any:
    """Route a query message and return the typed response."""
    if isinstance(msg, QueryAd):
        return query_ad(storage, msg.id)
    if isinstance(msg, QueryAds):
        return query_all_ads(storage)
    if isinstance(msg, QueryTotalViews):
        return query_total_views(storage)
    raise TypeError(f"unsupported query message: {type(msg).__name__}")


def query(storage: Storage, msg: QueryMsg) -> bytes:
    """Route a query message and return its JSON-serialized response."""
    return codec.json_dumps(query_response(storage, msg).to_dict())


# ------------------------------- wire helpers -------------------------------


def execute_json(storage: Storage, raw: Any) -> Response:
    """Parse a wire execute message and run it."""
    return execute(storage, parse_execute_msg(raw))


def query_json(storage: Storage, raw: Any) -> bytes:
    """Parse a wire query message and answer it."""
    return query(storage, parse_query_msg(raw))


__all__ = [
    "instantiate",
    "execute",
    "add_ad",
    "serve_ad",
    "delete_ad",
    "batch_serve_ads",
    "query",
    "query_response",
    "query_ad",
    "query_all_ads",
    "query_total_views",
    "execute_json",
    "query_json",
]
