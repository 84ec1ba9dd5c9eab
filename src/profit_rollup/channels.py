"""Fulfillment tags and channel classification."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class FulfillmentTag(str, Enum):
    """Canonical fulfillment tag of a single settlement line."""

    ORIGIN = "origin"      # platform ships from its own network (AFN / FBA)
    MERCHANT = "merchant"  # seller ships (MFN / FBM)
    UNKNOWN = "unknown"


class Channel(str, Enum):
    FBA = "FBA"
    FBM = "FBM"
    MIXED = "Mixed"


_ORIGIN_TAGS = {"AFN", "FBA", "AMAZON", "AMAZON.COM"}
_MERCHANT_TAGS = {"MFN", "FBM", "MERCHANT", "SELLER"}


def parse_fulfillment_tag(raw: str | None) -> FulfillmentTag:
    """Map a raw report value (``AFN``, ``FBA``, ``MFN``, ``FBM``...) to a tag."""
    if raw is None:
        return FulfillmentTag.UNKNOWN
    key = str(raw).strip().upper()
    if key in _ORIGIN_TAGS:
        return FulfillmentTag.ORIGIN
    if key in _MERCHANT_TAGS:
        return FulfillmentTag.MERCHANT
    return FulfillmentTag.UNKNOWN


def classify_tags(tags: Iterable[FulfillmentTag]) -> Channel:
    """
    Channel of a SKU group from the set of observed tags.

    Both canonical tags give ``Mixed`` regardless of counts; origin only
    gives ``FBA``; anything else (merchant, unknown, empty) gives ``FBM``.
    """
    seen = set(tags)
    has_origin = FulfillmentTag.ORIGIN in seen
    has_merchant = FulfillmentTag.MERCHANT in seen
    if has_origin and has_merchant:
        return Channel.MIXED
    if has_origin:
        return Channel.FBA
    return Channel.FBM


def combine_channels(channels: Iterable[Channel]) -> Channel:
    """Channel of a rollup node from its children's channels."""
    seen = set(channels)
    has_fba = Channel.FBA in seen or Channel.MIXED in seen
    has_fbm = Channel.FBM in seen or Channel.MIXED in seen
    if has_fba and has_fbm:
        return Channel.MIXED
    if has_fba:
        return Channel.FBA
    return Channel.FBM
