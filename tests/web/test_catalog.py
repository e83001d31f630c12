from __future__ import annotations

import json
import random

import pytest

from adrotator.infra.exceptions import MalformedPayloadError
from adrotator.web.catalog import DEFAULT_ADS, AdCatalog
from adrotator.web.ratelimit import SlidingWindowLimiter


def test_default_catalog():
    catalog = AdCatalog()
    assert len(catalog) == len(DEFAULT_ADS)
    assert [ad["meta"]["name"] for ad in catalog.ads] == ["MoviePromo2025", "SnackBoost"]


def test_weighted_picks_favour_heavier_ads():
    catalog = AdCatalog(rng=random.Random(5))
    picks = catalog.get_random_ads(6_000)
    share = sum(1 for ad in picks if ad["meta"]["name"] == "MoviePromo2025") / len(picks)
    assert share == pytest.approx(2 / 3, abs=0.03)


def test_zero_weight_still_gets_a_floor_of_one():
    ads = [
        {"imageSrc": "/a.jpg", "meta": {"name": "a", "weight": 0}},
        {"imageSrc": "/b.jpg", "meta": {"name": "b", "weight": 1}},
    ]
    picks = AdCatalog(ads, rng=random.Random(1)).get_random_ads(2_000)
    share = sum(1 for ad in picks if ad["meta"]["name"] == "a") / len(picks)
    assert share == pytest.approx(0.5, abs=0.05)


def test_picks_are_copies():
    catalog = AdCatalog()
    catalog.get_random_ads(1)[0]["meta"] = {}
    assert all(ad["meta"] for ad in catalog.ads)


def test_empty_catalog_returns_nothing():
    assert AdCatalog([]).get_random_ads(3) == []


def test_invalid_ad_rejected():
    with pytest.raises(MalformedPayloadError):
        AdCatalog([{"title": "no media"}])


def test_from_file_accepts_list_or_envelope(tmp_path):
    listing = tmp_path / "list.json"
    listing.write_text(json.dumps([{"imageSrc": "/a.jpg", "meta": {"name": "a"}}]))
    envelope = tmp_path / "envelope.json"
    envelope.write_text(json.dumps({"ads": [{"imageSrc": "/b.jpg", "meta": {"name": "b"}}]}))

    assert AdCatalog.from_file(listing).ads[0]["meta"]["name"] == "a"
    assert AdCatalog.from_file(envelope).ads[0]["meta"]["name"] == "b"


def test_from_file_rejects_other_shapes(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"inventory": []}))
    with pytest.raises(MalformedPayloadError):
        AdCatalog.from_file(path)


def test_sliding_window_limiter_counts_remaining():
    now = [0.0]
    limiter = SlidingWindowLimiter(2, 10.0, time_fn=lambda: now[0])

    assert limiter.allow_with_remaining("ip") == (True, 1)
    assert limiter.allow_with_remaining("ip") == (True, 0)
    assert limiter.allow_with_remaining("ip") == (False, 0)
    assert limiter.allow("other-ip")

    now[0] = 10.5
    assert limiter.allow("ip")
    limiter.reset()
    assert limiter.allow_with_remaining("ip") == (True, 1)
