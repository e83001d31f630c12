from __future__ import annotations

import random
from collections import Counter

import pytest

from adrotator.domain.descriptor import AdDescriptor, MediaKind
from adrotator.runtime.selector import AdSelector


def _ad(ad_id: str, weight: float = 1.0) -> AdDescriptor:
    return AdDescriptor(id=ad_id, media_kind=MediaKind.IMAGE, media_url=f"/ads/{ad_id}.jpg", weight=weight)


def _frequencies(selector: AdSelector, candidates, recent=(), rounds: int = 20_000) -> Counter:
    return Counter(selector.pick(candidates, recent).id for _ in range(rounds))


def test_empty_candidates_raise():
    with pytest.raises(ValueError):
        AdSelector().pick([])


def test_single_candidate_is_returned_without_randomness():
    def no_random() -> float:
        raise AssertionError("random should not be drawn")

    ad = _ad("only", weight=0.0)
    assert AdSelector(no_random).pick([ad], recent=["only"]) is ad


def test_distribution_follows_weights():
    rng = random.Random(7)
    selector = AdSelector(rng.random)
    counts = _frequencies(selector, [_ad("a", 3.0), _ad("b", 1.0)])
    share = counts["a"] / sum(counts.values())
    assert share == pytest.approx(0.75, abs=0.02)


def test_recent_ads_are_penalised():
    rng = random.Random(11)
    selector = AdSelector(rng.random)
    # a: 1 * 0.2 = 0.2, b: 1 -> a wins 1/6 of the time
    counts = _frequencies(selector, [_ad("a"), _ad("b")], recent=["a"])
    share = counts["a"] / sum(counts.values())
    assert share == pytest.approx(0.2 / 1.2, abs=0.02)


def test_penalty_is_configurable():
    selector = AdSelector(recent_penalty=0.5)
    assert selector.effective_weight(_ad("a", 4.0), {"a"}) == pytest.approx(2.0)
    assert selector.effective_weight(_ad("b", 4.0), {"a"}) == pytest.approx(4.0)


def test_zero_weight_candidates_are_never_picked_when_others_have_weight():
    for r in (0.0, 0.25, 0.5, 0.999999):
        selector = AdSelector(lambda r=r: r)
        chosen = selector.pick([_ad("zero", 0.0), _ad("one", 1.0), _ad("zero2", 0.0)])
        assert chosen.id == "one"


def test_all_zero_weights_fall_back_to_uniform():
    candidates = [_ad("a", 0.0), _ad("b", 0.0), _ad("c", 0.0)]
    picks = [AdSelector(lambda r=r: r).pick(candidates).id for r in (0.0, 0.4, 0.9)]
    assert picks == ["a", "b", "c"]


def test_walk_order_is_deterministic():
    candidates = [_ad("a", 1.0), _ad("b", 2.0), _ad("c", 1.0)]
    # total 4: r=0.2 -> 0.8 in a; r=0.5 -> 2.0 lands at the end of b; r=0.9 -> 3.6 in c
    assert AdSelector(lambda: 0.2).pick(candidates).id == "a"
    assert AdSelector(lambda: 0.5).pick(candidates).id == "b"
    assert AdSelector(lambda: 0.9).pick(candidates).id == "c"


def test_invalid_penalty_rejected():
    with pytest.raises(ValueError):
        AdSelector(recent_penalty=1.5)
